"""pyapistore - Normalized async entity cache with an offline write queue."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pyapistore")
except PackageNotFoundError:
    __version__ = "0+local"
from pyapistore.actions import ApiActions
from pyapistore.client import ApiStoreClient
from pyapistore.config import ApiStoreConfig
from pyapistore.exceptions import (
    ApiStoreConfigError,
    ApiStoreError,
    ApiStoreQueueError,
    ApiStoreTransportError,
    QueueFlushError,
    UnknownModelError,
)
from pyapistore.models import Payload, QueueAction, QueuedAction, QueueEntry, QueuePayload
from pyapistore.modifiers import ModelModifiers, ModifierName, ModifierRegistry
from pyapistore.registry import ModelDescriptor, ModelRegistry
from pyapistore.state import ActionQueue, EntitySlice
from pyapistore.state.store import ApiStore, SliceMutations

__all__ = [
    "__version__",
    "ActionQueue",
    "ApiActions",
    "ApiStore",
    "ApiStoreClient",
    "ApiStoreConfig",
    "ApiStoreConfigError",
    "ApiStoreError",
    "ApiStoreQueueError",
    "ApiStoreTransportError",
    "EntitySlice",
    "ModelDescriptor",
    "ModelModifiers",
    "ModelRegistry",
    "ModifierName",
    "ModifierRegistry",
    "Payload",
    "QueueAction",
    "QueueEntry",
    "QueueFlushError",
    "QueuePayload",
    "QueuedAction",
    "SliceMutations",
    "UnknownModelError",
]
