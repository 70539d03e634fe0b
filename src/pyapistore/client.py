"""High-level async client tying the store, transport and action engine together."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any

import aiohttp

from pyapistore._transport import HttpTransport, Transport
from pyapistore.actions import ApiActions, ModelKeys
from pyapistore.config import ApiStoreConfig
from pyapistore.exceptions import ApiStoreError
from pyapistore.models.payloads import Payload, QueuedAction, QueuePayload
from pyapistore.modifiers import ModifierRegistry
from pyapistore.registry import ModelDescriptor, ModelRegistry
from pyapistore.state.slice import EntitySlice
from pyapistore.state.store import ApiStore, MutationListener

_logger = logging.getLogger(__name__)


class ApiStoreClient:
    """Async entity cache for a REST backend.

    Usage::

        async with ApiStoreClient(models, ApiStoreConfig(base_url="https://api.example.com")) as client:
            widget = await client.get({"type": "widget", "id": 7})
            await client.queue_action({"type": "widget", "action": "patch", "data": {**widget, "name": "new"}})
            await client.process_action_queue("widget")

    The store is usable (and readable) outside the context manager; only
    operations that may reach the backend need an open client.
    """

    def __init__(
        self,
        models: ModelRegistry | Mapping[str, ModelDescriptor | Mapping[str, Any]],
        config: ApiStoreConfig | None = None,
        *,
        modifiers: ModifierRegistry | None = None,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
        on_mutation: MutationListener | None = None,
    ) -> None:
        registry = models if isinstance(models, ModelRegistry) else ModelRegistry(models)
        self._config = config or ApiStoreConfig()
        self._modifiers = modifiers or ModifierRegistry()
        self._external_session = session is not None
        self._http_session = session
        self._external_transport = transport
        self._actions: ApiActions | None = None
        self.store = ApiStore(registry)
        if on_mutation is not None:
            self.store.subscribe(on_mutation)

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ApiStoreClient:
        transport = self._external_transport
        if transport is None:
            if self._http_session is None:
                self._http_session = aiohttp.ClientSession()
            transport = HttpTransport(self._config, self._http_session)
        self._actions = ApiActions(
            self.store,
            transport,
            modifiers=self._modifiers,
            config=self._config,
        )
        return self

    async def __aexit__(self, *exc: Any) -> None:
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        self._actions = None

    def _require_actions(self) -> ApiActions:
        if self._actions is None:
            raise ApiStoreError("Client not initialized. Use 'async with ApiStoreClient(...) as client:'")
        return self._actions

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    @property
    def config(self) -> ApiStoreConfig:
        return self._config

    @property
    def modifiers(self) -> ModifierRegistry:
        return self._modifiers

    def slice(self, key: str) -> EntitySlice:
        return self.store.slice(key)

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        return self.store.subscribe(listener)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, payload: Payload | Mapping[str, Any]) -> Any:
        return await self._require_actions().get(payload)

    async def post(self, payload: Payload | Mapping[str, Any]) -> Any:
        return await self._require_actions().post(payload)

    async def patch(self, payload: Payload | Mapping[str, Any]) -> Any:
        return await self._require_actions().patch(payload)

    async def delete(self, payload: Payload | Mapping[str, Any]) -> None:
        await self._require_actions().delete(payload)

    async def add(self, payload: Payload | Mapping[str, Any]) -> Any:
        return await self._require_actions().add(payload)

    async def queue_action(self, payload: QueuePayload | Mapping[str, Any]) -> QueuedAction:
        return await self._require_actions().queue_action(payload)

    async def process_action(self, payload: QueuePayload | Mapping[str, Any]) -> Any:
        return await self._require_actions().process_action(payload)

    async def process_action_queue(self, keys: ModelKeys) -> None:
        await self._require_actions().process_action_queue(keys)

    async def sequential_process_action_queue(self, keys: ModelKeys) -> None:
        await self._require_actions().sequential_process_action_queue(keys)

    async def cancel_action(self, payload: QueuePayload | Mapping[str, Any]) -> None:
        await self._require_actions().cancel_action(payload)

    async def cancel_action_queue(self, keys: ModelKeys) -> None:
        await self._require_actions().cancel_action_queue(keys)

    async def reset(self) -> None:
        _logger.debug("Resetting all slices")
        self.store.reset()
