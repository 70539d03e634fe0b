"""Request URL construction from payloads."""

from __future__ import annotations

from pyapistore._constants import BULK_DELETE_SUFFIX
from pyapistore.models.payloads import EntityId
from pyapistore.registry import ModelDescriptor


def collection_url(model: ModelDescriptor, url: str | None) -> str:
    """Explicit payload URL, or the model's lowercase plural."""
    base = url if url is not None else model.plural.lower()
    return base.rstrip("/") or "/"


def format_url(model: ModelDescriptor, url: str | None, entity_id: EntityId | None = None) -> str:
    """Collection URL, followed by ``/<id>`` when an id is given."""
    base = collection_url(model, url)
    if entity_id is None:
        return base
    return f"{base.rstrip('/')}/{entity_id}"


def bulk_delete_url(model: ModelDescriptor, url: str | None) -> str:
    return f"{collection_url(model, url).rstrip('/')}{BULK_DELETE_SUFFIX}"
