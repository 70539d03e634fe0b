"""Action engine: reads the store, calls the backend, commits mutations.

Every operation here is a coroutine. Modifier hooks and network calls
complete before a mutation is committed; the store itself never awaits.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping, Sequence
from typing import Any

from pyapistore._transport import Transport, extract_data
from pyapistore._url import bulk_delete_url, format_url
from pyapistore.config import ApiStoreConfig
from pyapistore.exceptions import ApiStoreQueueError, QueueFlushError
from pyapistore.models.payloads import (
    QUEUE_ACTIONS,
    Payload,
    QueueAction,
    QueuedAction,
    QueueEntry,
    QueuePayload,
)
from pyapistore.modifiers import ModifierName, ModifierRegistry
from pyapistore.registry import ModelDescriptor
from pyapistore.state.store import ApiStore, SliceMutations

_logger = logging.getLogger(__name__)

ModelKeys = str | Sequence[str]


def _as_payload(payload: Payload | Mapping[str, Any]) -> Payload:
    if isinstance(payload, Payload):
        return payload
    return Payload.model_validate(payload)


def _as_queue_payload(payload: QueuePayload | Mapping[str, Any]) -> QueuePayload:
    if isinstance(payload, QueuePayload):
        return payload
    return QueuePayload.model_validate(payload)


class ApiActions:
    """Store operations backed by a remote REST endpoint."""

    def __init__(
        self,
        store: ApiStore,
        transport: Transport,
        *,
        modifiers: ModifierRegistry | None = None,
        config: ApiStoreConfig | None = None,
    ) -> None:
        self._store = store
        self._transport = transport
        self._modifiers = modifiers or ModifierRegistry()
        self._config = config or ApiStoreConfig()
        self._data_path = self._config.response_data_path

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _model(self, key: str) -> ModelDescriptor:
        return self._store.models[key]

    def _mutations(self, key: str) -> SliceMutations:
        return self._store.mutations_for(key)

    async def _add_to_store(self, key: str, data: Any) -> Any:
        modified = await self._modifiers.apply(ModifierName.AFTER_GET, key, data)
        return self._mutations(key).add(modified, confirmed=True)

    async def _fetch_entity(self, request: Payload) -> Any:
        model = self._model(request.type)
        clear = request.clear if request.clear is not None else request.is_all
        if clear:
            self._mutations(request.type).clear()
        response = await self._transport.request(
            "get",
            format_url(model, request.url, request.id),
            **request.request_options,
        )
        return await self._add_to_store(request.type, extract_data(response, self._data_path))

    async def _store_entity(
        self,
        request: Payload,
        method: str = QueueAction.POST,
        *,
        prepared: bool = False,
    ) -> Any:
        """Send *request* with *method* and merge the response.

        ``prepared`` data has already been through ``before_save``
        (queued entries).
        """
        model = self._model(request.type)
        data = request.data
        if not prepared:
            data = await self._modifiers.apply(ModifierName.BEFORE_SAVE, request.type, data)
        entity_id = request.id if method != QueueAction.POST else None
        response = await self._transport.request(
            method,
            format_url(model, request.url, entity_id),
            data=data,
            **request.request_options,
        )
        result = extract_data(response, self._data_path)
        await self._add_to_store(request.type, result)
        return result

    async def _delete_entity(self, request: Payload, *, prepared: bool = False) -> None:
        model = self._model(request.type)

        if request.is_all:
            data = request.data
            if not prepared:
                data = await self._modifiers.apply(ModifierName.BEFORE_SAVE, request.type, data)
            await self._transport.request(
                "patch",
                bulk_delete_url(model, request.url),
                data=data,
                **request.request_options,
            )
            self._mutations(request.type).delete(request.data)
            return

        if request.id is None:
            raise ApiStoreQueueError(f"Cannot delete a {model.name} without an id")
        await self._transport.request(
            "delete",
            format_url(model, request.url, request.id),
            **request.request_options,
        )
        self._mutations(request.type).delete(request.id)

    async def _queued_with_modifiers(self, payload: QueuePayload) -> QueuedAction:
        after_get = await self._modifiers.apply(ModifierName.AFTER_GET, payload.type, payload.data)
        before_save = await self._modifiers.apply(ModifierName.BEFORE_SAVE, payload.type, payload.data)
        return QueuedAction(
            action=payload.action,
            id=payload.id,
            after_get=after_get or {},
            entry=QueueEntry(type=payload.type, url=payload.url, data=before_save or {}),
        )

    def _dispatch(self, action: str, request: Payload, *, prepared: bool = False) -> Awaitable[Any]:
        if action == QueueAction.DELETE:
            return self._delete_entity(request, prepared=prepared)
        if action in (QueueAction.POST, QueueAction.PATCH):
            return self._store_entity(request, action, prepared=prepared)
        raise ApiStoreQueueError(f"Unknown action {action!r}")

    async def _flush_entry(self, action: QueueAction, entry: QueueEntry) -> Any:
        request = Payload(type=entry.type, id=entry.id, data=entry.data, url=entry.url)
        result = await self._dispatch(action, request, prepared=True)
        if action == QueueAction.POST and entry.id is not None and isinstance(result, Mapping):
            confirmed_id = result.get("id")
            if confirmed_id is not None and confirmed_id != entry.id:
                # The backend assigned its own id; drop the optimistic placeholder.
                self._mutations(entry.type).delete(entry.id)
        return result

    def _unqueue(self, action: QueueAction, entry: QueueEntry) -> None:
        if action != QueueAction.POST:
            queue = self._store.slice(entry.type).action_queue
            container = queue.patch if action == QueueAction.PATCH else queue.delete
            if container.get(entry.id) is not entry:
                # Superseded while in flight; the newer entry stays queued.
                return
        self._mutations(entry.type).unqueue_action(
            QueuePayload(type=entry.type, url=entry.url, data=entry.data, action=action)
        )

    async def _confirm_action_type(self, key: str, *, sequential: bool = False) -> None:
        store = self._store.slice(key)
        if not store.has_action:
            return

        pending = list(store.action_queue.entries())
        failures: list[tuple[QueueEntry, BaseException]] = []
        _logger.debug(
            "Flushing %d queued action(s) for %s (%s)",
            len(pending),
            key,
            "sequential" if sequential else "parallel",
        )

        if sequential:
            done: list[tuple[QueueAction, QueueEntry]] = []
            for action, entry in pending:
                try:
                    await self._flush_entry(action, entry)
                except Exception as exc:
                    failures.append((entry, exc))
                    break
                done.append((action, entry))
        else:
            results = await asyncio.gather(
                *(self._flush_entry(action, entry) for action, entry in pending),
                return_exceptions=True,
            )
            done = []
            for (action, entry), result in zip(pending, results, strict=True):
                if isinstance(result, Exception):
                    failures.append((entry, result))
                elif isinstance(result, BaseException):
                    raise result
                else:
                    done.append((action, entry))

        if failures and self._config.reset_queue_on_failure:
            self._mutations(key).reset_queue()
        else:
            # Only what was sent leaves the queue; entries queued meanwhile stay.
            for action, entry in done:
                self._unqueue(action, entry)
            if not store.has_action:
                self._mutations(key).reset_queue()

        if failures:
            _logger.warning("%d queued action(s) failed for %s", len(failures), key)
            raise QueueFlushError(key, failures)

    async def _cancel_action_type(self, key: str) -> None:
        store = self._store.slice(key)
        if not store.has_action:
            return

        queued_ids = store.action_queue.queued_ids()
        origin = [store.origin_items[entity_id] for entity_id in queued_ids if entity_id in store.origin_items]
        unconfirmed = [entity_id for entity_id in queued_ids if entity_id not in store.origin_items]

        restored = await self._modifiers.apply(ModifierName.AFTER_QUEUE, key, origin)
        mutations = self._mutations(key)
        if restored:
            mutations.add(restored, restore=True)
        if unconfirmed:
            # Optimistic creates never reached the backend; there is nothing to restore.
            mutations.delete(unconfirmed)
        mutations.reset_queue()

    async def _each_model(self, keys: ModelKeys, fn: Callable[[str], Awaitable[None]]) -> None:
        if isinstance(keys, str):
            await fn(keys)
            return
        results = await asyncio.gather(*(fn(key) for key in keys), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def get(self, payload: Payload | Mapping[str, Any]) -> Any:
        """Return the held entity, fetching it when absent or ``force_fetch`` is set."""
        request = _as_payload(payload)
        entity = None
        if request.id is not None:
            entity = self._store.slice(request.type).items.get(request.id)
        if request.force_fetch or entity is None:
            return await self._fetch_entity(request)
        return entity

    async def post(self, payload: Payload | Mapping[str, Any]) -> Any:
        return await self._store_entity(_as_payload(payload), QueueAction.POST)

    async def patch(self, payload: Payload | Mapping[str, Any]) -> Any:
        return await self._store_entity(_as_payload(payload), QueueAction.PATCH)

    async def delete(self, payload: Payload | Mapping[str, Any]) -> None:
        await self._delete_entity(_as_payload(payload))

    async def add(self, payload: Payload | Mapping[str, Any]) -> Any:
        """Merge already-known data into the store without a network call."""
        request = _as_payload(payload)
        if request.clear:
            self._mutations(request.type).clear()
        if request.data is not None:
            await self._add_to_store(request.type, request.data)
        return request.data

    async def queue_action(self, payload: QueuePayload | Mapping[str, Any]) -> QueuedAction:
        """Apply a local write optimistically and queue it for a later flush."""
        queue_payload = _as_queue_payload(payload)
        model = self._model(queue_payload.type)
        if queue_payload.action in (QueueAction.PATCH, QueueAction.DELETE) and queue_payload.id is None:
            raise ApiStoreQueueError(f"Cannot queue {queue_payload.action} of a {model.name} without data.id")
        queued = await self._queued_with_modifiers(queue_payload)
        self._mutations(queue_payload.type).queue_action(queued)
        return queued

    async def process_action(self, payload: QueuePayload | Mapping[str, Any]) -> Any:
        """Execute one write against the backend right away, bypassing the queue."""
        queue_payload = _as_queue_payload(payload)
        if queue_payload.action not in QUEUE_ACTIONS:
            raise ApiStoreQueueError(f"Unknown action {queue_payload.action!r}")
        request = Payload(
            type=queue_payload.type,
            id=queue_payload.id,
            data=queue_payload.data,
            url=queue_payload.url,
        )
        return await self._dispatch(queue_payload.action, request)

    async def process_action_queue(self, keys: ModelKeys) -> None:
        """Flush the queues of one or more models, issuing all calls concurrently."""
        await self._each_model(keys, self._confirm_action_type)

    async def sequential_process_action_queue(self, keys: ModelKeys) -> None:
        """Flush the queues of one or more models, one call after another per model."""

        async def _sequential(key: str) -> None:
            await self._confirm_action_type(key, sequential=True)

        await self._each_model(keys, _sequential)

    async def cancel_action_queue(self, keys: ModelKeys) -> None:
        """Drop queued writes and restore the affected entities to their origin snapshot."""
        await self._each_model(keys, self._cancel_action_type)

    async def cancel_action(self, payload: QueuePayload | Mapping[str, Any]) -> None:
        """Remove a single queued write without restoring state."""
        queue_payload = _as_queue_payload(payload)
        self._mutations(queue_payload.type).unqueue_action(queue_payload)

    async def reset(self) -> None:
        self._store.reset()
