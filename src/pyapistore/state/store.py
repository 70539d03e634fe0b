"""Normalized in-memory entity store.

This is the only component allowed to write entity slices. Every write
goes through a named mutation (``ADD_WIDGET``, ``QUEUE_ACTION_WIDGET``,
...) dispatched by :meth:`ApiStore.commit`. Mutations are synchronous
and never await, so a reader on the event loop always observes either
the state before or after a mutation, never a half-applied one. Modifier
hooks and network calls belong to :mod:`pyapistore.actions`.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from functools import partial
from typing import Any

from pyapistore._constants import (
    ADD,
    CLEAR,
    DELETE,
    QUEUE_ACTION,
    RESET_QUEUE,
    UNQUEUE_ACTION,
    mutation_name,
)
from pyapistore.exceptions import ApiStoreError, UnknownModelError
from pyapistore.models.payloads import EntityId, QueueAction, QueuedAction, QueuePayload
from pyapistore.registry import ModelDescriptor, ModelRegistry
from pyapistore.state.slice import EntitySlice

_logger = logging.getLogger(__name__)

MutationListener = Callable[[str, Any], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class SliceMutations:
    """Mutations of one model, resolved when the store is built."""

    add: Callable[..., Any]
    delete: Callable[..., Any]
    clear: Callable[..., Any]
    queue_action: Callable[..., Any]
    unqueue_action: Callable[..., Any]
    reset_queue: Callable[..., Any]


def _entity_id(value: Any) -> EntityId | None:
    if isinstance(value, Mapping):
        value = value.get("id")
    if isinstance(value, (str, int)):
        return value
    return None


def _copy_fields(entity: Mapping[str, Any]) -> dict[str, Any]:
    return {name: copy.deepcopy(value) for name, value in entity.items() if not callable(value)}


def _reference_ids(value: Any) -> Any:
    """Replace merged entities by their ids; bare ids pass through."""
    if isinstance(value, list):
        return [_reference_ids(item) for item in value]
    if isinstance(value, Mapping):
        return value.get("id")
    return value


class ApiStore:
    """Builds one :class:`EntitySlice` per registered model plus its mutations.

    Usage::

        store = ApiStore(registry)
        store.commit("ADD_WIDGET", {"id": 1, "name": "spanner"})
        store.getters["widgets"]().items[1]
    """

    def __init__(
        self,
        models: ModelRegistry,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._models = models
        self._clock = clock
        self._listeners: list[MutationListener] = []
        self.state: dict[str, EntitySlice] = {}
        self.getters: dict[str, Callable[[], EntitySlice]] = {}
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._mutations: dict[str, SliceMutations] = {}

        for key, model in models.items():
            self.state[model.plural] = model.create_slice()

            handlers: dict[str, Callable[..., Any]] = {
                ADD: partial(self._add, model),
                DELETE: partial(self._delete, model),
                CLEAR: partial(self._clear, model),
                QUEUE_ACTION: partial(self._queue_action, model),
                UNQUEUE_ACTION: partial(self._unqueue_action, model),
                RESET_QUEUE: partial(self._reset_queue, model),
            }
            for verb, handler in handlers.items():
                self._handlers[mutation_name(verb, model.name)] = handler

            self._mutations[key] = SliceMutations(
                add=partial(self.commit, mutation_name(ADD, model.name)),
                delete=partial(self.commit, mutation_name(DELETE, model.name)),
                clear=partial(self.commit, mutation_name(CLEAR, model.name)),
                queue_action=partial(self.commit, mutation_name(QUEUE_ACTION, model.name)),
                unqueue_action=partial(self.commit, mutation_name(UNQUEUE_ACTION, model.name)),
                reset_queue=partial(self.commit, mutation_name(RESET_QUEUE, model.name)),
            )
            self.getters[model.plural.lower()] = partial(self._slice, model)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    @property
    def models(self) -> ModelRegistry:
        return self._models

    @property
    def mutation_names(self) -> list[str]:
        return list(self._handlers)

    def commit(self, name: str, payload: Any = None, **options: Any) -> Any:
        """Run the mutation *name* and notify listeners."""
        handler = self._handlers.get(name)
        if handler is None:
            raise ApiStoreError(f"Unknown mutation {name!r}")
        result = handler(payload, **options)
        for listener in list(self._listeners):
            try:
                listener(name, payload)
            except Exception:
                _logger.exception("Mutation listener failed for %s", name)
        return result

    def subscribe(self, listener: MutationListener) -> Callable[[], None]:
        """Call *listener* with ``(name, payload)`` after every mutation.

        Returns a callable that removes the listener again.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def mutations_for(self, key: str) -> SliceMutations:
        if key not in self._mutations:
            raise UnknownModelError(key)
        return self._mutations[key]

    def slice(self, key: str) -> EntitySlice:
        return self._slice(self._models[key])

    def reset(self) -> None:
        """Reset every slice to its initial shape, committing ``CLEAR_<MODEL>`` for each."""
        for model in self._models.values():
            self.commit(mutation_name(CLEAR, model.name))

    def _slice(self, model: ModelDescriptor) -> EntitySlice:
        return self.state[model.plural]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _add(self, model: ModelDescriptor, item: Any, *, confirmed: bool = False, restore: bool = False) -> Any:
        """Merge one entity or a list of entities into the slice.

        New entities get an origin snapshot; existing ones only when
        *confirmed* (the data comes from the backend). With *restore* the
        live entity is replaced in place by *item* and origin snapshots
        are left untouched.
        """
        merged = self._patch_entity(model, item, confirmed=confirmed, restore=restore)
        self._slice(model).last_load = self._clock()
        return merged

    def _delete(self, model: ModelDescriptor, item: Any) -> None:
        store = self._slice(model)
        targets = item if isinstance(item, list) else [item]
        for target in targets:
            entity_id = _entity_id(target)
            if entity_id is None:
                _logger.debug("Ignoring delete of %s without id: %r", model.name, target)
                continue
            store.items.pop(entity_id, None)
            store.origin_items.pop(entity_id, None)

    def _clear(self, model: ModelDescriptor, _payload: Any = None) -> None:
        self._slice(model).reset(model.create_slice())

    def _queue_action(self, model: ModelDescriptor, queued: QueuedAction) -> None:
        store = self._slice(model)
        queue = store.action_queue

        if queued.action == QueueAction.POST:
            if queued.id is not None:
                incoming = self._normalize_references(model, queued.after_get, confirmed=False)
                store.items[queued.id] = _copy_fields(incoming)
            queue.post.append(queued.entry)
        elif queued.action == QueueAction.PATCH and queued.id is not None:
            queue.patch[queued.id] = queued.entry
        elif queued.action == QueueAction.DELETE and queued.id is not None:
            store.items.pop(queued.id, None)
            queue.delete[queued.id] = queued.entry
        else:
            _logger.warning("Action %r is not storable for model %s", queued.action, model.name)

    def _unqueue_action(self, model: ModelDescriptor, payload: QueuePayload) -> None:
        queue = self._slice(model).action_queue
        entity_id = payload.id

        if payload.action == QueueAction.POST:
            for index, entry in enumerate(queue.post):
                if (entity_id is not None and entry.id == entity_id) or entry.data == payload.data:
                    del queue.post[index]
                    return
        elif payload.action in (QueueAction.PATCH, QueueAction.DELETE):
            container = queue.patch if payload.action == QueueAction.PATCH else queue.delete
            if entity_id is not None:
                container.pop(entity_id, None)
        else:
            _logger.warning("Action %r is not queued for model %s", payload.action, model.name)

    def _reset_queue(self, model: ModelDescriptor, _payload: Any = None) -> None:
        self._slice(model).action_queue.reset()

    # ------------------------------------------------------------------
    # Merge helpers
    # ------------------------------------------------------------------

    def _patch_entity(self, model: ModelDescriptor, entity: Any, *, confirmed: bool, restore: bool = False) -> Any:
        if entity is None:
            return None
        if isinstance(entity, list):
            return [self._patch_entity(model, item, confirmed=confirmed, restore=restore) for item in entity]
        entity_id = _entity_id(entity)
        if not isinstance(entity, Mapping) or entity_id is None:
            return entity

        incoming = self._normalize_references(model, entity, confirmed=confirmed)
        store = self._slice(model)
        live = store.items.get(entity_id)

        if restore:
            values = _copy_fields(incoming)
            if live is None:
                store.items[entity_id] = values
                return values
            live.clear()
            live.update(values)
            return live

        if live is None:
            live = _copy_fields(incoming)
            store.items[entity_id] = live
            self._store_origin(model, live)
            return live

        for name, value in incoming.items():
            if callable(value):
                continue
            if name not in live or live[name] != value:
                live[name] = copy.deepcopy(value)
        if confirmed:
            self._store_origin(model, live)
        return live

    def _normalize_references(
        self,
        model: ModelDescriptor,
        entity: Mapping[str, Any],
        *,
        confirmed: bool,
    ) -> dict[str, Any]:
        incoming = dict(entity)
        for prop, ref_key in model.references.items():
            if prop in incoming:
                incoming[prop] = self._patch_reference(ref_key, prop, incoming[prop], confirmed=confirmed)
        return incoming

    def _patch_reference(self, ref_key: str, prop: str, value: Any, *, confirmed: bool) -> Any:
        ref_model = self._models.get(ref_key)
        if ref_model is None:
            _logger.warning("Patch error: could not find the model %s for the reference %s", ref_key, prop)
            return value
        merged = self._patch_entity(ref_model, value, confirmed=confirmed)
        self._slice(ref_model).last_load = self._clock()
        return _reference_ids(merged)

    def _store_origin(self, model: ModelDescriptor, live: dict[str, Any]) -> None:
        snapshot = copy.deepcopy(live)
        if model.before_queue is not None:
            snapshot = model.before_queue(snapshot)
        self._slice(model).origin_items[live["id"]] = snapshot

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    def resolve(self, key: str, entity: Mapping[str, Any] | EntityId) -> dict[str, Any] | None:
        """Return a copy of *entity* with reference ids replaced by the referenced entities.

        Resolution is recursive; an entity already being resolved higher
        up the chain is left as its id.
        """
        return self._resolve(self._models[key], entity, frozenset())

    def _resolve(
        self,
        model: ModelDescriptor,
        entity: Mapping[str, Any] | EntityId,
        seen: frozenset[tuple[str, EntityId]],
    ) -> dict[str, Any] | None:
        if not isinstance(entity, Mapping):
            found = self._slice(model).items.get(entity)
            if found is None:
                return None
            entity = found
        entity_id = _entity_id(entity)
        if entity_id is not None:
            seen = seen | {(model.plural, entity_id)}

        result = copy.deepcopy(dict(entity))
        for prop, ref_key in model.references.items():
            ref_model = self._models.get(ref_key)
            if ref_model is None or prop not in result:
                continue
            result[prop] = self._resolve_value(ref_model, result[prop], seen)
        return result

    def _resolve_value(
        self,
        model: ModelDescriptor,
        value: Any,
        seen: frozenset[tuple[str, EntityId]],
    ) -> Any:
        if isinstance(value, list):
            return [self._resolve_value(model, item, seen) for item in value]
        if not isinstance(value, (str, int)) or (model.plural, value) in seen:
            return value
        resolved = self._resolve(model, value, seen)
        return value if resolved is None else resolved

    def changed_fields(self, key: str, entity_id: EntityId) -> set[str]:
        """Field names whose live value differs from the origin snapshot."""
        model = self._models[key]
        store = self._slice(model)
        live = store.items.get(entity_id)
        origin = store.origin_items.get(entity_id)
        if live is None or origin is None:
            return set((live or origin or {}).keys())
        current = copy.deepcopy(live)
        if model.before_queue is not None:
            current = model.before_queue(current)
        names = set(current) | set(origin)
        return {name for name in names if current.get(name) != origin.get(name)}

