"""Per-model modifier hooks.

Modifiers are optional transforms looked up by model key and applied at
fixed lifecycle points:

* ``after_get``: on every entity coming from the backend (or queued
  locally) before it is merged into the store;
* ``before_save``: on outgoing data before it is sent or queued;
* ``after_queue``: on the list of origin snapshots restored when a
  queue is cancelled.

Hooks may be plain functions or coroutines. They always receive a deep
copy so that they cannot alias objects owned by the store.
"""

from __future__ import annotations

import copy
import dataclasses
import inspect
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum
from typing import Any

Modifier = Callable[[Any], Any | Awaitable[Any]]


class ModifierName(StrEnum):
    AFTER_GET = "after_get"
    BEFORE_SAVE = "before_save"
    AFTER_QUEUE = "after_queue"


@dataclasses.dataclass(frozen=True)
class ModelModifiers:
    """Hooks registered for one model."""

    after_get: Modifier | None = None
    before_save: Modifier | None = None
    after_queue: Modifier | None = None


class ModifierRegistry:
    """Lookup of :class:`ModelModifiers` by model key."""

    def __init__(self, modifiers: Mapping[str, ModelModifiers] | None = None) -> None:
        self._modifiers: dict[str, ModelModifiers] = dict(modifiers or {})

    def register(
        self,
        model: str,
        *,
        after_get: Modifier | None = None,
        before_save: Modifier | None = None,
        after_queue: Modifier | None = None,
    ) -> None:
        self._modifiers[model] = ModelModifiers(
            after_get=after_get,
            before_save=before_save,
            after_queue=after_queue,
        )

    def get(self, name: ModifierName, model: str) -> Modifier | None:
        hooks = self._modifiers.get(model)
        if hooks is None:
            return None
        hook: Modifier | None = getattr(hooks, name.value)
        return hook

    async def apply(self, name: ModifierName, model: str, data: Any) -> Any:
        """Run the hook *name* of *model* over *data*.

        ``after_get`` and ``before_save`` are entity-level and are mapped
        over lists; ``after_queue`` receives the whole list.
        """
        hook = self.get(name, model)
        if hook is None or data is None:
            return data
        if name is not ModifierName.AFTER_QUEUE and isinstance(data, list):
            return [await _call(hook, item) for item in data]
        return await _call(hook, data)


async def _call(hook: Modifier, value: Any) -> Any:
    result = hook(copy.deepcopy(value))
    if inspect.isawaitable(result):
        result = await result
    return result
