"""Per-model entity slice."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from pyapistore.models.payloads import EntityId, QueueAction, QueueEntry


@dataclass
class ActionQueue:
    """Pending local writes of one model.

    ``post`` keeps enqueue order; ``patch`` and ``delete`` keep only the
    latest entry per entity id.
    """

    post: list[QueueEntry] = field(default_factory=list)
    patch: dict[EntityId, QueueEntry] = field(default_factory=dict)
    delete: dict[EntityId, QueueEntry] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.post or self.patch or self.delete)

    def entries(self) -> Iterator[tuple[QueueAction, QueueEntry]]:
        """Yield every pending entry in flush order (post, patch, delete)."""
        for entry in self.post:
            yield QueueAction.POST, entry
        for entry in self.patch.values():
            yield QueueAction.PATCH, entry
        for entry in self.delete.values():
            yield QueueAction.DELETE, entry

    def queued_ids(self) -> list[EntityId]:
        """Ids touched by the queue, without duplicates (delete, post, patch)."""
        ids: list[EntityId] = list(self.delete)
        ids.extend(entry.id for entry in self.post if entry.id is not None)
        ids.extend(self.patch)
        return list(dict.fromkeys(ids))

    def reset(self) -> None:
        self.post = []
        self.patch = {}
        self.delete = {}


@dataclass
class EntitySlice:
    """State of one model: live entities, origin snapshots and the action queue."""

    items: dict[EntityId, dict[str, Any]] = field(default_factory=dict)
    origin_items: dict[EntityId, dict[str, Any]] = field(default_factory=dict)
    action_queue: ActionQueue = field(default_factory=ActionQueue)
    last_load: datetime | None = None

    @property
    def has_action(self) -> bool:
        return bool(self.action_queue)

    def reset(self, initial: EntitySlice | None = None) -> None:
        """Reset in place so that existing references to the slice stay valid."""
        fresh = initial if initial is not None else type(self)()
        self.items = fresh.items
        self.origin_items = fresh.origin_items
        self.action_queue = fresh.action_queue
        self.last_load = fresh.last_load
