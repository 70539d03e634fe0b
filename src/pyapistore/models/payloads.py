"""Pydantic payload models for store operations.

These models provide a consistent "validate → normalize → execute" flow.
They are used internally by :class:`pyapistore.actions.ApiActions`.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

EntityId = str | int


class QueueAction(StrEnum):
    POST = "post"
    PATCH = "patch"
    DELETE = "delete"


QUEUE_ACTIONS: frozenset[str] = frozenset(action.value for action in QueueAction)


class _PayloadBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    type: str
    """Model key in the registry (e.g. ``"widget"``)."""
    url: str | None = None
    """Collection URL. Defaults to the model's lowercase plural."""

    @field_validator("type")
    @classmethod
    def _type_non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("type must be non-empty")
        return value

    @field_validator("url")
    @classmethod
    def _strip_url(cls, value: str | None) -> str | None:
        return value.strip() if value is not None else None


class Payload(_PayloadBase):
    """Arguments of a direct (non-queued) store operation."""

    id: EntityId | None = None
    data: Any = None
    force_fetch: bool = False
    clear: bool | None = None
    """Clear the slice before merging. ``None`` means "only when fetching all"."""
    request_options: dict[str, Any] = Field(default_factory=dict)
    """Per-call overrides merged over the transport request."""

    @property
    def is_all(self) -> bool:
        """Whether the payload addresses a whole collection rather than one entity."""
        return self.id is None and isinstance(self.data, list)


class QueueEntry(_PayloadBase):
    """A pending write as it sits in an action queue.

    ``data`` has already been through the model's ``before_save`` modifier.
    """

    data: dict[str, Any] = Field(default_factory=dict)

    @property
    def id(self) -> EntityId | None:
        value = self.data.get("id")
        return value if isinstance(value, (str, int)) else None


class QueuePayload(QueueEntry):
    """A local write to queue, unqueue or process immediately.

    ``action`` is kept as a plain string so unknown actions reach the
    store, which logs and drops them.
    """

    action: str

    def entry(self) -> QueueEntry:
        return QueueEntry(type=self.type, url=self.url, data=self.data)


class QueuedAction(BaseModel):
    """A queue payload with both modifier forms resolved.

    Built by the action engine so that the ``QUEUE_ACTION`` mutation
    never has to run (async) modifiers itself.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    action: str
    id: EntityId | None = None
    after_get: dict[str, Any] = Field(default_factory=dict)
    """Entity as displayed optimistically."""
    entry: QueueEntry
    """Entry as it will be flushed."""
