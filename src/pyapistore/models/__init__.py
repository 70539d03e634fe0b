"""Payload models shared by the store and the action engine."""

from pyapistore.models.payloads import (
    QUEUE_ACTIONS,
    EntityId,
    Payload,
    QueueAction,
    QueuedAction,
    QueueEntry,
    QueuePayload,
)

__all__ = [
    "QUEUE_ACTIONS",
    "EntityId",
    "Payload",
    "QueueAction",
    "QueueEntry",
    "QueuePayload",
    "QueuedAction",
]
