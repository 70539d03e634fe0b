"""Custom exception hierarchy for pyapistore."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pyapistore.models.payloads import QueueEntry


class ApiStoreError(Exception):
    """Base exception for all pyapistore errors."""


class ApiStoreConfigError(ApiStoreError):
    """Invalid configuration or model registry."""


class UnknownModelError(ApiStoreConfigError):
    """A payload referenced a model key that is not registered."""

    def __init__(self, model: str) -> None:
        self.model = model
        super().__init__(f"Unknown model {model!r}")


class ApiStoreTransportError(ApiStoreError):
    """HTTP-level failure (network, non-2xx, invalid JSON)."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        method: str = "",
        url: str = "",
    ) -> None:
        self.status_code = status_code
        self.method = method
        self.url = url
        super().__init__(message)


class ApiStoreQueueError(ApiStoreError):
    """A queue payload cannot be stored (e.g. patch without ``data.id``)."""


class QueueFlushError(ApiStoreError):
    """One or more queued actions failed while flushing a model's queue.

    Entries listed in ``failures`` are still queued; every other entry
    that was part of the flush has been unqueued.
    """

    def __init__(
        self,
        model: str,
        failures: list[tuple[QueueEntry, BaseException]],
    ) -> None:
        self.model = model
        self.failures = failures
        first = failures[0][1] if failures else None
        super().__init__(f"{len(failures)} queued action(s) failed for model {model!r}: {first}")
