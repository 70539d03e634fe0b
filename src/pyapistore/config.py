"""Client configuration for pyapistore."""

from __future__ import annotations

import dataclasses
import os
from collections.abc import Mapping
from typing import Any

from pyapistore._constants import DEFAULT_DATA_PATH, DEFAULT_REDACT_FIELDS
from pyapistore.exceptions import ApiStoreConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class ApiStoreConfig:
    """Client configuration.

    Parameters
    ----------
    base_url : str
        Prefix for relative request URLs. Empty means URLs are used as-is.
    data_path : str or None
        Extra dotted path below ``data`` where response payloads live,
        e.g. ``"result"`` reads ``response["data"]["result"]``.
    request_timeout : float
        Total timeout for a single HTTP request in seconds.
    headers : Mapping[str, str]
        Static headers sent with every request.
    reset_queue_on_failure : bool
        Empty a model's action queue after a flush even when some queued
        calls failed. Off by default, so failed writes stay queued.
    api_trace_enabled : bool
        Log (redacted) request and response bodies at DEBUG level.
    redact_fields : frozenset[str]
        Entity field names whose values are masked in traced bodies.
    """

    base_url: str = ""
    data_path: str | None = None
    request_timeout: float = 30.0
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    reset_queue_on_failure: bool = False
    api_trace_enabled: bool = False
    redact_fields: frozenset[str] = DEFAULT_REDACT_FIELDS

    def __post_init__(self) -> None:
        if self.request_timeout <= 0:
            raise ApiStoreConfigError(f"request_timeout must be positive, got {self.request_timeout}")

    @property
    def response_data_path(self) -> str:
        """Dotted path to the payload inside a response envelope."""
        if self.data_path:
            return f"{DEFAULT_DATA_PATH}.{self.data_path}"
        return DEFAULT_DATA_PATH

    @classmethod
    def from_env(cls, **overrides: Any) -> ApiStoreConfig:
        """Create configuration from ``APISTORE_*`` environment variables.

        Explicit keyword arguments override environment values.
        """
        env = os.environ

        config_kwargs: dict[str, Any] = {}
        _ENV_CONFIG_MAP = {
            "APISTORE_BASE_URL": "base_url",
            "APISTORE_DATA_PATH": "data_path",
        }
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        timeout_env = env.get("APISTORE_REQUEST_TIMEOUT")
        if timeout_env is not None and "request_timeout" not in overrides:
            try:
                config_kwargs["request_timeout"] = float(timeout_env)
            except ValueError as exc:
                raise ApiStoreConfigError(f"APISTORE_REQUEST_TIMEOUT is not a number: {timeout_env!r}") from exc

        if "reset_queue_on_failure" not in overrides:
            config_kwargs["reset_queue_on_failure"] = _env_bool(
                env.get("APISTORE_RESET_QUEUE_ON_FAILURE"),
                False,
            )

        if "api_trace_enabled" not in overrides:
            config_kwargs["api_trace_enabled"] = _env_bool(
                env.get("APISTORE_API_TRACE_ENABLED"),
                False,
            )

        redact_env = env.get("APISTORE_REDACT_FIELDS")
        if redact_env is not None and "redact_fields" not in overrides:
            config_kwargs["redact_fields"] = frozenset(
                name.strip() for name in redact_env.split(",") if name.strip()
            )

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
