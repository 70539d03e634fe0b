"""Masking of entity bodies for API traces.

Bodies are decoded JSON: objects, arrays and scalars. Field names are
compared without case, ``_`` or ``-``, so ``access_token`` and
``accessToken`` both match ``accesstoken``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from pyapistore._constants import DEFAULT_REDACT_FIELDS

REDACTED = "<redacted>"


def normalize_field(name: str) -> str:
    return name.lower().replace("_", "").replace("-", "")


def redact_body(body: Any, fields: Iterable[str] = DEFAULT_REDACT_FIELDS) -> Any:
    """Return a copy of *body* with the values of *fields* masked at any depth."""
    return _mask(body, frozenset(normalize_field(name) for name in fields))


def _mask(value: Any, masked: frozenset[str]) -> Any:
    if isinstance(value, Mapping):
        return {
            key: REDACTED if normalize_field(str(key)) in masked else _mask(item, masked)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_mask(item, masked) for item in value]
    return value
