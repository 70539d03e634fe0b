"""Static model registry.

A :class:`ModelDescriptor` describes one entity type: its singular name
(used for mutation names), its plural (the slice key), the shape of an
empty slice, which properties hold references to other models, and an
optional transform applied to origin snapshots.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from pyapistore.exceptions import ApiStoreConfigError, UnknownModelError
from pyapistore.state.slice import EntitySlice


class ModelDescriptor(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    name: str
    """Singular name, e.g. ``"widget"``."""
    plural: str
    """Slice key, e.g. ``"widgets"``."""
    slice_factory: Callable[[], EntitySlice] = Field(default=EntitySlice, alias="type")
    """Builds the initial (empty) slice."""
    references: dict[str, str] = Field(default_factory=dict)
    """Own property name → key of the model whose entities populate it."""
    before_queue: Callable[[dict[str, Any]], dict[str, Any]] | None = None
    """Synchronous transform applied to origin snapshots (e.g. strip derived fields)."""

    @field_validator("name", "plural")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must be non-empty")
        return value

    def create_slice(self) -> EntitySlice:
        return self.slice_factory()


class ModelRegistry(Mapping[str, ModelDescriptor]):
    """Immutable mapping of model key → :class:`ModelDescriptor`."""

    def __init__(self, models: Mapping[str, ModelDescriptor | Mapping[str, Any]]) -> None:
        resolved: dict[str, ModelDescriptor] = {}
        plurals: dict[str, str] = {}
        names: dict[str, str] = {}
        for key, value in models.items():
            descriptor = value if isinstance(value, ModelDescriptor) else ModelDescriptor.model_validate(value)
            plural = descriptor.plural.lower()
            if plural in plurals:
                raise ApiStoreConfigError(f"Models {plurals[plural]!r} and {key!r} share plural {descriptor.plural!r}")
            name = descriptor.name.upper()
            if name in names:
                raise ApiStoreConfigError(f"Models {names[name]!r} and {key!r} share name {descriptor.name!r}")
            plurals[plural] = key
            names[name] = key
            resolved[key] = descriptor
        self._models = resolved

    def __getitem__(self, key: str) -> ModelDescriptor:
        try:
            return self._models[key]
        except KeyError:
            raise UnknownModelError(key) from None

    def __contains__(self, key: object) -> bool:
        return key in self._models

    def get(self, key: str, default: ModelDescriptor | None = None) -> ModelDescriptor | None:  # type: ignore[override]
        return self._models.get(key, default)

    def __iter__(self) -> Iterator[str]:
        return iter(self._models)

    def __len__(self) -> int:
        return len(self._models)

    def __repr__(self) -> str:
        return f"ModelRegistry({list(self._models)!r})"
