from __future__ import annotations

from typing import Any

import pytest

from pyapistore.modifiers import ModelModifiers, ModifierName, ModifierRegistry


@pytest.mark.asyncio
async def test_missing_hook_passes_data_through() -> None:
    registry = ModifierRegistry()
    data = {"id": 1}

    assert await registry.apply(ModifierName.AFTER_GET, "widget", data) is data
    assert await registry.apply(ModifierName.BEFORE_SAVE, "widget", None) is None


@pytest.mark.asyncio
async def test_sync_and_async_hooks_are_mapped_over_lists() -> None:
    async def _before_save(entity: dict[str, Any]) -> dict[str, Any]:
        entity.pop("cached", None)
        return entity

    registry = ModifierRegistry(
        {"widget": ModelModifiers(after_get=lambda e: {**e, "seen": True}, before_save=_before_save)}
    )

    loaded = await registry.apply(ModifierName.AFTER_GET, "widget", [{"id": 1}, {"id": 2}])
    saved = await registry.apply(ModifierName.BEFORE_SAVE, "widget", {"id": 1, "cached": "x"})

    assert loaded == [{"id": 1, "seen": True}, {"id": 2, "seen": True}]
    assert saved == {"id": 1}


@pytest.mark.asyncio
async def test_after_queue_receives_whole_list() -> None:
    calls: list[Any] = []
    registry = ModifierRegistry()
    registry.register("widget", after_queue=lambda entities: calls.append(entities) or entities[:1])

    result = await registry.apply(ModifierName.AFTER_QUEUE, "widget", [{"id": 1}, {"id": 2}])

    assert calls == [[{"id": 1}, {"id": 2}]]
    assert result == [{"id": 1}]


@pytest.mark.asyncio
async def test_hooks_get_a_copy_of_the_data() -> None:
    registry = ModifierRegistry()

    def _mutating(entity: dict[str, Any]) -> dict[str, Any]:
        entity["tags"].append("changed")
        return entity

    registry.register("widget", after_get=_mutating)
    original = {"id": 1, "tags": ["a"]}

    result = await registry.apply(ModifierName.AFTER_GET, "widget", original)

    assert original == {"id": 1, "tags": ["a"]}
    assert result == {"id": 1, "tags": ["a", "changed"]}
