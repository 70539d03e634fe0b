from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any

import pytest

from pyapistore import ApiStoreClient, ApiStoreConfig, ApiStoreError, ModelDescriptor, ModifierRegistry
from pyapistore.exceptions import ApiStoreTransportError, QueueFlushError


@dataclass
class FakeRestBackend:
    """In-memory REST backend: ``<collection>`` and ``<collection>/<id>`` routes."""

    tables: dict[str, dict[int, dict[str, Any]]] = field(default_factory=dict)
    calls: list[tuple[str, str]] = field(default_factory=list)
    offline: bool = False
    _ids: itertools.count = field(default_factory=lambda: itertools.count(100))

    def _wrap(self, data: Any) -> dict[str, Any]:
        return {"status": 200, "headers": {}, "data": {"result": data}}

    async def request(self, method: str, url: str, *, data: Any = None, **_overrides: Any) -> dict[str, Any]:
        method = method.upper()
        self.calls.append((method, url))
        if self.offline:
            raise ApiStoreTransportError(f"{method} {url} failed: offline", method=method, url=url)

        parts = url.strip("/").split("/")
        table = self.tables.setdefault(parts[0], {})

        if len(parts) == 1:
            if method == "GET":
                return self._wrap(list(table.values()))
            if method == "POST":
                entity = {**data, "id": next(self._ids)}
                table[entity["id"]] = entity
                return self._wrap(entity)
        elif parts[1] == "delete" and method == "PATCH":
            for item in data:
                table.pop(item["id"], None)
            return self._wrap(None)
        else:
            entity_id = int(parts[1])
            if method == "GET":
                return self._wrap(table[entity_id])
            if method == "PATCH":
                table[entity_id] = {**table[entity_id], **data}
                return self._wrap(table[entity_id])
            if method == "DELETE":
                table.pop(entity_id, None)
                return self._wrap(None)
        raise ApiStoreTransportError(f"HTTP 405 from {method} {url}", status_code=405, method=method, url=url)


def _models() -> dict[str, ModelDescriptor]:
    return {
        "todo": ModelDescriptor(name="todo", plural="todos", references={"owner": "person"}),
        "person": ModelDescriptor(name="person", plural="people"),
    }


def _backend() -> FakeRestBackend:
    return FakeRestBackend(
        tables={
            "todos": {
                1: {"id": 1, "title": "write docs", "done": False, "owner": {"id": 9, "name": "Ada"}},
                2: {"id": 2, "title": "ship it", "done": False, "owner": {"id": 9, "name": "Ada"}},
            }
        }
    )


@pytest.mark.asyncio
async def test_operations_require_an_open_client() -> None:
    client = ApiStoreClient(_models(), transport=_backend())

    with pytest.raises(ApiStoreError):
        await client.get({"type": "todo", "id": 1})

    # The store itself is readable without a session.
    assert client.slice("todo").items == {}


@pytest.mark.asyncio
async def test_offline_edits_flush_in_order_and_update_the_store() -> None:
    backend = _backend()
    mutations: list[str] = []
    config = ApiStoreConfig(data_path="result")

    async with ApiStoreClient(
        _models(),
        config,
        transport=backend,
        on_mutation=lambda name, _payload: mutations.append(name),
    ) as client:
        todos = await client.get({"type": "todo", "data": []})
        assert [todo["id"] for todo in todos] == [1, 2]
        assert client.slice("person").items[9] == {"id": 9, "name": "Ada"}
        assert client.store.resolve("todo", 1)["owner"] == {"id": 9, "name": "Ada"}

        backend.offline = True
        first = client.slice("todo").items[1]
        first["done"] = True
        await client.queue_action({"type": "todo", "action": "patch", "data": dict(first)})
        await client.queue_action({"type": "todo", "action": "delete", "data": {"id": 2}})
        await client.queue_action({"type": "todo", "action": "post", "data": {"id": "tmp-1", "title": "new"}})
        assert sorted(client.slice("todo").items, key=str) == [1, "tmp-1"]
        assert client.store.changed_fields("todo", 1) == {"done"}

        with pytest.raises(QueueFlushError):
            await client.sequential_process_action_queue("todo")
        assert client.slice("todo").has_action

        backend.offline = False
        await client.sequential_process_action_queue("todo")

    flushed = [call for call in backend.calls if call[0] != "GET"][-3:]
    assert flushed == [("POST", "todos"), ("PATCH", "todos/1"), ("DELETE", "todos/2")]
    todo_slice = client.slice("todo")
    assert not todo_slice.has_action
    assert sorted(todo_slice.items) == [1, 100]
    assert todo_slice.items[100]["title"] == "new"
    assert todo_slice.origin_items[1]["done"] is True
    assert backend.tables["todos"][1]["done"] is True
    assert 2 not in backend.tables["todos"]
    assert "CLEAR_TODO" in mutations
    assert "QUEUE_ACTION_TODO" in mutations
    assert mutations[-1] == "RESET_QUEUE_TODO"


@pytest.mark.asyncio
async def test_cancel_restores_the_last_confirmed_state() -> None:
    modifiers = ModifierRegistry()
    modifiers.register("todo", before_save=lambda todo: {k: v for k, v in todo.items() if k != "owner"})
    backend = _backend()

    config = ApiStoreConfig(data_path="result")

    async with ApiStoreClient(_models(), config, modifiers=modifiers, transport=backend) as client:
        todo = await client.get({"type": "todo", "id": 1})
        todo["title"] = "rewrite docs"
        queued = await client.queue_action({"type": "todo", "action": "patch", "data": dict(todo)})
        assert "owner" not in queued.entry.data

        await client.cancel_action_queue("todo")
        await client.process_action_queue("todo")

    assert client.slice("todo").items[1]["title"] == "write docs"
    assert [call[0] for call in backend.calls] == ["GET"]


@pytest.mark.asyncio
async def test_bulk_delete_and_reset() -> None:
    backend = _backend()

    async with ApiStoreClient(_models(), ApiStoreConfig(data_path="result"), transport=backend) as client:
        await client.get({"type": "todo", "data": []})
        await client.delete({"type": "todo", "data": [{"id": 1}, {"id": 2}]})
        assert client.slice("todo").items == {}
        assert backend.tables["todos"] == {}

        await client.add({"type": "person", "data": {"id": 1, "name": "Grace"}})
        await client.reset()

    assert client.slice("person").items == {}
    assert ("PATCH", "todos/delete") in backend.calls
