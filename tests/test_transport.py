from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer as AiohttpTestServer

from pyapistore._transport import HttpTransport, extract_data
from pyapistore.client import ApiStoreClient
from pyapistore.config import ApiStoreConfig
from pyapistore.exceptions import ApiStoreTransportError
from pyapistore.registry import ModelDescriptor


async def _get_widget(request: web.Request) -> web.Response:
    return web.json_response({"id": int(request.match_info["id"]), "agent": request.headers.get("user-agent")})


async def _post_widget(request: web.Request) -> web.Response:
    body = await request.json()
    return web.json_response({**body, "id": 1, "auth": request.headers.get("authorization")}, status=201)


async def _delete_widget(_request: web.Request) -> web.Response:
    return web.Response(status=204)


async def _broken(_request: web.Request) -> web.Response:
    return web.Response(text="not json", content_type="text/plain")


async def _missing(_request: web.Request) -> web.Response:
    return web.json_response({"error": "nope"}, status=404)


@pytest_asyncio.fixture
async def server() -> AsyncIterator[AiohttpTestServer]:
    app = web.Application()
    app.router.add_get("/widgets/{id}", _get_widget)
    app.router.add_post("/widgets", _post_widget)
    app.router.add_delete("/widgets/{id}", _delete_widget)
    app.router.add_get("/broken", _broken)
    app.router.add_get("/missing", _missing)
    test_server = AiohttpTestServer(app)
    await test_server.start_server()
    try:
        yield test_server
    finally:
        await test_server.close()


def _base_url(server: AiohttpTestServer) -> str:
    return str(server.make_url("/"))


@pytest.mark.asyncio
async def test_get_returns_envelope_with_json_data(server: AiohttpTestServer) -> None:
    config = ApiStoreConfig(base_url=_base_url(server))
    async with aiohttp.ClientSession() as session:
        response = await HttpTransport(config, session).request("get", "widgets/3")

    assert response["status"] == 200
    assert response["data"] == {"id": 3, "agent": "pyapistore"}


@pytest.mark.asyncio
async def test_post_sends_json_and_merges_headers(server: AiohttpTestServer) -> None:
    config = ApiStoreConfig(base_url=_base_url(server), headers={"authorization": "Bearer static"})
    async with aiohttp.ClientSession() as session:
        transport = HttpTransport(config, session)
        response = await transport.request("post", "/widgets", data={"name": "spanner"})
        overridden = await transport.request(
            "post",
            "/widgets",
            data={"name": "spanner"},
            headers={"authorization": "Bearer call"},
        )

    assert response["status"] == 201
    assert response["data"] == {"name": "spanner", "id": 1, "auth": "Bearer static"}
    assert overridden["data"]["auth"] == "Bearer call"


@pytest.mark.asyncio
async def test_empty_body_yields_none(server: AiohttpTestServer) -> None:
    async with aiohttp.ClientSession() as session:
        response = await HttpTransport(ApiStoreConfig(), session).request(
            "delete",
            str(server.make_url("/widgets/3")),
        )

    assert response["status"] == 204
    assert response["data"] is None


@pytest.mark.asyncio
async def test_non_2xx_raises_transport_error(server: AiohttpTestServer) -> None:
    config = ApiStoreConfig(base_url=_base_url(server))
    async with aiohttp.ClientSession() as session:
        with pytest.raises(ApiStoreTransportError) as excinfo:
            await HttpTransport(config, session).request("get", "missing")

    assert excinfo.value.status_code == 404
    assert excinfo.value.method == "GET"
    assert excinfo.value.url.endswith("/missing")


@pytest.mark.asyncio
async def test_invalid_json_raises_transport_error(server: AiohttpTestServer) -> None:
    config = ApiStoreConfig(base_url=_base_url(server))
    async with aiohttp.ClientSession() as session:
        with pytest.raises(ApiStoreTransportError, match="Invalid JSON"):
            await HttpTransport(config, session).request("get", "broken")


@pytest.mark.asyncio
async def test_connection_error_raises_transport_error() -> None:
    config = ApiStoreConfig(base_url="http://127.0.0.1:9", request_timeout=2.0)
    async with aiohttp.ClientSession() as session:
        with pytest.raises(ApiStoreTransportError) as excinfo:
            await HttpTransport(config, session).request("get", "widgets")

    assert excinfo.value.status_code is None


def test_extract_data_follows_dotted_path() -> None:
    response = {"data": {"result": {"items": [{"id": 1}, {"id": 2}]}}}

    assert extract_data(response) == {"result": {"items": [{"id": 1}, {"id": 2}]}}
    assert extract_data(response, "data.result.items.1") == {"id": 2}
    assert extract_data(response, "data.missing.items") is None
    assert extract_data(response, "data.result.items.5") is None


@pytest.mark.asyncio
async def test_client_owns_its_http_session(server: AiohttpTestServer) -> None:
    models = {"widget": ModelDescriptor(name="widget", plural="widgets")}
    client = ApiStoreClient(models, ApiStoreConfig(base_url=_base_url(server)))

    async with client:
        widget = await client.get({"type": "widget", "id": 3})

    assert widget == {"id": 3, "agent": "pyapistore"}
    assert client.slice("widget").items[3] is widget


@pytest.mark.asyncio
async def test_api_trace_logs_redacted_bodies(server: AiohttpTestServer, caplog: pytest.LogCaptureFixture) -> None:
    config = ApiStoreConfig(base_url=_base_url(server), api_trace_enabled=True, redact_fields=frozenset({"name"}))
    async with aiohttp.ClientSession() as session:
        with caplog.at_level(logging.DEBUG, logger="pyapistore._transport"):
            await HttpTransport(config, session).request("post", "/widgets", data={"name": "spanner"})

    assert "spanner" not in caplog.text
    assert "'name': '<redacted>'" in caplog.text
