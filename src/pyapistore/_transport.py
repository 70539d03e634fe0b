"""HTTP transport returning response envelopes."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Protocol

import aiohttp

from pyapistore._constants import DEFAULT_DATA_PATH, USER_AGENT
from pyapistore._redact import redact_body
from pyapistore.config import ApiStoreConfig
from pyapistore.exceptions import ApiStoreTransportError

_logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Structural transport interface used by the action engine.

    ``request`` returns an envelope ``{"status", "headers", "data"}``;
    the action engine reads the payload at a dotted path inside it.
    Having a protocol here makes it easy to pass test doubles.
    """

    async def request(self, method: str, url: str, *, data: Any = None, **overrides: Any) -> dict[str, Any]:
        ...


def extract_data(response: Any, path: str = DEFAULT_DATA_PATH) -> Any:
    """Return the value at dotted *path* inside *response*, or ``None``."""
    current = response
    for part in path.split("."):
        if isinstance(current, Mapping):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return None
    return current


class HttpTransport:
    """JSON-over-HTTP transport built on an :class:`aiohttp.ClientSession`."""

    def __init__(self, config: ApiStoreConfig, http_session: aiohttp.ClientSession) -> None:
        self._config = config
        self._http = http_session

    def _absolute_url(self, url: str) -> str:
        if "://" in url or not self._config.base_url:
            return url
        return f"{self._config.base_url.rstrip('/')}/{url.lstrip('/')}"

    async def request(self, method: str, url: str, *, data: Any = None, **overrides: Any) -> dict[str, Any]:
        """Send *data* as JSON and return the decoded response envelope.

        *overrides* are passed to :meth:`aiohttp.ClientSession.request`
        and win over the defaults built here (headers are merged).
        """
        method = method.upper()
        full_url = self._absolute_url(url)

        headers: dict[str, str] = {
            "accept": "application/json",
            "user-agent": USER_AGENT,
            **self._config.headers,
        }
        extra_headers = overrides.pop("headers", None)
        if extra_headers:
            headers.update(extra_headers)

        request_kwargs: dict[str, Any] = {
            "headers": headers,
            "timeout": aiohttp.ClientTimeout(total=self._config.request_timeout),
        }
        if data is not None:
            request_kwargs["json"] = data
        request_kwargs.update(overrides)

        _logger.debug("%s %s", method, full_url)
        if self._config.api_trace_enabled:
            _logger.debug("%s %s request body: %s", method, full_url, redact_body(data, self._config.redact_fields))

        try:
            async with self._http.request(method, full_url, **request_kwargs) as resp:
                text = await resp.text()
                status = resp.status
                response_headers = dict(resp.headers)
        except aiohttp.ClientError as exc:
            raise ApiStoreTransportError(
                f"{method} {full_url} failed: {exc}",
                method=method,
                url=full_url,
            ) from exc
        except TimeoutError as exc:
            raise ApiStoreTransportError(
                f"{method} {full_url} timed out after {self._config.request_timeout}s",
                method=method,
                url=full_url,
            ) from exc

        if not 200 <= status < 300:
            raise ApiStoreTransportError(
                f"HTTP {status} from {method} {full_url}: {text[:200]}",
                status_code=status,
                method=method,
                url=full_url,
            )

        body: Any = None
        if text.strip():
            try:
                body = json.loads(text)
            except json.JSONDecodeError as exc:
                raise ApiStoreTransportError(
                    f"Invalid JSON from {method} {full_url}: {text[:200]}",
                    status_code=status,
                    method=method,
                    url=full_url,
                ) from exc

        if self._config.api_trace_enabled:
            traced = redact_body(body, self._config.redact_fields)
            _logger.debug("%s %s response %s: %s", method, full_url, status, traced)

        return {"status": status, "headers": response_headers, "data": body}
