# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

from collections.abc import AsyncGenerator, Callable, Generator
from typing import Any
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio
from authlib.common.encoding import json_dumps, to_bytes, to_unicode, urlsafe_b64encode

from coreason_native_auth.config import NativeAuthSettings, ResolvedConfig, build_resolved_config
from coreason_native_auth.orchestrator import RestNativeAuthBackend
from coreason_native_auth.transport import NativeAuthTransport
from coreason_native_auth.utils.logger import logger

BASE_URL = "https://idp.example.com/tenant.onmicrosoft.com"
BASE_PATH = "/tenant.onmicrosoft.com"


class FakeIdP:
    """
    Scripted IdP for httpx.MockTransport.

    Responses are queued per path and served in order; the last one repeats.
    Every request is recorded so tests can assert on the exact call sequence.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[dict[str, Any]]] = {}
        self.requests: list[httpx.Request] = []

    def add(
        self,
        path: str,
        json: Any = None,
        status_code: int = 200,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        self.routes.setdefault(path, []).append(
            {"status_code": status_code, "json": json, "content": content, "headers": headers}
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path.removeprefix(BASE_PATH))
        if not queue:
            return httpx.Response(404, json={"error": "not_found"})
        route = queue.pop(0) if len(queue) > 1 else queue[0]
        if route["content"] is not None:
            return httpx.Response(route["status_code"], content=route["content"], headers=route["headers"])
        return httpx.Response(route["status_code"], json=route["json"], headers=route["headers"])

    @property
    def paths(self) -> list[str]:
        return [request.url.path.removeprefix(BASE_PATH) for request in self.requests]

    def form(self, index: int) -> dict[str, str]:
        return dict(parse_qsl(self.requests[index].content.decode()))


@pytest.fixture
def idp() -> FakeIdP:
    return FakeIdP()


@pytest_asyncio.fixture
async def http_client(idp: FakeIdP) -> AsyncGenerator[httpx.AsyncClient, None]:
    async with httpx.AsyncClient(transport=httpx.MockTransport(idp.handler)) as client:
        yield client


@pytest.fixture
def settings() -> NativeAuthSettings:
    return NativeAuthSettings(client_id="client-123", base_url=BASE_URL)


@pytest.fixture
def resolved_config(settings: NativeAuthSettings) -> ResolvedConfig:
    return build_resolved_config(settings)


@pytest.fixture
def transport(http_client: httpx.AsyncClient) -> NativeAuthTransport:
    return NativeAuthTransport(BASE_URL, http_client)


@pytest.fixture
def backend(resolved_config: ResolvedConfig, transport: NativeAuthTransport) -> RestNativeAuthBackend:
    return RestNativeAuthBackend(resolved_config, transport)


@pytest.fixture
def make_id_token() -> Callable[[dict[str, Any]], str]:
    """Builds an unsigned compact JWT carrying `claims`."""

    def _make(claims: dict[str, Any]) -> str:
        header = to_unicode(urlsafe_b64encode(to_bytes(json_dumps({"alg": "none", "typ": "JWT"}))))
        payload = to_unicode(urlsafe_b64encode(to_bytes(json_dumps(claims))))
        return f"{header}.{payload}.signature"

    return _make


@pytest.fixture
def log_messages() -> Generator[list[str], None, None]:
    """Captures every log line (level and message) emitted during the test."""
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), format="{level} {message}", level="DEBUG")
    yield messages
    logger.remove(handler_id)
