# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

"""
Transport client for the native authentication REST API.
"""

import json
from collections.abc import Mapping
from typing import Any

import httpx

from coreason_native_auth.exceptions import ProtocolError, TransportError
from coreason_native_auth.utils.logger import logger, redact

PREVIEW_LENGTH = 400
DEFAULT_MAX_RESPONSE_BYTES = 1_000_000

_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


class NativeAuthTransport:
    """
    Executes single form-encoded POSTs against the IdP and parses the responses.

    Stateless per call, so one instance can be shared by concurrent flows.

    Attributes:
        base_url (str): The IdP native-auth base URL, without trailing slash.
        client (httpx.AsyncClient): The async HTTP client. Its timeout applies to every call.
        max_response_bytes (int): Largest accepted response body.
    """

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.client = client
        self.max_response_bytes = max_response_bytes

    async def post(self, path: str, params: Mapping[str, Any] | None) -> dict[str, Any]:
        """
        POSTs `params` to `base_url + path`.

        Args:
            path: The endpoint path, e.g. "/oauth2/v2.0/initiate".
            params: Form parameters. Entries whose value is None are dropped.

        Returns:
            dict[str, Any]: The parsed JSON object, or an empty dict for an empty or non-JSON 2xx body.

        Raises:
            ProtocolError: If the IdP answers with a non-2xx status.
            TransportError: On network failure, timeout or an oversized body.
        """
        form = {key: value for key, value in (params or {}).items() if value is not None}
        url = f"{self.base_url}{path}"

        logger.info(f"POST {path} {redact(form)}")

        try:
            async with self.client.stream("POST", url, data=form, headers=_HEADERS) as response:
                status = response.status_code
                raw = await self._read_capped(response, path)
        except httpx.HTTPError as e:
            logger.error(f"Native auth request to {path} failed: {type(e).__name__}: {e}")
            raise TransportError(f"Native auth request failed: {e}", path=path) from e

        text = raw.decode("utf-8", errors="replace")
        data = self._parse(text, path, status)

        if not 200 <= status < 300:
            logger.warning(
                f"Native auth {path} rejected with status {status} "
                f"(error={(data or {}).get('error')}, suberror={(data or {}).get('suberror')})"
            )
            raise ProtocolError.from_response(status, data, text or None, path)

        result = data or {}
        logger.info(
            f"Success {path} status={status} has_continuation={bool(result.get('continuation_token'))} "
            f"challenge_type={result.get('challenge_type')}"
        )
        return result

    async def _read_capped(self, response: httpx.Response, path: str) -> bytes:
        """
        Reads the body, refusing anything larger than `max_response_bytes`.

        An oversized body is a transport failure whatever the HTTP status: the
        IdP status is not trusted once the body is refused, so the raised
        `TransportError` carries no status and classifies as a 500.
        """
        content_length = response.headers.get("Content-Length")
        if content_length:
            try:
                declared = int(content_length)
            except ValueError:
                declared = 0
            if declared > self.max_response_bytes:
                raise TransportError(
                    f"Response Content-Length {declared} exceeds limit of {self.max_response_bytes} bytes",
                    path=path,
                )

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > self.max_response_bytes:
                raise TransportError(
                    f"Response body exceeds limit of {self.max_response_bytes} bytes", path=path
                )
        return bytes(content)

    @staticmethod
    def _parse(text: str, path: str, status: int) -> dict[str, Any] | None:
        if not text:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning(f"Non-JSON response from {path} (status {status}): {e}; preview={text[:PREVIEW_LENGTH]!r}")
            return None
        if not isinstance(data, dict):
            logger.warning(f"Unexpected JSON {type(data).__name__} from {path} (status {status})")
            return None
        return data
