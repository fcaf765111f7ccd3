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
Custom exceptions for the coreason-native-auth package.
"""

from typing import Any


class CoreasonNativeAuthError(Exception):
    """Base exception for all coreason-native-auth errors."""


class ConfigurationError(CoreasonNativeAuthError):
    """
    Raised when the client identifier or the IdP base URL cannot be derived.
    Fatal and never retried; surfaced to callers as a 500.
    """


class ProtocolError(CoreasonNativeAuthError):
    """
    Raised when the IdP rejects a step or a step's response is structurally invalid.

    This is the only error raised by the flow orchestrator. Flow-specific meaning
    is added by the classifier, not here.

    Attributes:
        status (int | None): HTTP status of the failed call, or the status assigned to a local failure.
        code (str | None): The IdP `error` string (or a local code such as "redirect").
        sub_error (str | None): The finer-grained IdP `suberror` string.
        data (dict[str, Any] | None): The parsed diagnostic payload.
        raw_response (str | None): The raw response text, if any.
        path (str | None): The request path that produced the error.
    """

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        sub_error: str | None = None,
        data: dict[str, Any] | None = None,
        raw_response: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code
        self.sub_error = sub_error
        self.data = data
        self.raw_response = raw_response
        self.path = path

    @classmethod
    def from_response(
        cls, status: int, data: dict[str, Any] | None, raw_response: str | None, path: str
    ) -> "ProtocolError":
        """Builds the error for a non-2xx IdP response."""
        body = data or {}
        return cls(
            f"Native auth request failed with status {status}",
            status=status,
            code=_string_field(body.get("error")),
            sub_error=_string_field(body.get("suberror")) or _string_field(body.get("sub_error")),
            data=data,
            raw_response=raw_response,
            path=path,
        )


class TransportError(ProtocolError):
    """Raised on network failures or unreadable responses. Always carries no status."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message, status=None, path=path)


class InvalidIdTokenError(CoreasonNativeAuthError):
    """Raised when an ID token cannot be decoded into a claims object."""


def _string_field(value: Any) -> str | None:
    # Gateways sometimes send nested objects or numbers where the IdP sends strings.
    if isinstance(value, str) and value:
        return value
    return None
