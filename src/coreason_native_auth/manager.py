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
NativeAuthManager component: the service facade in front of the native auth flows.

Every operation returns a `ServiceResponse` envelope. Failures are classified per flow
family; nothing is raised to the caller except cancellation.
"""

from collections.abc import Awaitable, Callable, Mapping
from contextlib import ExitStack
from datetime import UTC, datetime
from functools import partial
from typing import Any, TypeVar

import anyio
import httpx
from anyio.from_thread import BlockingPortal, start_blocking_portal
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from pydantic import BaseModel

from coreason_native_auth.backends import NativeAuthBackend, create_backend
from coreason_native_auth.classifier import classify
from coreason_native_auth.config import ConfigResolver, NativeAuthSettings
from coreason_native_auth.correlation import get_correlation_id, reset_correlation_id, set_correlation_id
from coreason_native_auth.exceptions import ConfigurationError, CoreasonNativeAuthError
from coreason_native_auth.models import ErrorFamily, GrantType, ServiceResponse, SignUpCompleted
from coreason_native_auth.transport import NativeAuthTransport
from coreason_native_auth.utils.logger import logger

T = TypeVar("T")


class NativeAuthManagerAsync:
    """
    Async implementation of the native auth service facade.
    Handles resources via async context manager.
    """

    def __init__(
        self,
        settings: NativeAuthSettings | None = None,
        client: httpx.AsyncClient | None = None,
        resolver: ConfigResolver | None = None,
        expose_diagnostics: bool = False,
    ) -> None:
        """
        Initialize the NativeAuthManagerAsync.

        Args:
            settings: Explicit settings. Read from the environment when omitted.
            client: External async client (optional). If not provided, one is created on first use
                with the configured timeout and closed with the manager.
            resolver: An explicit `ConfigResolver`, e.g. one shared between managers.
            expose_diagnostics: Include the classifier's diagnostic details in failure bodies.
        """
        self.resolver = resolver or ConfigResolver(settings)
        self.expose_diagnostics = expose_diagnostics
        self._client = client
        self._internal_client = client is None
        self._backend: NativeAuthBackend | None = None
        self._lock: anyio.Lock | None = None

    async def __aenter__(self) -> "NativeAuthManagerAsync":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Closes the HTTP client if this manager created it."""
        if self._internal_client and self._client is not None:
            await self._client.aclose()
            self._client = None
        self._backend = None

    async def _get_backend(self) -> NativeAuthBackend:
        """
        Builds the client, transport and backend once, on first use.

        Raises:
            ConfigurationError: If the configuration cannot be resolved.
        """
        if self._backend is not None:
            return self._backend

        if self._lock is None:
            self._lock = anyio.Lock()

        async with self._lock:
            if self._backend is None:
                config = self.resolver.resolve()
                if self._client is None:
                    self._client = httpx.AsyncClient(timeout=config.http_timeout)
                # Instrument the client for distributed tracing
                HTTPXClientInstrumentor().instrument_client(self._client)
                transport = NativeAuthTransport(config.base_url, self._client, config.max_response_bytes)
                self._backend = create_backend(config, transport)
            return self._backend

    async def _execute(
        self,
        family: ErrorFamily,
        operation: Callable[[NativeAuthBackend], Awaitable[BaseModel]],
        correlation_id: str | None,
        success_status: Callable[[BaseModel], int] = lambda _: 200,
    ) -> ServiceResponse:
        token = set_correlation_id(correlation_id)
        current_id = get_correlation_id()
        try:
            backend = await self._get_backend()
            result = await operation(backend)
        except Exception as e:
            classified = classify(e, family)
            details = classified.diagnostic_info if self.expose_diagnostics else None
            return ServiceResponse.failure(classified.http_status, classified.user_message, current_id, details)
        finally:
            reset_correlation_id(token)
        return ServiceResponse.success(success_status(result), result, current_id)

    async def sign_in(self, email: str, password: str, *, correlation_id: str | None = None) -> ServiceResponse:
        """
        Signs a user in with username and password.

        Returns:
            ServiceResponse: 200 with the `AuthResult`, or the classified failure.
        """
        return await self._execute(
            ErrorFamily.SIGN_IN,
            lambda backend: backend.password_sign_in(email, password),
            correlation_id,
        )

    async def sign_up_start(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ServiceResponse:
        """
        Starts sign-up and sends the verification code.

        Returns:
            ServiceResponse: 200 with the `CodeSent` state, or the classified failure.
        """
        return await self._execute(
            ErrorFamily.SIGN_UP,
            lambda backend: backend.sign_up_start(email, password, first_name, last_name, extra_attributes),
            correlation_id,
        )

    async def sign_up_challenge(self, continuation_token: str, *, correlation_id: str | None = None) -> ServiceResponse:
        """Re-sends the sign-up verification code."""
        return await self._execute(
            ErrorFamily.SIGN_UP,
            lambda backend: backend.sign_up_challenge(continuation_token),
            correlation_id,
        )

    async def sign_up_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        password: str | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ServiceResponse:
        """
        Continues a pending sign-up.

        Returns:
            ServiceResponse: 201 once the account is created, 200 for intermediate states,
                or the classified failure.
        """
        return await self._execute(
            ErrorFamily.SIGN_UP,
            lambda backend: backend.sign_up_continue(continuation_token, grant_type, code, password),
            correlation_id,
            success_status=lambda result: 201 if isinstance(result, SignUpCompleted) else 200,
        )

    async def password_reset_start(self, username: str, *, correlation_id: str | None = None) -> ServiceResponse:
        """Starts a password reset and sends the verification code."""
        return await self._execute(
            ErrorFamily.PASSWORD_RESET,
            lambda backend: backend.password_reset_start(username),
            correlation_id,
        )

    async def password_reset_challenge(
        self, continuation_token: str, *, correlation_id: str | None = None
    ) -> ServiceResponse:
        """Re-sends the password reset verification code."""
        return await self._execute(
            ErrorFamily.PASSWORD_RESET,
            lambda backend: backend.password_reset_challenge(continuation_token),
            correlation_id,
        )

    async def password_reset_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        new_password: str | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ServiceResponse:
        """Verifies the reset code or submits the new password."""
        return await self._execute(
            ErrorFamily.PASSWORD_RESET,
            lambda backend: backend.password_reset_continue(continuation_token, grant_type, code, new_password),
            correlation_id,
        )

    async def health(self, *, correlation_id: str | None = None) -> ServiceResponse:
        """
        Reports whether the service is configured.

        Returns:
            ServiceResponse: 200 with the resolved client id, base URL and scopes,
                or 500 with the configuration error.
        """
        token = set_correlation_id(correlation_id)
        current_id = get_correlation_id()
        try:
            config = self.resolver.resolve()
        except ConfigurationError as e:
            logger.error(f"Native auth health check failed: {e}")
            return ServiceResponse.failure(500, "Native auth service is misconfigured", current_id, {"message": str(e)})
        finally:
            reset_correlation_id(token)

        return ServiceResponse.success(
            200,
            {
                "status": "healthy",
                "message": "Native auth service is running",
                "clientId": config.client_id,
                "baseUrl": config.base_url,
                "scopes": config.scopes,
                "timestamp": datetime.now(UTC).isoformat(),
            },
            current_id,
        )


class NativeAuthManager:
    """
    Sync facade for NativeAuthManagerAsync.

    Runs the async manager on an anyio blocking portal for the lifetime of the context manager.
    """

    def __init__(
        self,
        settings: NativeAuthSettings | None = None,
        client: httpx.AsyncClient | None = None,
        resolver: ConfigResolver | None = None,
        expose_diagnostics: bool = False,
    ) -> None:
        self._async = NativeAuthManagerAsync(
            settings=settings, client=client, resolver=resolver, expose_diagnostics=expose_diagnostics
        )
        self._portal: BlockingPortal | None = None
        self._stack: ExitStack | None = None

    def __enter__(self) -> "NativeAuthManager":
        stack = ExitStack()
        portal = stack.enter_context(start_blocking_portal())
        try:
            portal.call(self._async.__aenter__)
        except BaseException:
            stack.close()
            raise
        self._stack = stack
        self._portal = portal
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._portal is None or self._stack is None:
            return
        try:
            self._portal.call(self._async.__aexit__, exc_type, exc_val, exc_tb)
        finally:
            self._stack.close()
            self._portal = None
            self._stack = None

    def _call(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        if self._portal is None:
            raise CoreasonNativeAuthError("NativeAuthManager must be used as a context manager")
        return self._portal.call(partial(func, *args, **kwargs))

    def sign_in(self, email: str, password: str, *, correlation_id: str | None = None) -> ServiceResponse:
        return self._call(self._async.sign_in, email, password, correlation_id=correlation_id)

    def sign_up_start(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ServiceResponse:
        return self._call(
            self._async.sign_up_start,
            email,
            password,
            first_name,
            last_name,
            extra_attributes,
            correlation_id=correlation_id,
        )

    def sign_up_challenge(self, continuation_token: str, *, correlation_id: str | None = None) -> ServiceResponse:
        return self._call(self._async.sign_up_challenge, continuation_token, correlation_id=correlation_id)

    def sign_up_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        password: str | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ServiceResponse:
        return self._call(
            self._async.sign_up_continue,
            continuation_token,
            grant_type,
            code,
            password,
            correlation_id=correlation_id,
        )

    def password_reset_start(self, username: str, *, correlation_id: str | None = None) -> ServiceResponse:
        return self._call(self._async.password_reset_start, username, correlation_id=correlation_id)

    def password_reset_challenge(self, continuation_token: str, *, correlation_id: str | None = None) -> ServiceResponse:
        return self._call(self._async.password_reset_challenge, continuation_token, correlation_id=correlation_id)

    def password_reset_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        new_password: str | None = None,
        *,
        correlation_id: str | None = None,
    ) -> ServiceResponse:
        return self._call(
            self._async.password_reset_continue,
            continuation_token,
            grant_type,
            code,
            new_password,
            correlation_id=correlation_id,
        )

    def health(self, *, correlation_id: str | None = None) -> ServiceResponse:
        return self._call(self._async.health, correlation_id=correlation_id)
