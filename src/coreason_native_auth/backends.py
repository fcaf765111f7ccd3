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
Backend protocol and registry.

A backend implements the seven native-auth flow operations. The manager selects one by
name from `BACKENDS`; adding a backend means registering a factory, not sniffing shapes.
"""

from collections.abc import Callable, Mapping
from typing import Any, Protocol

from coreason_native_auth.config import ResolvedConfig
from coreason_native_auth.exceptions import ConfigurationError
from coreason_native_auth.models import (
    AuthResult,
    CodeSent,
    GrantType,
    PasswordResetContinueResult,
    SignUpContinueResult,
)
from coreason_native_auth.orchestrator import RestNativeAuthBackend
from coreason_native_auth.transport import NativeAuthTransport
from coreason_native_auth.utils.logger import logger


class NativeAuthBackend(Protocol):
    """
    Interface shared by all native-auth backends.

    Every operation either returns a flow result or raises `ProtocolError`.
    """

    async def password_sign_in(self, email: str, password: str) -> AuthResult: ...

    async def sign_up_start(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
    ) -> CodeSent: ...

    async def sign_up_challenge(self, continuation_token: str) -> CodeSent: ...

    async def sign_up_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        password: str | None = None,
    ) -> SignUpContinueResult: ...

    async def password_reset_start(self, username: str) -> CodeSent: ...

    async def password_reset_challenge(self, continuation_token: str) -> CodeSent: ...

    async def password_reset_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        new_password: str | None = None,
    ) -> PasswordResetContinueResult: ...


BackendFactory = Callable[[ResolvedConfig, NativeAuthTransport], NativeAuthBackend]

BACKENDS: dict[str, BackendFactory] = {
    "rest": RestNativeAuthBackend,
}


def create_backend(config: ResolvedConfig, transport: NativeAuthTransport) -> NativeAuthBackend:
    """
    Builds the backend named by `config.backend`.

    Raises:
        ConfigurationError: If no backend is registered under that name.
    """
    factory = BACKENDS.get(config.backend)
    if factory is None:
        raise ConfigurationError(
            f"Unknown native auth backend '{config.backend}'. Available: {', '.join(sorted(BACKENDS))}"
        )
    logger.debug(f"Using native auth backend '{config.backend}'")
    return factory(config, transport)
