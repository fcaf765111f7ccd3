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
Server-side native authentication: password sign-in, sign-up and password reset against an IdP's native auth API.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .config import ConfigResolver, NativeAuthSettings, ResolvedConfig
from .exceptions import ConfigurationError, CoreasonNativeAuthError, ProtocolError, TransportError
from .manager import NativeAuthManager, NativeAuthManagerAsync
from .models import (
    AttributesRequired,
    AuthResult,
    CodeSent,
    ErrorFamily,
    GrantType,
    PasswordResetCompleted,
    ServiceResponse,
    SignUpCompleted,
    User,
    VerifyPassword,
)
from .orchestrator import RestNativeAuthBackend

__all__ = [
    "AttributesRequired",
    "AuthResult",
    "CodeSent",
    "ConfigResolver",
    "ConfigurationError",
    "CoreasonNativeAuthError",
    "ErrorFamily",
    "GrantType",
    "NativeAuthManager",
    "NativeAuthManagerAsync",
    "NativeAuthSettings",
    "PasswordResetCompleted",
    "ProtocolError",
    "ResolvedConfig",
    "RestNativeAuthBackend",
    "ServiceResponse",
    "SignUpCompleted",
    "TransportError",
    "User",
    "VerifyPassword",
]
