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
IdentityMapper component for projecting ID token claims onto the User model.

The ID token payload is decoded WITHOUT signature verification. The resulting
User is untrusted display data and must not be used for authorization decisions.
"""

import binascii
from typing import Any

from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from pydantic import BaseModel, ConfigDict, Field, field_validator

from coreason_native_auth.exceptions import InvalidIdTokenError
from coreason_native_auth.models import User
from coreason_native_auth.utils.logger import logger


def decode_jwt_payload(token: str) -> dict[str, Any]:
    """
    Decodes the payload segment of a compact JWT.

    Args:
        token: The raw JWT (header.payload.signature).

    Returns:
        dict[str, Any]: The claims.

    Raises:
        InvalidIdTokenError: If the token is not a three-part JWT or the payload is not a JSON object.
    """
    parts = token.split(".")
    if len(parts) != 3:
        raise InvalidIdTokenError("Invalid JWT structure")

    try:
        claims = json_loads(urlsafe_b64decode(to_bytes(parts[1])).decode("utf-8"))
    except (binascii.Error, ValueError) as e:
        raise InvalidIdTokenError(f"Invalid JWT payload: {e}") from e

    if not isinstance(claims, dict):
        raise InvalidIdTokenError("JWT payload is not a JSON object")
    return claims


class RawIdTokenClaims(BaseModel):
    """
    Internal model to parse the subset of ID token claims used for the User projection.
    Non-string values are discarded rather than rejected.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    sub: str | None = None
    email: str | None = None
    preferred_username: str | None = None
    given_name: str | None = None
    family_name: str | None = None
    name: str | None = None
    tid: str | None = None
    tenant_id: str | None = Field(default=None, alias="tenantId")

    @field_validator("*", mode="before")
    @classmethod
    def strings_only(cls, v: Any) -> str | None:
        if isinstance(v, str) and v:
            return v
        return None


class IdentityMapper:
    """
    Maps decoded ID token claims to the `User` projection.
    """

    def map_claims(self, claims: dict[str, Any], fallback_email: str | None = None) -> User:
        """
        Transform raw claims into a User.

        Args:
            claims: The decoded claims dictionary.
            fallback_email: The email the user signed in with; used when claims omit username/email.

        Returns:
            User: The populated projection.
        """
        raw = RawIdTokenClaims.model_validate(claims)

        user = User(
            id=raw.sub,
            username=raw.preferred_username or raw.email or fallback_email,
            email=raw.email or fallback_email or raw.preferred_username,
            first_name=raw.given_name or "",
            last_name=raw.family_name or "",
            name=raw.name or raw.preferred_username or fallback_email or "",
            tenant_id=raw.tid or raw.tenant_id,
        )
        logger.debug(f"Mapped identity for subject {raw.sub}")
        return user

    def map_id_token(self, id_token: str, fallback_email: str | None = None) -> User:
        """
        Decodes `id_token` (unverified) and maps its claims.

        Raises:
            InvalidIdTokenError: If the token cannot be decoded.
        """
        return self.map_claims(decode_jwt_payload(id_token), fallback_email)
