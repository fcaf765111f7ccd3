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
Data models for the coreason-native-auth package.

Flow results form a closed union discriminated on `status`. Every model serializes with
camelCase aliases (`model_dump(by_alias=True)`) for the HTTP layer.
"""

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ChallengeType(StrEnum):
    PASSWORD = "password"
    OOB = "oob"
    REDIRECT = "redirect"
    SMS = "sms"


class GrantType(StrEnum):
    OOB = "oob"
    PASSWORD = "password"


class FlowStatus(StrEnum):
    CODE_SENT = "code_sent"
    VERIFY_PASSWORD = "verify_password"
    ATTRIBUTES_REQUIRED = "attributes_required"
    COMPLETED = "completed"
    AUTHENTICATED = "authenticated"


class ErrorFamily(StrEnum):
    """The flow family that produced an error. The same IdP code means different things per family."""

    SIGN_IN = "sign_in"
    SIGN_UP = "sign_up"
    PASSWORD_RESET = "password_reset"


class _ResultModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        alias_generator=to_camel,
        populate_by_name=True,
    )


class User(_ResultModel):
    """
    Projection of the ID token claims.

    Claims are decoded without signature verification and are display data only.
    """

    id: str | None = None
    username: str | None = None
    email: str | None = None
    first_name: str = ""
    last_name: str = ""
    name: str = ""
    tenant_id: str | None = None

    def __repr__(self) -> str:
        # PII fields MUST be redacted in __repr__
        return (
            f"User(id={self.id!r}, username='<REDACTED>', email='<REDACTED>', "
            f"name='<REDACTED>', tenant_id={self.tenant_id!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class AuthResult(_ResultModel):
    """
    Successful password sign-in.

    Attributes:
        access_token (str | None): The access token issued by the IdP.
        id_token (str): The raw ID token.
        refresh_token (str | None): The refresh token, if issued.
        token_type (str): The token type (e.g. "Bearer").
        scope (str): The granted scopes.
        expires_in (int | None): Lifetime of the access token in seconds.
        expires_on (datetime | None): Absolute UTC expiry, when `expires_in` is known.
        user (User): The user projection derived from the ID token.
    """

    status: Literal[FlowStatus.AUTHENTICATED] = FlowStatus.AUTHENTICATED
    message: str = "Authentication successful"
    access_token: str | None = None
    id_token: str
    refresh_token: str | None = None
    token_type: str = "Bearer"
    scope: str
    expires_in: int | None = None
    expires_on: datetime | None = None
    continuation_token: str | None = None
    user: User

    def __repr__(self) -> str:
        return (
            f"AuthResult(token_type={self.token_type!r}, scope={self.scope!r}, "
            f"expires_in={self.expires_in!r}, user={self.user!r})"
        )


class CodeSent(_ResultModel):
    """A verification code was sent; the caller must submit it with the continuation token."""

    status: Literal[FlowStatus.CODE_SENT] = FlowStatus.CODE_SENT
    continuation_token: str
    challenge_type: ChallengeType | None = None
    challenge_target_label: str | None = None
    challenge_channel: str | None = None
    challenge_interval_seconds: int | None = None
    challenge_binding_method: str | None = None
    code_length: int | None = None
    message: str = "Verification code sent."


class VerifyPassword(_ResultModel):
    """The code was accepted; the caller must resubmit with the password grant."""

    status: Literal[FlowStatus.VERIFY_PASSWORD] = FlowStatus.VERIFY_PASSWORD
    continuation_token: str
    challenge_type: ChallengeType = ChallengeType.PASSWORD
    message: str = "Code verified. Submit the password to continue."


class AttributesRequired(_ResultModel):
    """The IdP needs more profile attributes before registration can finish."""

    status: Literal[FlowStatus.ATTRIBUTES_REQUIRED] = FlowStatus.ATTRIBUTES_REQUIRED
    continuation_token: str
    required_attributes: list[str]
    message: str = "Additional information is required to finish registration."


class SignUpCompleted(_ResultModel):
    status: Literal[FlowStatus.COMPLETED] = FlowStatus.COMPLETED
    continuation_token: str | None = None
    challenge_type: str | None = None
    message: str = "Registration completed. You can now sign in with your password."


class PasswordResetCompleted(_ResultModel):
    status: Literal[FlowStatus.COMPLETED] = FlowStatus.COMPLETED
    continuation_token: str | None = None
    reset_status: str = "unknown"
    message: str = "Password reset successful. You can now sign in with your new password."


SignUpContinueResult = Annotated[
    AttributesRequired | VerifyPassword | SignUpCompleted,
    Field(discriminator="status"),
]
PasswordResetContinueResult = Annotated[
    VerifyPassword | PasswordResetCompleted,
    Field(discriminator="status"),
]


class ClassifiedError(BaseModel):
    """
    Caller-facing view of a failure.

    Attributes:
        http_status (int): The status the HTTP layer should return.
        user_message (str): Wording safe to show to end users.
        diagnostic_info (dict[str, Any]): Internal codes for logging and telemetry.
    """

    model_config = ConfigDict(frozen=True)

    http_status: int
    user_message: str
    diagnostic_info: dict[str, Any] = Field(default_factory=dict)


class ServiceResponse(BaseModel):
    """
    Plain response envelope handed to the HTTP-layer collaborator.

    Success bodies are `{"correlationId", "data"}`; failure bodies are
    `{"correlationId", "error", "details"}`.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    body: dict[str, Any]

    @classmethod
    def success(cls, status_code: int, data: BaseModel | dict[str, Any], correlation_id: str | None) -> "ServiceResponse":
        payload = data.model_dump(mode="json", by_alias=True) if isinstance(data, BaseModel) else data
        return cls(status_code=status_code, body={"correlationId": correlation_id, "data": payload})

    @classmethod
    def failure(
        cls, status_code: int, message: str, correlation_id: str | None, details: dict[str, Any] | None = None
    ) -> "ServiceResponse":
        return cls(
            status_code=status_code,
            body={"correlationId": correlation_id, "error": message, "details": details},
        )
