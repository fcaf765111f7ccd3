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
Internal views of IdP step responses.
These are not exposed in the public API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _names(items: Any) -> list[str]:
    """Extracts attribute names from a list of `{"name": ...}` objects or plain strings."""
    if not isinstance(items, list):
        return []
    names: list[str] = []
    for item in items:
        if isinstance(item, dict):
            name = item.get("name") or item.get("attribute")
        else:
            name = item
        if isinstance(name, str) and name:
            names.append(name)
    return names


class StepResponse(BaseModel):
    """
    A native-auth step response (initiate, start, challenge, continue, submit, poll).

    Unknown keys are ignored and malformed optional fields collapse to None
    so that a sloppy response never breaks the flow on its own.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    continuation_token: str | None = None
    challenge_type: str | None = None
    challenge_target_label: str | None = None
    challenge_channel: str | None = None
    binding_method: str | None = None
    interval: int | None = None
    code_length: int | None = None
    status: str | None = None
    required_attributes: list[str] = Field(default_factory=list)

    @field_validator(
        "continuation_token",
        "challenge_type",
        "challenge_target_label",
        "challenge_channel",
        "binding_method",
        "status",
        mode="before",
    )
    @classmethod
    def non_empty_string(cls, v: Any) -> str | None:
        if isinstance(v, str) and v:
            return v
        return None

    @field_validator("interval", "code_length", mode="before")
    @classmethod
    def integer_only(cls, v: Any) -> int | None:
        if isinstance(v, bool) or not isinstance(v, int):
            return None
        return v

    @field_validator("required_attributes", mode="before")
    @classmethod
    def attribute_names(cls, v: Any) -> list[str]:
        return _names(v)

    @property
    def normalized_challenge_type(self) -> str | None:
        return self.challenge_type.lower() if self.challenge_type else None


class TokenStepResponse(BaseModel):
    """
    Response of the `/oauth2/v2.0/token` step.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str | None = None
    id_token: str | None = None
    refresh_token: str | None = None
    token_type: str | None = None
    scope: str | None = None
    expires_in: int | None = None
    continuation_token: str | None = None

    @field_validator("expires_in", mode="before")
    @classmethod
    def integer_only(cls, v: Any) -> int | None:
        if isinstance(v, bool) or not isinstance(v, int):
            return None
        return v

    @field_validator("access_token", "id_token", "refresh_token", "token_type", "scope", mode="before")
    @classmethod
    def non_empty_string(cls, v: Any) -> str | None:
        if isinstance(v, str) and v:
            return v
        return None


def attribute_names(items: Any) -> list[str]:
    """Public helper for diagnostic extraction; tolerant of missing or malformed payloads."""
    return _names(items)
