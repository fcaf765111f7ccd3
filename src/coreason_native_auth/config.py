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
Configuration for the coreason-native-auth package.
"""

import re
import threading
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, SettingsError

from coreason_native_auth.attributes import is_reserved_attribute, normalize_attribute_value
from coreason_native_auth.exceptions import ConfigurationError
from coreason_native_auth.models import ChallengeType
from coreason_native_auth.utils.logger import logger

DEFAULT_SCOPES = "openid profile email offline_access"
DEFAULT_SIGNIN_CHALLENGE_TYPES = ("password", "redirect")
DEFAULT_SIGNUP_CHALLENGE_TYPES = ("oob", "password", "redirect")
SIGNIN_PREFERRED_ORDER = ("password", "oob", "redirect")
SIGNUP_PREFERRED_ORDER = ("oob", "password", "redirect", "sms")

_SPLIT_PATTERN = re.compile(r"[,\s]+")


class NativeAuthSettings(BaseSettings):
    """
    Raw settings for coreason-native-auth, read from `NATIVE_AUTH_*` environment variables.

    Attributes:
        client_id (str | None): The application (client) id registered with the IdP.
        base_url (str | None): Explicit native-auth base URL. Wins over `authority` and `tenant_subdomain`.
        authority (str | None): Alternate explicit base URL.
        tenant_subdomain (str | None): Tenant subdomain used to build the ciamlogin.com base URL.
        scopes (str): Scopes requested at the token step. Comma or whitespace separated.
        challenge_types (str | None): Challenge types advertised during sign-in.
        signup_challenge_types (str | None): Challenge types advertised during sign-up and password reset.
        channel_hint (str | None): Channel hint sent with sign-up and reset start. Empty disables it.
        signup_attribute_map (dict): Overrides of the value-bag -> IdP attribute name map.
        signup_static_attributes (dict): Attributes always sent at sign-up.
        http_timeout (float): Timeout in seconds for every IdP call.
        max_response_bytes (int): Largest accepted IdP response body.
        backend (str): Name of the native auth backend strategy.
        unsafe_local_dev (bool): Allows plain-HTTP base URLs for local mocks.
    """

    model_config = SettingsConfigDict(
        env_prefix="NATIVE_AUTH_",
        case_sensitive=False,
    )

    client_id: str | None = None
    base_url: str | None = None
    authority: str | None = None
    tenant_subdomain: str | None = None
    scopes: str = DEFAULT_SCOPES
    challenge_types: str | None = None
    signup_challenge_types: str | None = None
    channel_hint: str | None = "email"
    signup_attribute_map: dict[str, Any] = Field(default_factory=dict)
    signup_static_attributes: dict[str, Any] = Field(default_factory=dict)
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all IdP network operations.")
    max_response_bytes: int = Field(default=1_000_000, gt=0)
    backend: str = "rest"
    unsafe_local_dev: bool = False

    @field_validator("client_id", "base_url", "authority", "tenant_subdomain", mode="after")
    @classmethod
    def blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class ResolvedConfig(BaseModel):
    """
    Process-wide configuration derived from `NativeAuthSettings`. Read-only after resolution.
    """

    model_config = ConfigDict(frozen=True)

    client_id: str
    base_url: str
    scopes: str
    password_challenge_string: str
    signup_challenge_string: str
    reset_challenge_string: str
    channel_hint: str | None = None
    signup_attribute_map: dict[str, str] = Field(default_factory=dict)
    signup_static_attributes: dict[str, str] = Field(default_factory=dict)
    http_timeout: float = 10.0
    max_response_bytes: int = 1_000_000
    backend: str = "rest"


def split_tokens(value: str | None) -> list[str]:
    """Splits a comma or whitespace separated list, dropping empty entries."""
    return [token for token in _SPLIT_PATTERN.split(value or "") if token]


def resolve_challenge_string(
    raw_value: str | None,
    fallback: Iterable[str],
    required: Iterable[str],
    preferred_order: Iterable[str],
) -> str:
    """
    Builds a deterministic, space-separated challenge type string.

    Tokens are lower-cased and deduplicated, the `required` tokens are always added,
    tokens listed in `preferred_order` come first and the rest keep their input order.

    Args:
        raw_value: The configured token list, or None.
        fallback: Tokens used when nothing is configured.
        required: Tokens that must always be present.
        preferred_order: Stable ordering for known tokens.

    Returns:
        The resolved challenge type string.
    """
    tokens = [token.lower() for token in split_tokens(raw_value)] or list(fallback)
    # dict preserves insertion order and deduplicates
    token_set = dict.fromkeys(tokens)
    token_set.update(dict.fromkeys(required))

    known = {member.value for member in ChallengeType}
    for token in token_set:
        if token not in known:
            logger.warning(f"Unsupported challenge type '{token}' in configuration; the IdP may reject it.")

    ordered = [token for token in preferred_order if token in token_set]
    ordered.extend(token for token in token_set if token not in ordered)
    return " ".join(ordered)


def resolve_base_url(settings: NativeAuthSettings) -> str | None:
    """
    Derives the IdP base URL: explicit base URL, then authority, then tenant subdomain.
    """
    explicit = settings.base_url or settings.authority
    if explicit:
        return explicit.rstrip("/")

    if settings.tenant_subdomain:
        tenant = settings.tenant_subdomain.rstrip(".")
        if tenant:
            return f"https://{tenant}.ciamlogin.com/{tenant}.onmicrosoft.com"

    return None


def _resolve_attribute_map(overrides: dict[str, Any]) -> dict[str, str]:
    attribute_map = {
        "first_name": "givenName",
        "last_name": "surname",
        "display_name": "displayName",
    }
    for source_key, target in overrides.items():
        if isinstance(target, str) and target.strip():
            attribute_map[str(source_key)] = target.strip()
    return attribute_map


def _resolve_static_attributes(configured: dict[str, Any]) -> dict[str, str]:
    normalized: dict[str, str] = {}
    for name, value in configured.items():
        key = name.strip() if isinstance(name, str) else ""
        normalized_value = normalize_attribute_value(value)
        if not key or normalized_value is None or is_reserved_attribute(key):
            continue
        normalized[key] = normalized_value
    return normalized


def build_resolved_config(settings: NativeAuthSettings) -> ResolvedConfig:
    """
    Validates `settings` and derives the `ResolvedConfig`.

    Raises:
        ConfigurationError: If the client id or base URL is missing, or the base URL is insecure.
    """
    if not settings.client_id:
        raise ConfigurationError("NATIVE_AUTH_CLIENT_ID must be configured")

    base_url = resolve_base_url(settings)
    if not base_url:
        raise ConfigurationError(
            "Provide NATIVE_AUTH_BASE_URL, NATIVE_AUTH_AUTHORITY or NATIVE_AUTH_TENANT_SUBDOMAIN "
            "to build the native auth endpoints"
        )

    if base_url.startswith("http://") and not settings.unsafe_local_dev:
        raise ConfigurationError(
            "HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing."
        )

    signup_challenge_string = resolve_challenge_string(
        settings.signup_challenge_types or settings.challenge_types,
        DEFAULT_SIGNUP_CHALLENGE_TYPES,
        ("redirect", "oob"),
        SIGNUP_PREFERRED_ORDER,
    )

    return ResolvedConfig(
        client_id=settings.client_id,
        base_url=base_url,
        scopes=" ".join(split_tokens(settings.scopes)) or DEFAULT_SCOPES,
        password_challenge_string=resolve_challenge_string(
            settings.challenge_types,
            DEFAULT_SIGNIN_CHALLENGE_TYPES,
            ("redirect",),
            SIGNIN_PREFERRED_ORDER,
        ),
        signup_challenge_string=signup_challenge_string,
        # Password reset verifies by email exactly like sign-up
        reset_challenge_string=signup_challenge_string,
        channel_hint=(settings.channel_hint or "").strip() or None,
        signup_attribute_map=_resolve_attribute_map(settings.signup_attribute_map),
        signup_static_attributes=_resolve_static_attributes(settings.signup_static_attributes),
        http_timeout=settings.http_timeout,
        max_response_bytes=settings.max_response_bytes,
        backend=settings.backend.strip().lower(),
    )


class ConfigResolver:
    """
    Resolves the configuration once per process and memoizes the result.

    Failures are not memoized, so a corrected environment is picked up on the next call.
    Safe to share between threads and tasks; the memoized value is immutable.
    """

    def __init__(self, settings: NativeAuthSettings | None = None) -> None:
        """
        Initialize the ConfigResolver.

        Args:
            settings: Explicit settings. When omitted they are read from the environment on first resolution.
        """
        self._settings = settings
        self._resolved: ResolvedConfig | None = None
        self._lock = threading.Lock()

    def resolve(self) -> ResolvedConfig:
        """
        Returns the memoized configuration, resolving it on first use.

        Raises:
            ConfigurationError: If the configuration is missing or invalid.
        """
        if self._resolved is not None:
            return self._resolved

        with self._lock:
            if self._resolved is None:
                try:
                    settings = self._settings or NativeAuthSettings()
                except (ValidationError, SettingsError) as e:
                    raise ConfigurationError(f"Invalid native auth settings: {e}") from e
                self._resolved = build_resolved_config(settings)
                logger.info(f"Native auth configuration resolved for {self._resolved.base_url}")
            return self._resolved

    def reset(self) -> None:
        """Drops the memoized configuration."""
        with self._lock:
            self._resolved = None
