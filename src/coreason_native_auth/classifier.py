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
Error taxonomy classifier.

Maps any failure to a caller-facing HTTP status, a user-safe message and diagnostic details.
The same IdP error code means different things per flow family, so each family has its own
static rule table. Rules are evaluated in stages:

1. sub-errors that override everything else,
2. the code table,
3. `invalid_grant` or HTTP 400, refined by the family's sub-error table,
4. the error's own status (or 500) with the family's generic message.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict

from coreason_native_auth.exceptions import ConfigurationError, ProtocolError
from coreason_native_auth.models import ClassifiedError, ErrorFamily
from coreason_native_auth.models_internal import attribute_names
from coreason_native_auth.utils.logger import logger

Rule = tuple[int, str]

NOT_ENABLED: Rule = (500, "Native authentication is not enabled for this application.")
NOT_CONFIGURED_MESSAGE = "Native authentication is not configured."
WEAK_PASSWORD_MESSAGE = "The password does not meet complexity requirements."
PASSWORD_POLICY_SUB_ERRORS = (
    "password_too_weak",
    "password_too_short",
    "password_too_long",
    "password_recently_used",
    "password_banned",
)


class FamilyRules(BaseModel):
    """Static classification table for one flow family."""

    model_config = ConfigDict(frozen=True)

    label: str
    generic_message: str
    unexpected_message: str
    sub_error_overrides: dict[str, Rule]
    codes: dict[str, Rule]
    bad_request: Rule
    bad_request_sub_errors: dict[str, Rule]


SIGN_IN_RULES = FamilyRules(
    label="SignIn",
    generic_message="Authentication failed.",
    unexpected_message="Authentication failed due to an unexpected error.",
    sub_error_overrides={"nativeauthapi_disabled": NOT_ENABLED},
    codes={
        "redirect": (400, "Native authentication requires switching to the hosted sign-in experience."),
        "unsupported_grant_type": (400, "The requested verification method is not supported."),
        "user_not_found": (404, "We couldn't find an account with that email address."),
        "expired_token": (401, "The authentication session expired. Start the sign-in again."),
        "throttled": (429, "Too many sign-in attempts. Please wait a moment and try again."),
        "slow_down": (429, "Too many sign-in attempts. Please wait a moment and try again."),
        "invalid_client": NOT_ENABLED,
        "unauthorized_client": NOT_ENABLED,
    },
    bad_request=(401, "Invalid username or password, or additional verification is required."),
    bad_request_sub_errors={
        "password_reset_required": (401, "Password reset required before signing in."),
        "password_expired": (401, "Password expired. Reset the password and try again."),
        "invalid_oob_value": (401, "Invalid verification code. Request a new code and try again."),
    },
)

PASSWORD_RESET_RULES = FamilyRules(
    label="PasswordReset",
    generic_message="Password reset failed.",
    unexpected_message="Password reset failed due to an unexpected error.",
    sub_error_overrides={"nativeauthapi_disabled": NOT_ENABLED},
    codes={
        "redirect": (400, "Complete the password reset in the hosted sign-in experience."),
        "unsupported_grant_type": (400, "The requested verification method is not supported."),
        "user_not_found": (404, "We couldn't find an account with that email address."),
        "expired_token": (401, "The password reset session expired. Start the reset again."),
        "throttled": (429, "Too many password reset attempts. Please wait a moment and try again."),
        "slow_down": (429, "Too many password reset attempts. Please wait a moment and try again."),
        "invalid_client": NOT_ENABLED,
        "unauthorized_client": NOT_ENABLED,
    },
    bad_request=(401, "The verification code or password could not be validated."),
    bad_request_sub_errors={
        "invalid_oob_value": (401, "Invalid verification code. Request a new code and try again."),
        "continuation_token_not_found": (401, "The password reset session expired. Start the reset again."),
        **{sub_error: (401, WEAK_PASSWORD_MESSAGE) for sub_error in PASSWORD_POLICY_SUB_ERRORS},
    },
)

SIGN_UP_RULES = FamilyRules(
    label="SignUp",
    generic_message="Registration failed.",
    unexpected_message="Registration failed due to an unexpected error.",
    sub_error_overrides={"nativeauthapi_disabled": NOT_ENABLED},
    codes={
        "user_already_exists": (409, "An account with that email already exists. Try signing in."),
        "redirect": (400, "Complete registration in the hosted sign-up experience."),
        "invalid_request": (400, "The sign-up request was invalid. Please review the details and try again."),
        "unsupported_grant_type": (400, "The requested verification method is not supported."),
        "user_not_found": (404, "We couldn't find an account with that email address."),
        "expired_token": (401, "The verification session expired. Restart sign-up."),
        "throttled": (429, "Too many sign-up attempts. Please wait a moment and try again."),
        "slow_down": (429, "Too many sign-up attempts. Please wait a moment and try again."),
        "invalid_client": NOT_ENABLED,
        "unauthorized_client": NOT_ENABLED,
    },
    bad_request=(400, "The provided information could not be validated."),
    bad_request_sub_errors={
        "password_validation_failed": (400, WEAK_PASSWORD_MESSAGE),
        **{sub_error: (400, WEAK_PASSWORD_MESSAGE) for sub_error in PASSWORD_POLICY_SUB_ERRORS},
        "attribute_validation_failed": (400, "Some of the provided details are invalid or incomplete."),
        "continuation_token_not_found": (400, "The verification session expired. Restart sign-up."),
        "password_reset_required": (409, "Complete the password reset before signing up."),
        "password_expired": (409, "Complete the password reset before signing up."),
    },
)

RULES: dict[ErrorFamily, FamilyRules] = {
    ErrorFamily.SIGN_IN: SIGN_IN_RULES,
    ErrorFamily.SIGN_UP: SIGN_UP_RULES,
    ErrorFamily.PASSWORD_RESET: PASSWORD_RESET_RULES,
}


def _resolve(error: ProtocolError, rules: FamilyRules) -> Rule:
    code = error.code.lower() if isinstance(error.code, str) else ""
    sub_error = error.sub_error.lower() if isinstance(error.sub_error, str) else ""
    status = error.status if isinstance(error.status, int) and error.status > 0 else None

    if sub_error in rules.sub_error_overrides:
        return rules.sub_error_overrides[sub_error]
    if code in rules.codes:
        return rules.codes[code]
    if code == "invalid_grant" or status == 400:
        return rules.bad_request_sub_errors.get(sub_error, rules.bad_request)
    return status or 500, rules.generic_message


def _diagnostics(error: ProtocolError, family: ErrorFamily) -> dict[str, Any]:
    info: dict[str, Any] = {
        "code": error.code,
        "sub_error": error.sub_error,
        "status": error.status,
        "path": error.path,
    }
    if family is ErrorFamily.SIGN_UP:
        data = error.data if isinstance(error.data, dict) else {}
        description = data.get("error_description")
        info["invalid_attributes"] = attribute_names(data.get("invalid_attributes"))
        info["required_attributes"] = attribute_names(data.get("required_attributes"))
        info["error_description"] = description if isinstance(description, str) else None
    return info


def classify(error: BaseException, family: ErrorFamily) -> ClassifiedError:
    """
    Classifies a failure for the given flow family.

    Args:
        error: Any exception raised while running a flow.
        family: The family of the flow that raised it.

    Returns:
        ClassifiedError: The HTTP status, the user-safe message and diagnostics.
            The message of an unexpected exception is logged but never returned.
    """
    rules = RULES[family]

    if isinstance(error, ProtocolError):
        http_status, message = _resolve(error, rules)
        info = _diagnostics(error, family)
        logger.warning(
            f"[{rules.label}] API error: status={error.status} code={error.code} "
            f"sub_error={error.sub_error} path={error.path} -> {http_status}"
        )
        return ClassifiedError(http_status=http_status, user_message=message, diagnostic_info=info)

    if isinstance(error, ConfigurationError):
        logger.error(f"[{rules.label}] Native auth misconfigured: {error}")
        return ClassifiedError(
            http_status=500, user_message=NOT_CONFIGURED_MESSAGE, diagnostic_info={"message": str(error)}
        )

    logger.error(f"[{rules.label}] Unexpected error: {type(error).__name__}: {error}")
    return ClassifiedError(
        http_status=500,
        user_message=rules.unexpected_message,
        diagnostic_info={"error_type": type(error).__name__},
    )
