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
Continuation-token-driven flow orchestrator for the native authentication REST API.

Each flow is a short sequence of dependent POSTs. The orchestrator forwards the opaque
continuation token between steps, branches on the challenge type declared by the IdP and
raises `ProtocolError` for every failure. It holds no per-flow state.
"""

from collections.abc import Mapping
from datetime import UTC, datetime, timedelta
from typing import Any

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_native_auth.attributes import SignUpAttributeBuilder
from coreason_native_auth.config import ResolvedConfig
from coreason_native_auth.exceptions import InvalidIdTokenError, ProtocolError
from coreason_native_auth.identity_mapper import IdentityMapper
from coreason_native_auth.models import (
    AttributesRequired,
    AuthResult,
    ChallengeType,
    CodeSent,
    GrantType,
    PasswordResetCompleted,
    PasswordResetContinueResult,
    SignUpCompleted,
    SignUpContinueResult,
    VerifyPassword,
)
from coreason_native_auth.models_internal import StepResponse, TokenStepResponse
from coreason_native_auth.transport import NativeAuthTransport
from coreason_native_auth.utils.logger import logger

tracer = trace.get_tracer(__name__)

SIGNIN_INITIATE_PATH = "/oauth2/v2.0/initiate"
SIGNIN_CHALLENGE_PATH = "/oauth2/v2.0/challenge"
SIGNIN_TOKEN_PATH = "/oauth2/v2.0/token"
SIGNUP_START_PATH = "/signup/v1.0/start"
SIGNUP_CHALLENGE_PATH = "/signup/v1.0/challenge"
SIGNUP_CONTINUE_PATH = "/signup/v1.0/continue"
RESET_START_PATH = "/resetpassword/v1.0/start"
RESET_CHALLENGE_PATH = "/resetpassword/v1.0/challenge"
RESET_CONTINUE_PATH = "/resetpassword/v1.0/continue"
RESET_SUBMIT_PATH = "/resetpassword/v1.0/submit"
RESET_POLL_PATH = "/resetpassword/v1.0/poll_completion"


class RestNativeAuthBackend:
    """
    Native auth backend that drives the IdP REST endpoints directly.

    Attributes:
        config (ResolvedConfig): The resolved configuration.
        transport (NativeAuthTransport): The transport used for every step.
        attribute_builder (SignUpAttributeBuilder): Builds the sign-up attributes payload.
        identity_mapper (IdentityMapper): Projects ID token claims onto `User`.
    """

    name = "rest"

    def __init__(
        self,
        config: ResolvedConfig,
        transport: NativeAuthTransport,
        attribute_builder: SignUpAttributeBuilder | None = None,
        identity_mapper: IdentityMapper | None = None,
    ) -> None:
        self.config = config
        self.transport = transport
        self.attribute_builder = attribute_builder or SignUpAttributeBuilder(
            config.signup_attribute_map, config.signup_static_attributes
        )
        self.identity_mapper = identity_mapper or IdentityMapper()

    # ------------------------------------------------------------------
    # Step helpers
    # ------------------------------------------------------------------

    async def _step(self, path: str, params: Mapping[str, Any]) -> tuple[dict[str, Any], StepResponse]:
        data = await self.transport.post(path, {"client_id": self.config.client_id, **params})
        return data, StepResponse.model_validate(data)

    @staticmethod
    def _ensure_not_redirect(step: StepResponse, path: str) -> None:
        """`redirect` means the account cannot finish natively; it ends every flow."""
        if step.normalized_challenge_type == ChallengeType.REDIRECT:
            logger.warning(f"IdP requested redirect to the hosted flow at {path}")
            raise ProtocolError(
                "Redirect required: native authentication is not available for this account",
                status=400,
                code="redirect",
                path=path,
            )

    @staticmethod
    def _require_continuation_token(step: StepResponse, data: dict[str, Any], path: str) -> str:
        if not step.continuation_token:
            raise ProtocolError(
                f"Native auth {path} response missing continuation token",
                status=500,
                data=data,
                path=path,
            )
        return step.continuation_token

    @staticmethod
    def _supported_challenge(value: str | None, path: str) -> ChallengeType | None:
        if value is None:
            return None
        try:
            return ChallengeType(value)
        except ValueError:
            logger.warning(f"Unsupported challenge type '{value}' returned by {path}")
            raise ProtocolError(
                f"Unsupported authentication challenge type: {value}", status=400, code=value, path=path
            ) from None

    @staticmethod
    def _grant_type(grant_type: GrantType | str, path: str) -> GrantType:
        try:
            return GrantType(grant_type)
        except ValueError:
            raise ProtocolError(
                f"Unsupported grant type: {grant_type}", status=400, code="unsupported_grant_type", path=path
            ) from None

    async def _send_code(
        self,
        path: str,
        continuation_token: str,
        challenge_string: str,
        message: str,
        previous: StepResponse | None = None,
    ) -> CodeSent:
        """
        Runs a sign-up or reset `challenge` step and describes the code that was sent.
        """
        _, challenge = await self._step(
            path, {"continuation_token": continuation_token, "challenge_type": challenge_string}
        )
        self._ensure_not_redirect(challenge, path)

        challenge_type = challenge.normalized_challenge_type
        if challenge_type is None and previous is not None:
            challenge_type = previous.normalized_challenge_type

        return CodeSent(
            continuation_token=challenge.continuation_token or continuation_token,
            challenge_type=self._supported_challenge(challenge_type, path),
            challenge_target_label=challenge.challenge_target_label
            or (previous.challenge_target_label if previous else None),
            challenge_channel=challenge.challenge_channel,
            challenge_interval_seconds=challenge.interval,
            challenge_binding_method=challenge.binding_method,
            code_length=challenge.code_length,
            message=message,
        )

    # ------------------------------------------------------------------
    # Sign-in
    # ------------------------------------------------------------------

    async def password_sign_in(self, email: str, password: str) -> AuthResult:
        """
        Signs a user in with username and password.

        initiate -> (challenge, when the IdP did not already ask for a password) -> token.

        Args:
            email: The username (email address).
            password: The password. Never logged.

        Returns:
            AuthResult: Tokens and the user projection.

        Raises:
            ProtocolError: On redirect, unsupported challenge, missing continuation token
                or id_token, or any IdP rejection.
        """
        with tracer.start_as_current_span("native_auth.password_sign_in") as span:
            challenge_string = self.config.password_challenge_string

            data, initiate = await self._step(
                SIGNIN_INITIATE_PATH, {"username": email, "challenge_type": challenge_string}
            )
            self._ensure_not_redirect(initiate, SIGNIN_INITIATE_PATH)
            continuation_token = self._require_continuation_token(initiate, data, SIGNIN_INITIATE_PATH)
            challenge_type = initiate.normalized_challenge_type

            if challenge_type != ChallengeType.PASSWORD:
                _, challenge = await self._step(
                    SIGNIN_CHALLENGE_PATH,
                    {"continuation_token": continuation_token, "challenge_type": challenge_string},
                )
                self._ensure_not_redirect(challenge, SIGNIN_CHALLENGE_PATH)
                continuation_token = challenge.continuation_token or continuation_token
                challenge_type = challenge.normalized_challenge_type or challenge_type

                if challenge_type and challenge_type != ChallengeType.PASSWORD:
                    logger.warning(f"Unsupported sign-in challenge type received: {challenge_type}")
                    raise ProtocolError(
                        f"Unsupported authentication challenge type: {challenge_type}",
                        status=400,
                        code=challenge_type,
                        path=SIGNIN_CHALLENGE_PATH,
                    )

            token_data = await self.transport.post(
                SIGNIN_TOKEN_PATH,
                {
                    "client_id": self.config.client_id,
                    "continuation_token": continuation_token,
                    "grant_type": "password",
                    "password": password,
                    "scope": self.config.scopes,
                    "username": email,
                },
            )
            tokens = TokenStepResponse.model_validate(token_data)

            if not tokens.id_token:
                # Only the key names are kept; the payload may hold live tokens
                raise ProtocolError(
                    "Native auth token response missing id_token",
                    status=500,
                    data={"keys": sorted(token_data)},
                    path=SIGNIN_TOKEN_PATH,
                )

            try:
                user = self.identity_mapper.map_id_token(tokens.id_token, fallback_email=email)
            except InvalidIdTokenError as e:
                logger.error(f"Failed to decode id_token: {e}")
                raise ProtocolError(
                    "Failed to decode id_token payload",
                    status=500,
                    code="invalid_id_token",
                    path=SIGNIN_TOKEN_PATH,
                ) from e

            expires_on = None
            if tokens.expires_in:
                expires_on = datetime.now(UTC) + timedelta(seconds=tokens.expires_in)

            span.set_status(Status(StatusCode.OK))
            logger.info("Native password sign-in succeeded")
            return AuthResult(
                access_token=tokens.access_token,
                id_token=tokens.id_token,
                refresh_token=tokens.refresh_token,
                token_type=tokens.token_type or "Bearer",
                scope=tokens.scope or self.config.scopes,
                expires_in=tokens.expires_in,
                expires_on=expires_on,
                continuation_token=continuation_token,
                user=user,
            )

    # ------------------------------------------------------------------
    # Sign-up
    # ------------------------------------------------------------------

    async def sign_up_start(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
        extra_attributes: Mapping[str, Any] | None = None,
    ) -> CodeSent:
        """
        Starts self-service sign-up and immediately requests the verification code.

        Returns:
            CodeSent: The (possibly refreshed) continuation token and the code metadata.
        """
        with tracer.start_as_current_span("native_auth.sign_up_start"):
            data, start = await self._step(
                SIGNUP_START_PATH,
                {
                    "username": email,
                    "password": password,
                    "challenge_type": self.config.signup_challenge_string,
                    "channel_hint": self.config.channel_hint,
                    "attributes": self.attribute_builder.build(first_name, last_name, extra_attributes),
                },
            )
            self._ensure_not_redirect(start, SIGNUP_START_PATH)
            continuation_token = self._require_continuation_token(start, data, SIGNUP_START_PATH)

            return await self._send_code(
                SIGNUP_CHALLENGE_PATH,
                continuation_token,
                self.config.signup_challenge_string,
                "Verification code sent. Enter the code we emailed you to continue registration.",
                previous=start,
            )

    async def sign_up_challenge(self, continuation_token: str) -> CodeSent:
        """
        Requests (or re-sends) the sign-up verification code.
        """
        with tracer.start_as_current_span("native_auth.sign_up_challenge"):
            return await self._send_code(
                SIGNUP_CHALLENGE_PATH,
                continuation_token,
                self.config.signup_challenge_string,
                "Verification code sent. Enter the code we emailed you to continue registration.",
            )

    async def sign_up_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        password: str | None = None,
    ) -> SignUpContinueResult:
        """
        Submits the verification code (`oob`) or the password (`password`) for a pending sign-up.

        Returns:
            AttributesRequired | VerifyPassword | SignUpCompleted

        Raises:
            ProtocolError: `unsupported_grant_type` for any other grant, or any IdP rejection.
        """
        with tracer.start_as_current_span("native_auth.sign_up_continue") as span:
            grant = self._grant_type(grant_type, SIGNUP_CONTINUE_PATH)
            span.set_attribute("native_auth.grant_type", grant.value)

            params: dict[str, Any] = {"continuation_token": continuation_token, "grant_type": grant.value}
            match grant:
                case GrantType.OOB:
                    params["oob"] = code
                case GrantType.PASSWORD:
                    params["password"] = password

            _, step = await self._step(SIGNUP_CONTINUE_PATH, params)
            self._ensure_not_redirect(step, SIGNUP_CONTINUE_PATH)

            match grant:
                case GrantType.OOB:
                    next_token = step.continuation_token or continuation_token
                    if step.required_attributes:
                        return AttributesRequired(
                            continuation_token=next_token, required_attributes=step.required_attributes
                        )
                    if step.normalized_challenge_type == ChallengeType.PASSWORD:
                        return VerifyPassword(
                            continuation_token=next_token,
                            message="Code verified. Confirm your password to finish sign-up.",
                        )
                    return SignUpCompleted(
                        continuation_token=next_token, challenge_type=step.normalized_challenge_type
                    )
                case GrantType.PASSWORD:
                    return SignUpCompleted(
                        continuation_token=step.continuation_token,
                        message="Registration successful. You can now sign in with your password.",
                    )

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    async def password_reset_start(self, username: str) -> CodeSent:
        """
        Starts a self-service password reset and immediately requests the verification code.
        """
        with tracer.start_as_current_span("native_auth.password_reset_start"):
            data, start = await self._step(
                RESET_START_PATH,
                {
                    "username": username,
                    "challenge_type": self.config.reset_challenge_string,
                    "channel_hint": self.config.channel_hint,
                },
            )
            self._ensure_not_redirect(start, RESET_START_PATH)
            continuation_token = self._require_continuation_token(start, data, RESET_START_PATH)

            return await self._send_code(
                RESET_CHALLENGE_PATH,
                continuation_token,
                self.config.reset_challenge_string,
                "Verification code sent. Enter the code we emailed you to continue resetting your password.",
                previous=start,
            )

    async def password_reset_challenge(self, continuation_token: str) -> CodeSent:
        """
        Requests (or re-sends) the password reset verification code.
        """
        with tracer.start_as_current_span("native_auth.password_reset_challenge"):
            return await self._send_code(
                RESET_CHALLENGE_PATH,
                continuation_token,
                self.config.reset_challenge_string,
                "Verification code sent. Enter the code we emailed you to continue resetting your password.",
            )

    async def password_reset_continue(
        self,
        continuation_token: str,
        grant_type: GrantType | str,
        code: str | None = None,
        new_password: str | None = None,
    ) -> PasswordResetContinueResult:
        """
        Verifies the reset code (`oob`) or submits the new password (`password`).

        The password path makes one best-effort `poll_completion` call when the IdP returns a
        continuation token. A failed poll yields `reset_status="unknown"`, never a flow failure.

        Returns:
            VerifyPassword | PasswordResetCompleted

        Raises:
            ProtocolError: `unsupported_grant_type` for any other grant, or any IdP rejection.
        """
        with tracer.start_as_current_span("native_auth.password_reset_continue") as span:
            grant = self._grant_type(grant_type, RESET_CONTINUE_PATH)
            span.set_attribute("native_auth.grant_type", grant.value)

            match grant:
                case GrantType.OOB:
                    _, step = await self._step(
                        RESET_CONTINUE_PATH,
                        {"continuation_token": continuation_token, "grant_type": "oob", "oob": code},
                    )
                    self._ensure_not_redirect(step, RESET_CONTINUE_PATH)
                    challenge_type = self._supported_challenge(step.normalized_challenge_type, RESET_CONTINUE_PATH)
                    return VerifyPassword(
                        continuation_token=step.continuation_token or continuation_token,
                        challenge_type=challenge_type or ChallengeType.PASSWORD,
                        message="Code verified. Confirm your new password to finish resetting your password.",
                    )
                case GrantType.PASSWORD:
                    _, submit = await self._step(
                        RESET_SUBMIT_PATH,
                        {"continuation_token": continuation_token, "new_password": new_password},
                    )
                    self._ensure_not_redirect(submit, RESET_SUBMIT_PATH)
                    poll_token = submit.continuation_token
                    reset_status = await self._poll_reset_completion(poll_token) if poll_token else None
                    span.set_attribute("native_auth.reset_status", reset_status or "unknown")
                    return PasswordResetCompleted(
                        continuation_token=poll_token, reset_status=reset_status or "unknown"
                    )

    async def _poll_reset_completion(self, continuation_token: str) -> str | None:
        try:
            _, poll = await self._step(RESET_POLL_PATH, {"continuation_token": continuation_token})
        except ProtocolError as e:
            logger.warning(f"Password reset poll_completion failed: {e}")
            return None
        return poll.status
