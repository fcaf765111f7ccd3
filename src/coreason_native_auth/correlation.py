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
Request-scoped correlation id, carried through async tasks.
"""

import uuid
from contextvars import ContextVar, Token

_correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> str | None:
    """
    Retrieve the correlation id of the current request.

    Returns:
        str | None: The correlation id, or None outside a request.
    """
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None = None) -> Token[str | None]:
    """
    Bind a correlation id to the current async context.

    Args:
        correlation_id: The id supplied by the caller. A short random id is generated when omitted.

    Returns:
        The token to pass to `reset_correlation_id`.
    """
    return _correlation_id.set(correlation_id or uuid.uuid4().hex[:8])


def reset_correlation_id(token: Token[str | None]) -> None:
    _correlation_id.reset(token)
