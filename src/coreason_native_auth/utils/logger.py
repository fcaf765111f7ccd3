# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

import logging
import os
import sys
from typing import Any

from loguru import logger
from opentelemetry import trace

from coreason_native_auth.correlation import get_correlation_id

__all__ = ["logger", "configure_logging"]

# Keys whose values must never reach a log sink.
SECRET_FIELDS = frozenset({"password", "new_password", "newPassword", "oob", "code"})
REDACTED = "[REDACTED]"


class InterceptHandler(logging.Handler):
    """
    Redirects standard logging messages to Loguru.
    Captures httpx/httpcore logs uniformly.
    """

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        # Find caller from where originated the logged message
        frame = logging.currentframe()
        depth = 2
        while frame and frame.f_code.co_filename in (logging.__file__, __file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def context_injector(record: dict[str, Any]) -> None:
    """
    Injects the correlation id and the OpenTelemetry trace_id/span_id into the log record.
    Used as a patcher for Loguru.
    """
    correlation_id = get_correlation_id()
    if correlation_id:
        record["extra"]["correlation_id"] = correlation_id

    ctx = trace.get_current_span().get_span_context()
    if ctx.is_valid:
        record["extra"]["trace_id"] = format(ctx.trace_id, "032x")
        record["extra"]["span_id"] = format(ctx.span_id, "016x")


def redact(params: dict[str, Any] | None) -> dict[str, Any] | None:
    """
    Returns a copy of `params` with every secret field masked.

    Args:
        params: Form parameters about to be logged.

    Returns:
        The masked copy, or the input unchanged when empty.
    """
    if not params:
        return params
    return {key: (REDACTED if key in SECRET_FIELDS and value else value) for key, value in params.items()}


def configure_logging() -> None:
    """
    Configures the logger based on environment variables.
    Call this to reload configuration if env vars change.
    """
    log_level = os.getenv("NATIVE_AUTH_LOG_LEVEL", "INFO").upper()
    log_json = os.getenv("NATIVE_AUTH_LOG_JSON", "false").lower() == "true"

    try:
        logger.level(log_level)
    except ValueError:
        log_level = "INFO"

    logger.configure(handlers=[], patcher=context_injector)

    if log_json:
        # JSON logs to stdout for containerized environments
        logger.add(sys.stdout, level=log_level, serialize=True)
    else:
        format_str = (
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        )
        logger.add(sys.stderr, level=log_level, format=format_str)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    numeric_level = logging.getLevelName(log_level)
    if isinstance(numeric_level, int):
        logging.getLogger().setLevel(numeric_level)
    else:
        logging.getLogger().setLevel(logging.INFO)


# Initialize on import
configure_logging()
