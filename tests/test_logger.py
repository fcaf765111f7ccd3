# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

import json
import logging
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from coreason_native_auth.correlation import reset_correlation_id, set_correlation_id
from coreason_native_auth.utils.logger import REDACTED, configure_logging, context_injector, logger, redact


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    configure_logging()


def test_redact_masks_secret_fields() -> None:
    params = {
        "username": "a@b.com",
        "password": "pw",
        "new_password": "npw",
        "oob": "1234",
        "code": "5678",
        "continuation_token": "t1",
    }

    assert redact(params) == {
        "username": "a@b.com",
        "password": REDACTED,
        "new_password": REDACTED,
        "oob": REDACTED,
        "code": REDACTED,
        "continuation_token": "t1",
    }
    # The input is not mutated
    assert params["password"] == "pw"


def test_redact_leaves_empty_secrets_and_empty_input() -> None:
    assert redact({"password": ""}) == {"password": ""}
    assert redact({}) == {}
    assert redact(None) is None


def test_json_logs_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"NATIVE_AUTH_LOG_JSON": "true", "NATIVE_AUTH_LOG_LEVEL": "debug"}):
        configure_logging()
        logger.debug("json line")

    captured = capsys.readouterr()
    record = json.loads(captured.out.strip().splitlines()[-1])
    assert record["record"]["message"] == "json line"
    assert record["record"]["level"]["name"] == "DEBUG"


def test_text_logs_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"NATIVE_AUTH_LOG_JSON": "false"}):
        configure_logging()
        logger.warning("text line")

    captured = capsys.readouterr()
    assert "text line" in captured.err
    assert captured.out == ""


def test_invalid_level_falls_back_to_info(capsys: pytest.CaptureFixture[str]) -> None:
    with patch.dict(os.environ, {"NATIVE_AUTH_LOG_LEVEL": "NOT_A_LEVEL", "NATIVE_AUTH_LOG_JSON": "false"}):
        configure_logging()
        logger.debug("hidden")
        logger.info("shown")

    captured = capsys.readouterr()
    assert "hidden" not in captured.err
    assert "shown" in captured.err


def test_no_file_sink(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    configure_logging()
    logger.info("no files")
    logger.complete()

    assert list(tmp_path.iterdir()) == []


def test_standard_logging_is_intercepted() -> None:
    configure_logging()
    log_messages: list[str] = []
    handler_id = logger.add(lambda message: log_messages.append(str(message)), format="{level} {message}")
    try:
        logging.getLogger("httpx").warning("from std logging")
    finally:
        logger.remove(handler_id)

    assert any(line.startswith("WARNING from std logging") for line in log_messages)


def test_context_injector_adds_correlation_id() -> None:
    token = set_correlation_id("corr-7")
    try:
        record: dict = {"extra": {}}
        context_injector(record)
    finally:
        reset_correlation_id(token)

    assert record["extra"]["correlation_id"] == "corr-7"
