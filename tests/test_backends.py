# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_native_auth

from unittest.mock import MagicMock, patch

import pytest

from coreason_native_auth.backends import BACKENDS, create_backend
from coreason_native_auth.exceptions import ConfigurationError
from coreason_native_auth.orchestrator import RestNativeAuthBackend


def test_rest_backend_is_default(resolved_config, transport) -> None:
    backend = create_backend(resolved_config, transport)

    assert isinstance(backend, RestNativeAuthBackend)
    assert backend.transport is transport
    assert backend.config is resolved_config


def test_unknown_backend(resolved_config, transport) -> None:
    config = resolved_config.model_copy(update={"backend": "sdk"})

    with pytest.raises(ConfigurationError, match="Unknown native auth backend 'sdk'. Available: rest"):
        create_backend(config, transport)


def test_registered_backend_is_used(resolved_config, transport) -> None:
    custom = MagicMock()
    factory = MagicMock(return_value=custom)
    config = resolved_config.model_copy(update={"backend": "custom"})

    with patch.dict(BACKENDS, {"custom": factory}):
        assert create_backend(config, transport) is custom

    factory.assert_called_once_with(config, transport)
    assert "custom" not in BACKENDS
