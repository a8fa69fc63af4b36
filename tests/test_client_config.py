"""
Tests for client configuration loading.

Verifies that:
- Defaults target a backend on localhost:8000 with the Token scheme
- Timeout is read from the environment and clamped to 1-120 seconds
- Registration auto-login is off unless enabled
"""

from __future__ import annotations

import os
from unittest.mock import patch

from crowdfund.config import load_client_config


def test_defaults(monkeypatch) -> None:
    with patch.dict(os.environ, {}, clear=True):
        load_client_config.cache_clear()
        cfg = load_client_config()
    assert cfg.api_base_url == "http://127.0.0.1:8000/api/"
    assert cfg.auth_scheme == "Token"
    assert cfg.timeout_seconds == 10
    assert cfg.token_key == "token"
    assert cfg.login_identifier_field == "email"
    assert cfg.register_auto_login is False
    assert cfg.token_file.endswith(os.path.join(".crowdfund", "session.json"))


def test_env_overrides(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("CROWDFUND_API_BASE_URL", "https://api.example.org/v1")
    monkeypatch.setenv("CROWDFUND_AUTH_SCHEME", "Bearer")
    monkeypatch.setenv("CROWDFUND_TOKEN_FILE", str(tmp_path / "t.json"))
    monkeypatch.setenv("CROWDFUND_TOKEN_KEY", "auth")
    monkeypatch.setenv("CROWDFUND_LOGIN_FIELD", "username")
    monkeypatch.setenv("CROWDFUND_REGISTER_AUTO_LOGIN", "yes")
    load_client_config.cache_clear()

    cfg = load_client_config()

    assert cfg.api_base_url == "https://api.example.org/v1/"
    assert cfg.auth_scheme == "Bearer"
    assert cfg.token_file == str(tmp_path / "t.json")
    assert cfg.token_key == "auth"
    assert cfg.login_identifier_field == "username"
    assert cfg.register_auto_login is True


def test_timeout_bounds(monkeypatch) -> None:
    monkeypatch.setenv("CROWDFUND_TIMEOUT_SECONDS", "0")
    load_client_config.cache_clear()
    assert load_client_config().timeout_seconds == 1

    monkeypatch.setenv("CROWDFUND_TIMEOUT_SECONDS", "600")
    load_client_config.cache_clear()
    assert load_client_config().timeout_seconds == 120

    monkeypatch.setenv("CROWDFUND_TIMEOUT_SECONDS", "2.5")
    load_client_config.cache_clear()
    assert load_client_config().timeout_seconds == 2.5


def test_timeout_invalid_value_falls_back(monkeypatch) -> None:
    monkeypatch.setenv("CROWDFUND_TIMEOUT_SECONDS", "soon")
    load_client_config.cache_clear()
    assert load_client_config().timeout_seconds == 10


def test_blank_values_use_defaults(monkeypatch) -> None:
    monkeypatch.setenv("CROWDFUND_AUTH_SCHEME", "   ")
    monkeypatch.setenv("CROWDFUND_REGISTER_AUTO_LOGIN", "")
    load_client_config.cache_clear()
    cfg = load_client_config()
    assert cfg.auth_scheme == "Token"
    assert cfg.register_auto_login is False
