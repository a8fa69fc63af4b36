from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

DEFAULT_API_BASE_URL = "http://127.0.0.1:8000/api/"
DEFAULT_TIMEOUT_SECONDS = 10


@dataclass(frozen=True)
class ClientConfig:
    # Backend
    api_base_url: str
    timeout_seconds: float

    # Authorization header: "<auth_scheme> <token>" (backend uses Token; some deployments Bearer)
    auth_scheme: str

    # Credential store
    token_file: str
    token_key: str

    # Login / registration behavior
    login_identifier_field: str  # wire name of the identifier sent to auth/login/
    register_auto_login: bool  # if the server issues {token, user} on register, log in immediately


def _env_str(name: str, default: str) -> str:
    return (os.getenv(name, "") or "").strip() or default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_timeout(name: str) -> float:
    raw = (os.getenv(name) or "").strip()
    try:
        value = float(raw) if raw else float(DEFAULT_TIMEOUT_SECONDS)
    except ValueError:
        value = float(DEFAULT_TIMEOUT_SECONDS)
    # Clamp so bootstrap can never hang forever, but slow links still work.
    return max(1.0, min(120.0, value))


def _normalize_base_url(url: str) -> str:
    return url if url.endswith("/") else url + "/"


@lru_cache(maxsize=1)
def load_client_config() -> ClientConfig:
    """
    Load client configuration from environment variables.

    All settings have working defaults for a backend on localhost:8000.
    """
    default_token_file = str(Path.home() / ".crowdfund" / "session.json")
    return ClientConfig(
        api_base_url=_normalize_base_url(_env_str("CROWDFUND_API_BASE_URL", DEFAULT_API_BASE_URL)),
        timeout_seconds=_env_timeout("CROWDFUND_TIMEOUT_SECONDS"),
        auth_scheme=_env_str("CROWDFUND_AUTH_SCHEME", "Token"),
        token_file=os.path.expanduser(_env_str("CROWDFUND_TOKEN_FILE", default_token_file)),
        token_key=_env_str("CROWDFUND_TOKEN_KEY", "token"),
        login_identifier_field=_env_str("CROWDFUND_LOGIN_FIELD", "email"),
        register_auto_login=_env_bool("CROWDFUND_REGISTER_AUTO_LOGIN", False),
    )
