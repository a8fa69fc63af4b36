"""
Error taxonomy for the crowdfunding client.

Every exposed operation either returns a value or raises a `CrowdfundError` whose
`message` is safe to show to a user. Lower layers (transport, middleware) only raise
`TransportError` / `ApiError`; the session controller decides what they mean.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

GENERIC_NETWORK_MESSAGE = "Network error. Please check your connection."


class CrowdfundError(Exception):
    """Base exception for all client errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class TransportError(CrowdfundError):
    """No response was received (connection refused, DNS, reset...)."""

    def __init__(self, message: str, *, method: str = "", endpoint: str = "") -> None:
        super().__init__(message)
        self.method = method
        self.endpoint = endpoint


class RequestTimeoutError(TransportError):
    """The bounded wait for a response expired."""


class ApiError(CrowdfundError):
    """The server answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        method: str = "",
        endpoint: str = "",
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.method = method
        self.endpoint = endpoint
        self.payload = payload

    @property
    def is_auth_failure(self) -> bool:
        return self.status_code == 401


class ValidationError(CrowdfundError):
    """Field-level validation failure (400 on registration / profile update)."""

    def __init__(self, message: str, field_errors: Optional[Dict[str, str]] = None) -> None:
        super().__init__(message)
        self.field_errors: Dict[str, str] = dict(field_errors or {})


class InvalidCredentialsError(CrowdfundError):
    """The login endpoint rejected the identifier/secret pair."""


class SessionExpiredError(CrowdfundError):
    """A protected call failed with 401; the session has already been logged out."""


class LoginSupersededError(CrowdfundError):
    """A login response arrived after a newer logout/login and was discarded."""


def _as_messages(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        out: List[str] = []
        for item in value:
            out.extend(_as_messages(item))
        return out
    if isinstance(value, dict):
        out = []
        for item in value.values():
            out.extend(_as_messages(item))
        return out
    return [str(value)]


def first_error_message(payload: Any) -> Optional[str]:
    """
    Pick the most relevant message from an error body.

    Priority: `error`, `non_field_errors`, `detail`, then the first field message.
    Plain-text bodies are returned as-is.
    """
    if isinstance(payload, str):
        return payload.strip() or None
    if not isinstance(payload, dict):
        return None
    for key in ("error", "non_field_errors", "detail"):
        msgs = _as_messages(payload.get(key))
        if msgs:
            return msgs[0]
    for value in payload.values():
        msgs = _as_messages(value)
        if msgs:
            return msgs[0]
    return None


def field_errors(payload: Any) -> Dict[str, str]:
    """Map each field of a validation body to its first message."""
    if not isinstance(payload, dict):
        return {}
    out: Dict[str, str] = {}
    for key, value in payload.items():
        msgs = _as_messages(value)
        if msgs:
            out[str(key)] = msgs[0]
    return out


def joined_error_message(payload: Any) -> Optional[str]:
    """Flatten every message in the body and join them with spaces."""
    if isinstance(payload, str):
        return payload.strip() or None
    msgs = _as_messages(payload)
    return " ".join(msgs) if msgs else None
