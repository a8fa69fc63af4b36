from __future__ import annotations

import logging
import time
from typing import Callable, FrozenSet, Iterable

from crowdfund.auth.store import CredentialStore
from crowdfund.errors import ApiError, CrowdfundError
from crowdfund.http.client import ApiRequest, ApiResponse, Handler, Middleware

logger = logging.getLogger(__name__)

# A 401 from these means "wrong password" / "already logged out", not "session expired".
DEFAULT_AUTH_EXEMPT_PATHS: FrozenSet[str] = frozenset({"auth/login/", "auth/register/", "auth/logout/"})

AuthFailureHandler = Callable[[ApiError, ApiRequest], None]


def _normalize_path(path: str) -> str:
    p = path.split("?", 1)[0].strip().lstrip("/")
    return p if p.endswith("/") else p + "/"


def attach_token(store: CredentialStore, scheme: str) -> Middleware:
    """
    Outbound hook: attach the stored token as `Authorization: <scheme> <token>`.

    The store is re-read on every request; the token may have changed since the
    previous call. An Authorization header set by the caller is left alone.
    """

    async def _mw(request: ApiRequest, call_next: Handler) -> ApiResponse:
        if request.header("Authorization") is None:
            token = store.get()
            if token:
                request = request.with_header("Authorization", f"{scheme} {token}")
        return await call_next(request)

    return _mw


def detect_auth_failure(
    on_auth_failure: AuthFailureHandler,
    exempt_paths: Iterable[str] = DEFAULT_AUTH_EXEMPT_PATHS,
) -> Middleware:
    """
    Inbound hook: a 401 outside the exempt endpoints triggers a forced logout.

    The original error is always re-raised unchanged.
    """
    exempt = frozenset(_normalize_path(p) for p in exempt_paths)

    async def _mw(request: ApiRequest, call_next: Handler) -> ApiResponse:
        try:
            return await call_next(request)
        except ApiError as e:
            if e.is_auth_failure and _normalize_path(request.path) not in exempt:
                logger.warning(f"Token expired or invalid ({request.method} {request.path}). Logging out.")
                on_auth_failure(e, request)
            raise

    return _mw


def log_requests() -> Middleware:
    async def _mw(request: ApiRequest, call_next: Handler) -> ApiResponse:
        started = time.monotonic()
        try:
            resp = await call_next(request)
        except ApiError as e:
            logger.warning(f"API error: {request.method} {request.path} -> {e.status_code}")
            raise
        except CrowdfundError as e:
            logger.warning(f"Request failed: {request.method} {request.path}: {e.message}")
            raise
        elapsed_ms = (time.monotonic() - started) * 1000.0
        logger.debug(f"{request.method} {request.path} -> {resp.status_code} ({elapsed_ms:.0f}ms)")
        return resp

    return _mw
