"""
Pytest config.

Local imports like `import crowdfund` rely on the repo root being on sys.path. When
invoking a global `pytest` entrypoint that doesn't happen reliably during collection,
so we pin it here.

Also provides a scripted in-memory transport so controller/interceptor tests never
touch the network.
"""

from __future__ import annotations

import asyncio
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from crowdfund.auth.controller import SessionController  # noqa: E402
from crowdfund.auth.store import MemoryCredentialStore  # noqa: E402
from crowdfund.config import ClientConfig, load_client_config  # noqa: E402
from crowdfund.http.client import ApiClient, ApiRequest, ApiResponse  # noqa: E402


@dataclass
class Reply:
    status: int = 200
    payload: Any = None
    gate: Optional[asyncio.Event] = None  # response is held until the gate is set
    raises: Optional[BaseException] = None
    handler: Optional[Callable[[ApiRequest], ApiResponse]] = None


class FakeTransport:
    """
    Scripted transport keyed by (METHOD, path).

    A single scripted reply is reused for every call; several replies are consumed
    in order. Unscripted routes answer 404.
    """

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], List[Reply]] = {}
        self.sent: List[ApiRequest] = []

    def reply(self, method: str, path: str, status: int = 200, payload: Any = None, **kwargs: Any) -> Reply:
        r = Reply(status=status, payload=payload, **kwargs)
        self.routes.setdefault((method.upper(), path), []).append(r)
        return r

    def calls(self, method: str, path: str) -> List[ApiRequest]:
        return [r for r in self.sent if r.method == method.upper() and r.path == path]

    async def send(self, request: ApiRequest, timeout: float) -> ApiResponse:
        self.sent.append(request)
        replies = self.routes.get((request.method, request.path))
        if not replies:
            return ApiResponse(status_code=404, payload={"detail": "Not found."})
        r = replies[0] if len(replies) == 1 else replies.pop(0)
        if r.gate is not None:
            await r.gate.wait()
        if r.raises is not None:
            raise r.raises
        if r.handler is not None:
            return r.handler(request)
        return ApiResponse(status_code=r.status, payload=r.payload)


DEMO_USER = {"id": 1, "username": "demo", "email": "demo@example.com", "first_name": "Demo", "last_name": "User"}


@pytest.fixture(autouse=True)
def _clear_config_cache():
    load_client_config.cache_clear()
    yield
    load_client_config.cache_clear()


@pytest.fixture
def config(tmp_path) -> ClientConfig:
    return ClientConfig(
        api_base_url="http://api.test/api/",
        timeout_seconds=1.0,
        auth_scheme="Token",
        token_file=str(tmp_path / "session.json"),
        token_key="token",
        login_identifier_field="email",
        register_auto_login=False,
    )


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def store() -> MemoryCredentialStore:
    return MemoryCredentialStore()


@pytest.fixture
def make_session(transport, store, config):
    def _make(cfg: Optional[ClientConfig] = None) -> SessionController:
        return SessionController(ApiClient(transport, cfg or config), store)

    return _make
