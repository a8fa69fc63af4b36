"""E2E tests for the session lifecycle against the mock backend.

These tests require `python dev/mock-backend.py` running on localhost:18000.
Run with: pytest -m e2e
"""

import time
from dataclasses import replace
from typing import Generator

import pytest
import requests

from crowdfund.auth.controller import build_session
from crowdfund.auth.guard import Access, RedirectToLogin, decide
from crowdfund.auth.models import Credentials, SessionStatus
from crowdfund.auth.store import MemoryCredentialStore
from crowdfund.errors import InvalidCredentialsError

BASE_URL = "http://localhost:18000/api/"

pytestmark = pytest.mark.e2e


@pytest.fixture(scope="module")
def wait_for_server() -> Generator[None, None, None]:
    """Wait for server to be ready."""
    max_retries = 30
    for i in range(max_retries):
        try:
            r = requests.get("http://localhost:18000/healthz", timeout=2)
            if r.status_code == 200:
                break
        except requests.RequestException:
            if i == max_retries - 1:
                raise Exception("Server failed to start within 30 seconds")
            time.sleep(1)
    yield


@pytest.fixture
def e2e_config(config):
    return replace(config, api_base_url=BASE_URL, timeout_seconds=5)


@pytest.mark.asyncio
async def test_login_logout_roundtrip(wait_for_server, e2e_config) -> None:
    store = MemoryCredentialStore()
    session = build_session(e2e_config, store=store)

    await session.bootstrap()
    assert session.status == SessionStatus.ANONYMOUS

    user = await session.login(Credentials("demo@example.com", "password"))
    assert user.username == "demo"
    token = store.get()
    assert token

    # A fresh controller with the same store hydrates from it.
    again = build_session(e2e_config, store=store)
    assert (await again.bootstrap()).status == SessionStatus.AUTHENTICATED

    await session.logout()
    assert store.get() is None

    # The server dropped the token; re-using it is an auth failure.
    store.set(token)
    stale = build_session(e2e_config, store=store)
    snap = await stale.bootstrap()
    assert snap.status == SessionStatus.ANONYMOUS
    assert decide(snap, Access.AUTHENTICATED, "/profile") == RedirectToLogin("/profile")


@pytest.mark.asyncio
async def test_wrong_password(wait_for_server, e2e_config) -> None:
    session = build_session(e2e_config, store=MemoryCredentialStore())
    await session.bootstrap()

    with pytest.raises(InvalidCredentialsError) as exc:
        await session.login(Credentials("demo@example.com", "wrong"))

    assert exc.value.message == "Invalid credentials"
    assert session.status == SessionStatus.ANONYMOUS
