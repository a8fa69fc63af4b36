from __future__ import annotations

import pytest

from crowdfund.auth.guard import (
    Access,
    RedirectToHome,
    RedirectToLogin,
    Render,
    ShowLoading,
    decide,
    login_url,
    sanitize_next_path,
)
from crowdfund.auth.models import SessionSnapshot, SessionStatus


@pytest.mark.parametrize("access", list(Access))
def test_initializing_always_shows_loading(access) -> None:
    assert decide(SessionStatus.INITIALIZING, access, "/profile") == ShowLoading()


@pytest.mark.parametrize("status", [SessionStatus.ANONYMOUS, SessionStatus.AUTH_ERROR])
def test_protected_view_redirects_to_login_with_path(status) -> None:
    decision = decide(status, Access.AUTHENTICATED, "/projects/42/edit")
    assert decision == RedirectToLogin(next_path="/projects/42/edit")


def test_protected_view_renders_when_authenticated() -> None:
    assert decide(SessionStatus.AUTHENTICATED, Access.AUTHENTICATED, "/profile") == Render()


def test_anonymous_only_view_sends_authenticated_user_home() -> None:
    assert decide(SessionStatus.AUTHENTICATED, Access.ANONYMOUS, "/login") == RedirectToHome(target="/")


def test_anonymous_only_view_honours_carried_target() -> None:
    decision = decide(SessionStatus.AUTHENTICATED, Access.ANONYMOUS, "/login", redirect_to="/create-project")
    assert decision == RedirectToHome(target="/create-project")


def test_anonymous_only_view_rejects_external_target() -> None:
    decision = decide(SessionStatus.AUTHENTICATED, Access.ANONYMOUS, "/login", redirect_to="//evil.example")
    assert decision == RedirectToHome(target="/")


@pytest.mark.parametrize("status", list(SessionStatus))
def test_public_view_renders_once_hydrated(status) -> None:
    expected = ShowLoading() if status == SessionStatus.INITIALIZING else Render()
    assert decide(status, Access.PUBLIC, "/projects") == expected


def test_anonymous_view_renders_for_anonymous() -> None:
    assert decide(SessionStatus.ANONYMOUS, Access.ANONYMOUS, "/register") == Render()


def test_accepts_snapshot() -> None:
    snap = SessionSnapshot(status=SessionStatus.ANONYMOUS)
    assert decide(snap, Access.AUTHENTICATED, "/profile") == RedirectToLogin("/profile")


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, "/"),
        ("", "/"),
        ("profile", "/"),
        ("//evil.com", "/"),
        ("https://evil.com/x", "/"),
        ("/profile", "/profile"),
        ("/a\r\nSet-Cookie: x", "/aSet-Cookie: x"),
    ],
)
def test_sanitize_next_path(raw, expected) -> None:
    assert sanitize_next_path(raw) == expected


def test_login_url() -> None:
    assert login_url("/") == "/login"
    assert login_url("/projects?page=2") == "/login?next=/projects%3Fpage%3D2"
