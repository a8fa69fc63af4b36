from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union
from urllib.parse import quote

from crowdfund.auth.models import SessionSnapshot, SessionStatus

LOGIN_PATH = "/login"
HOME_PATH = "/"


class Access(str, Enum):
    PUBLIC = "public"
    AUTHENTICATED = "requires-authenticated"
    ANONYMOUS = "requires-anonymous"  # login/register pages


@dataclass(frozen=True)
class Render:
    pass


@dataclass(frozen=True)
class ShowLoading:
    pass


@dataclass(frozen=True)
class RedirectToLogin:
    next_path: str

    @property
    def location(self) -> str:
        return login_url(self.next_path)


@dataclass(frozen=True)
class RedirectToHome:
    target: str = HOME_PATH

    @property
    def location(self) -> str:
        return self.target


Decision = Union[Render, ShowLoading, RedirectToLogin, RedirectToHome]


def sanitize_next_path(next_path: Optional[str]) -> str:
    """
    Prevent open-redirects: allow only relative paths like `/profile`.
    """
    p = (next_path or "").strip()
    if not p:
        return HOME_PATH
    if not p.startswith("/"):
        return HOME_PATH
    # Disallow scheme-relative: `//evil.com`
    if p.startswith("//"):
        return HOME_PATH
    p = p.replace("\r", "").replace("\n", "")
    return p or HOME_PATH


def login_url(next_path: Optional[str]) -> str:
    nxt = sanitize_next_path(next_path)
    if nxt == HOME_PATH:
        return LOGIN_PATH
    return f"{LOGIN_PATH}?next={quote(nxt, safe='/')}"


def decide(
    status: Union[SessionStatus, SessionSnapshot],
    access: Access,
    path: str,
    redirect_to: Optional[str] = None,
) -> Decision:
    """
    Decide whether a view may render for the current session state.

    `redirect_to` is the target carried into an anonymous-only view (e.g. the
    `next` of the login page); an already-authenticated user is sent there.
    """
    if isinstance(status, SessionSnapshot):
        status = status.status

    # Never redirect before hydration finishes.
    if status == SessionStatus.INITIALIZING:
        return ShowLoading()

    if access == Access.AUTHENTICATED and status in (SessionStatus.ANONYMOUS, SessionStatus.AUTH_ERROR):
        return RedirectToLogin(next_path=sanitize_next_path(path))

    if access == Access.ANONYMOUS and status == SessionStatus.AUTHENTICATED:
        return RedirectToHome(target=sanitize_next_path(redirect_to))

    return Render()
