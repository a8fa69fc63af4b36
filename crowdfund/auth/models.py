from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Literal, Optional

from pydantic import BaseModel, ConfigDict


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    AUTH_ERROR = "auth_error"  # token kept; profile fetch failed for a non-auth reason


class UserProfile(BaseModel):
    """User record as returned by auth/profile/ (backend may add fields)."""

    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    mobile_phone: Optional[str] = None
    profile_picture: Optional[str] = None
    birthdate: Optional[str] = None
    country: Optional[str] = None
    facebook_profile: Optional[str] = None

    @property
    def display_name(self) -> str:
        full = " ".join(x for x in (self.first_name, self.last_name) if x)
        return full or self.username or self.email or "User"


@dataclass(frozen=True)
class Credentials:
    """Identifier (email or username) and secret."""

    identifier: str
    secret: str


@dataclass(frozen=True)
class IssuedToken:
    """Token + user obtained elsewhere (e.g. auto-login after registration)."""

    token: str
    user: UserProfile


@dataclass(frozen=True)
class SessionSnapshot:
    status: SessionStatus
    token: Optional[str] = None
    user: Optional[UserProfile] = None
    generation: int = 0
    pending: FrozenSet[str] = field(default_factory=frozenset)
    last_error: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.status == SessionStatus.AUTHENTICATED


SessionEventReason = Literal["bootstrap", "login", "logout", "expired", "profile", "error"]


@dataclass(frozen=True)
class SessionEvent:
    reason: SessionEventReason
    previous: SessionSnapshot
    current: SessionSnapshot


@dataclass(frozen=True)
class RegistrationResult:
    message: str
    authenticated: bool = False
    user: Optional[UserProfile] = None
    payload: Dict[str, Any] = field(default_factory=dict)
