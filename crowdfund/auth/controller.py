"""
Session controller: the only writer of the credential store and the only place that
decides whether an error is fatal to the session.

State machine:

    INITIALIZING --no token--------------------------> ANONYMOUS
    INITIALIZING --token, profile ok-----------------> AUTHENTICATED
    INITIALIZING --token, profile 401----------------> ANONYMOUS (token cleared)
    ANONYMOUS    --login ok--------------------------> AUTHENTICATED (token stored)
    AUTHENTICATED --logout / 401 anywhere------------> ANONYMOUS (token cleared)
    any          --profile fetch fails, not 401------> AUTH_ERROR (token kept)
    INITIALIZING --login attempt fails---------------> AUTH_ERROR (token kept) / ANONYMOUS (no token)

Every async operation captures the session generation when it starts and only
applies its result if the generation is still current. Logout, forced logout,
bootstrap and login attempts each bump the generation, so a slow login response
can never resurrect a session that was logged out while it was in flight.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from crowdfund.auth.models import (
    Credentials,
    IssuedToken,
    RegistrationResult,
    SessionEvent,
    SessionEventReason,
    SessionSnapshot,
    SessionStatus,
    UserProfile,
)
from crowdfund.auth.store import CredentialStore, FileCredentialStore
from crowdfund.config import ClientConfig, load_client_config
from crowdfund.errors import (
    GENERIC_NETWORK_MESSAGE,
    ApiError,
    CrowdfundError,
    InvalidCredentialsError,
    LoginSupersededError,
    SessionExpiredError,
    TransportError,
    ValidationError,
    field_errors,
    first_error_message,
    joined_error_message,
)
from crowdfund.http.client import ApiClient, ApiRequest, ApiResponse, RequestsTransport, Transport
from crowdfund.http.middleware import DEFAULT_AUTH_EXEMPT_PATHS, attach_token, detect_auth_failure, log_requests

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS_MESSAGE = "Invalid email or password"
LOGIN_FAILED_MESSAGE = "Login failed. Please try again."
SESSION_EXPIRED_MESSAGE = "Your session has expired. Please log in again."
NOT_LOGGED_IN_MESSAGE = "You are not logged in."
LOGIN_SUPERSEDED_MESSAGE = "Login was cancelled by a newer session change."
REGISTRATION_SUCCESS_MESSAGE = "Registration successful! Please check your email to verify your account."
REGISTRATION_FAILED_MESSAGE = "Registration failed. Please try again."
PROFILE_UPDATE_FAILED_MESSAGE = "Failed to update profile. Please try again."
PASSWORD_CHANGE_FAILED_MESSAGE = "Failed to change password. Please check your current password and try again."
RESET_REQUEST_SENT_MESSAGE = "Password reset instructions have been sent to your email."
RESET_REQUEST_FAILED_MESSAGE = "Failed to send password reset email. Please try again."
RESET_CONFIRMED_MESSAGE = "Your password has been reset. You can now log in."
RESET_CONFIRM_FAILED_MESSAGE = "The reset link is invalid or has expired."
EMAIL_VERIFIED_MESSAGE = "Your email has been verified. You can now log in."
EMAIL_VERIFY_FAILED_MESSAGE = "The verification link is invalid or has expired."

Subscriber = Callable[[SessionEvent], None]


def _network_error(e: TransportError) -> TransportError:
    # Keep the subclass (timeout vs. connection) so callers can still tell them apart.
    return type(e)(GENERIC_NETWORK_MESSAGE, method=e.method, endpoint=e.endpoint)


def _parse_user(payload: Any) -> UserProfile:
    if not isinstance(payload, dict):
        raise CrowdfundError("Unexpected profile response from server")
    try:
        return UserProfile.model_validate(payload)
    except PydanticValidationError as e:
        raise CrowdfundError(f"Invalid profile response from server: {e.error_count()} error(s)") from e


class SessionController:
    def __init__(
        self,
        api: ApiClient,
        store: CredentialStore,
        *,
        exempt_paths=DEFAULT_AUTH_EXEMPT_PATHS,
    ) -> None:
        self._api = api
        self._store = store
        self._config: ClientConfig = api.config

        self._status = SessionStatus.INITIALIZING
        self._token: Optional[str] = None
        self._user: Optional[UserProfile] = None
        self._last_error: Optional[str] = None
        self._generation = 0
        self._pending: Dict[str, int] = {}
        self._subscribers: List[Subscriber] = []
        self._refresh_task: Optional[asyncio.Task] = None

        # Outermost first: log -> attach token -> detect 401 -> transport.
        api.use(log_requests())
        api.use(attach_token(store, self._config.auth_scheme))
        api.use(detect_auth_failure(self.handle_auth_failure, exempt_paths))

    # --- state -----------------------------------------------------------------

    @property
    def api(self) -> ApiClient:
        return self._api

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def user(self) -> Optional[UserProfile]:
        return self._user

    @property
    def generation(self) -> int:
        return self._generation

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            status=self._status,
            token=self._token,
            user=self._user,
            generation=self._generation,
            pending=frozenset(k for k, n in self._pending.items() if n > 0),
            last_error=self._last_error,
        )

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register for session changes. Returns an unsubscribe function."""
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def _notify(self, event: SessionEvent) -> None:
        for cb in list(self._subscribers):
            try:
                cb(event)
            except Exception as e:
                logger.error(f"Session subscriber failed: {e}", exc_info=True)

    def _transition(
        self,
        reason: SessionEventReason,
        status: SessionStatus,
        *,
        token: Optional[str],
        user: Optional[UserProfile],
        error: Optional[str] = None,
    ) -> None:
        previous = self.snapshot()
        self._status = status
        self._token = token
        self._user = user
        self._last_error = error
        current = self.snapshot()
        if (previous.status, previous.token, previous.user, previous.last_error) == (
            current.status,
            current.token,
            current.user,
            current.last_error,
        ):
            return
        logger.info(f"Session {previous.status.value} -> {current.status.value} ({reason})")
        self._notify(SessionEvent(reason=reason, previous=previous, current=current))

    def _bump(self) -> int:
        self._generation += 1
        return self._generation

    def _current_token(self) -> Optional[str]:
        return self._token or self._store.get()

    @contextmanager
    def _track(self, kind: str) -> Iterator[None]:
        self._pending[kind] = self._pending.get(kind, 0) + 1
        try:
            yield
        finally:
            self._pending[kind] -= 1
            if self._pending[kind] <= 0:
                del self._pending[kind]

    def _auth_header(self, token: str) -> Dict[str, str]:
        return {"Authorization": f"{self._config.auth_scheme} {token}"}

    def _clear_local(self, reason: SessionEventReason, error: Optional[str] = None) -> None:
        self._bump()
        self._store.clear()
        self._transition(reason, SessionStatus.ANONYMOUS, token=None, user=None, error=error)

    def _expire_if_current(self, token: Optional[str]) -> None:
        if token and token == self._current_token():
            self._clear_local("expired", SESSION_EXPIRED_MESSAGE)

    def _auth_error(self, message: str) -> None:
        # Keep the token: the server may just be unreachable.
        self._transition(
            "error", SessionStatus.AUTH_ERROR, token=self._current_token(), user=self._user, error=message
        )

    # --- forced logout (called by the 401 interceptor) --------------------------

    def handle_auth_failure(self, error: ApiError, request: Optional[ApiRequest] = None) -> None:
        """
        Forced logout after a 401 on a protected endpoint.

        Safe to call any number of times. A 401 for a request that carried an older
        token (or none) says nothing about the current session and is ignored.
        While a login is in flight the rejected token is dropped without bumping the
        generation, so the login still applies.
        """
        current = self._current_token()
        if request is not None:
            sent = request.bearer_token()
            if sent is None or sent != current:
                logger.debug(f"Ignoring 401 for stale request {request.method} {request.path}")
                return
        if current is None and self._status == SessionStatus.ANONYMOUS:
            return
        if "login" in self._pending:
            # Drop the rejected token but leave the generation alone so the login can land.
            self._store.clear()
            self._transition("expired", SessionStatus.ANONYMOUS, token=None, user=None, error=SESSION_EXPIRED_MESSAGE)
            return
        self._clear_local("expired", SESSION_EXPIRED_MESSAGE)

    # --- bootstrap / profile ------------------------------------------------------

    async def _fetch_profile(self, headers: Optional[Dict[str, str]] = None) -> UserProfile:
        resp = await self._api.get("auth/profile/", headers=headers)
        return _parse_user(resp.payload)

    async def bootstrap(self) -> SessionSnapshot:
        """
        Hydrate the session from the credential store.

        Never raises; the outcome is the resulting state.
        """
        gen = self._bump()
        token = self._store.get()
        self._transition("bootstrap", SessionStatus.INITIALIZING, token=token, user=None)
        if not token:
            self._transition("bootstrap", SessionStatus.ANONYMOUS, token=None, user=None)
            return self.snapshot()

        try:
            with self._track("bootstrap"):
                user = await self._fetch_profile()
        except ApiError as e:
            if gen == self._generation:
                if e.is_auth_failure:
                    self._expire_if_current(token)
                else:
                    self._auth_error(e.message)
            return self.snapshot()
        except TransportError as e:
            if gen == self._generation:
                self._auth_error(e.message or GENERIC_NETWORK_MESSAGE)
            return self.snapshot()
        except CrowdfundError as e:
            if gen == self._generation:
                self._auth_error(e.message)
            return self.snapshot()

        if gen == self._generation:
            self._transition("bootstrap", SessionStatus.AUTHENTICATED, token=token, user=user)
        else:
            logger.debug("Discarding stale bootstrap result")
        return self.snapshot()

    async def refresh_profile(self) -> UserProfile:
        """
        Re-fetch the user record with the current token.

        Concurrent callers share a single request.
        """
        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._refresh())
            self._refresh_task = task
        return await asyncio.shield(task)

    async def _refresh(self) -> UserProfile:
        token = self._current_token()
        if not token:
            raise SessionExpiredError(NOT_LOGGED_IN_MESSAGE)
        gen = self._generation
        try:
            with self._track("refresh"):
                user = await self._fetch_profile()
        except ApiError as e:
            if e.is_auth_failure:
                self._expire_if_current(token)
                raise SessionExpiredError(SESSION_EXPIRED_MESSAGE) from e
            if gen == self._generation:
                self._auth_error(e.message)
            raise
        except TransportError as e:
            if gen == self._generation:
                self._auth_error(GENERIC_NETWORK_MESSAGE)
            raise _network_error(e) from e
        except CrowdfundError as e:
            if gen == self._generation:
                self._auth_error(e.message)
            raise

        if gen == self._generation and token == self._current_token():
            self._transition("profile", SessionStatus.AUTHENTICATED, token=token, user=user)
        else:
            logger.debug("Discarding stale profile refresh")
        return user

    # --- login / logout -------------------------------------------------------------

    async def login(self, credentials: Union[Credentials, IssuedToken]) -> UserProfile:
        """
        Log in with an identifier/secret pair, or adopt a token issued elsewhere.

        On failure the current token and status are left untouched.
        """
        gen = self._bump()
        if isinstance(credentials, IssuedToken):
            return self._apply_login(gen, credentials.token, credentials.user)
        try:
            token, user = await self._authenticate(credentials)
        except CrowdfundError:
            # A login started mid-bootstrap supersedes it; don't leave the session hanging.
            if gen == self._generation and self._status == SessionStatus.INITIALIZING:
                if self._current_token():
                    self._auth_error(NOT_LOGGED_IN_MESSAGE)
                else:
                    self._transition("login", SessionStatus.ANONYMOUS, token=None, user=None)
            raise
        return self._apply_login(gen, token, user)

    async def _authenticate(self, credentials: Credentials) -> Tuple[str, UserProfile]:
        body = {
            self._config.login_identifier_field: credentials.identifier,
            "password": credentials.secret,
        }
        with self._track("login"):
            try:
                resp = await self._api.post("auth/login/", json=body)
            except ApiError as e:
                raise self._login_error(e) from e
            except TransportError as e:
                raise _network_error(e) from e

            payload = resp.payload if isinstance(resp.payload, dict) else {}
            user_data = payload.get("user")
            token = payload.get("token")
            if not token and isinstance(user_data, dict):
                token = user_data.get("token")
            if not token or not isinstance(token, str):
                raise CrowdfundError(LOGIN_FAILED_MESSAGE)

            if isinstance(user_data, dict):
                user = _parse_user(user_data)
            else:
                try:
                    user = await self._fetch_profile(headers=self._auth_header(token))
                except ApiError as e:
                    raise CrowdfundError(LOGIN_FAILED_MESSAGE) from e
                except TransportError as e:
                    raise _network_error(e) from e
        return token, user

    def _apply_login(self, gen: int, token: str, user: UserProfile) -> UserProfile:
        if gen != self._generation:
            logger.info("Discarding login response: session changed while it was in flight")
            raise LoginSupersededError(LOGIN_SUPERSEDED_MESSAGE)
        self._store.set(token)
        self._transition("login", SessionStatus.AUTHENTICATED, token=token, user=user)
        return user

    def _login_error(self, e: ApiError) -> CrowdfundError:
        message = first_error_message(e.payload)
        if e.status_code in (400, 401, 403):
            return InvalidCredentialsError(message or INVALID_CREDENTIALS_MESSAGE)
        return ApiError(
            LOGIN_FAILED_MESSAGE,
            status_code=e.status_code,
            method=e.method,
            endpoint=e.endpoint,
            payload=e.payload,
        )

    async def logout(self) -> None:
        """
        Local-first logout.

        State is cleared before the server is told; the notification is best-effort.
        """
        token = self._current_token()
        self._clear_local("logout")
        if not token:
            return
        try:
            with self._track("logout"):
                await self._api.post("auth/logout/", headers=self._auth_header(token))
        except CrowdfundError as e:
            logger.info(f"Logout notification failed (ignored): {e.message}")

    # --- registration / recovery ----------------------------------------------------

    async def register(
        self, data: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None
    ) -> RegistrationResult:
        with self._track("register"):
            try:
                if files:
                    resp = await self._api.post("auth/register/", data=data, files=files)
                else:
                    resp = await self._api.post("auth/register/", json=dict(data))
            except ApiError as e:
                errors = field_errors(e.payload)
                if errors and e.status_code < 500:
                    raise ValidationError(first_error_message(e.payload) or REGISTRATION_FAILED_MESSAGE, errors) from e
                raise ValidationError(REGISTRATION_FAILED_MESSAGE) from e
            except TransportError as e:
                raise _network_error(e) from e

        payload = resp.payload if isinstance(resp.payload, dict) else {}
        token = payload.get("token")
        user_data = payload.get("user")
        if self._config.register_auto_login and isinstance(token, str) and token and isinstance(user_data, dict):
            user = await self.login(IssuedToken(token=token, user=_parse_user(user_data)))
            return RegistrationResult(message="Registration successful!", authenticated=True, user=user, payload=payload)
        return RegistrationResult(message=REGISTRATION_SUCCESS_MESSAGE, payload=payload)

    async def _simple_call(
        self,
        kind: str,
        method: str,
        path: str,
        *,
        json: Any = None,
        failure_message: str,
    ) -> ApiResponse:
        with self._track(kind):
            try:
                return await self._api.request(method, path, json=json)
            except ApiError as e:
                if e.status_code >= 500:
                    raise ApiError(
                        failure_message,
                        status_code=e.status_code,
                        method=e.method,
                        endpoint=e.endpoint,
                        payload=e.payload,
                    ) from e
                raise ValidationError(joined_error_message(e.payload) or failure_message, field_errors(e.payload)) from e
            except TransportError as e:
                raise _network_error(e) from e

    async def request_password_reset(self, identifier: str) -> str:
        await self._simple_call(
            "password_reset",
            "POST",
            "auth/forgot-password/",
            json={"email": identifier},
            failure_message=RESET_REQUEST_FAILED_MESSAGE,
        )
        return RESET_REQUEST_SENT_MESSAGE

    async def confirm_password_reset(self, reset_id: str, secret: str, new_secret: str) -> str:
        await self._simple_call(
            "password_reset_confirm",
            "POST",
            f"auth/reset-password/{reset_id}/{secret}/",
            json={"password": new_secret},
            failure_message=RESET_CONFIRM_FAILED_MESSAGE,
        )
        return RESET_CONFIRMED_MESSAGE

    async def verify_email(self, reset_id: str, secret: str) -> str:
        await self._simple_call(
            "verify_email",
            "GET",
            f"auth/activate/{reset_id}/{secret}/",
            failure_message=EMAIL_VERIFY_FAILED_MESSAGE,
        )
        return EMAIL_VERIFIED_MESSAGE

    # --- protected profile operations -------------------------------------------------

    async def _protected(self, kind: str, method: str, path: str, **kwargs: Any) -> ApiResponse:
        token = self._current_token()
        if not token:
            raise SessionExpiredError(NOT_LOGGED_IN_MESSAGE)
        with self._track(kind):
            try:
                return await self._api.request(method, path, **kwargs)
            except ApiError as e:
                if e.is_auth_failure:
                    self._expire_if_current(token)
                    raise SessionExpiredError(SESSION_EXPIRED_MESSAGE) from e
                raise
            except TransportError as e:
                raise _network_error(e) from e

    async def update_profile(
        self, fields: Mapping[str, Any], files: Optional[Mapping[str, Any]] = None
    ) -> UserProfile:
        token = self._current_token()
        gen = self._generation
        try:
            if files:
                resp = await self._protected("profile_update", "PUT", "auth/profile/", data=dict(fields), files=files)
            else:
                resp = await self._protected("profile_update", "PUT", "auth/profile/", json=dict(fields))
        except ApiError as e:
            if e.status_code == 400:
                raise ValidationError(
                    first_error_message(e.payload) or PROFILE_UPDATE_FAILED_MESSAGE, field_errors(e.payload)
                ) from e
            raise
        user = _parse_user(resp.payload)
        if gen == self._generation and token == self._current_token():
            self._transition("profile", SessionStatus.AUTHENTICATED, token=token, user=user)
        return user

    async def change_password(self, current_secret: str, new_secret: str) -> None:
        try:
            await self._protected(
                "password_change",
                "POST",
                "auth/change-password/",
                json={"current_password": current_secret, "new_password": new_secret},
            )
        except ApiError as e:
            if e.status_code == 400:
                raise ValidationError(
                    first_error_message(e.payload) or PASSWORD_CHANGE_FAILED_MESSAGE, field_errors(e.payload)
                ) from e
            raise

    async def delete_account(self) -> None:
        await self._protected("delete_account", "DELETE", "auth/profile/delete/")
        self._clear_local("logout")


def build_session(
    config: Optional[ClientConfig] = None,
    *,
    store: Optional[CredentialStore] = None,
    transport: Optional[Transport] = None,
) -> SessionController:
    """Wire store, transport, client and controller from configuration."""
    cfg = config or load_client_config()
    store = store if store is not None else FileCredentialStore(cfg.token_file, key=cfg.token_key)
    transport = transport if transport is not None else RequestsTransport(cfg.api_base_url)
    return SessionController(ApiClient(transport, cfg), store)
