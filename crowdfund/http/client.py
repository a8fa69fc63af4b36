"""
REST client with an explicit middleware chain.

The chain is built per call: middlewares are plain async callables
`(request, call_next) -> response`, composed around the transport. The innermost
handler enforces the timeout and turns non-2xx responses into `ApiError`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol

import requests

from crowdfund.config import ClientConfig
from crowdfund.errors import ApiError, RequestTimeoutError, TransportError, first_error_message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    method: str
    path: str  # relative to the API base URL, e.g. "auth/profile/"
    headers: Mapping[str, str] = field(default_factory=dict)
    json: Any = None
    params: Optional[Mapping[str, Any]] = None
    data: Optional[Mapping[str, Any]] = None  # form fields (multipart uploads)
    files: Optional[Mapping[str, Any]] = None

    def with_header(self, name: str, value: str) -> "ApiRequest":
        headers = dict(self.headers)
        headers[name] = value
        return replace(self, headers=headers)

    def header(self, name: str) -> Optional[str]:
        lname = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lname:
                return v
        return None

    def bearer_token(self) -> Optional[str]:
        """Token carried in the Authorization header, whatever the scheme."""
        raw = (self.header("Authorization") or "").strip()
        if not raw:
            return None
        parts = raw.split(None, 1)
        return parts[1].strip() if len(parts) == 2 else None


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    payload: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


Handler = Callable[[ApiRequest], Awaitable[ApiResponse]]
Middleware = Callable[[ApiRequest, Handler], Awaitable[ApiResponse]]


class Transport(Protocol):
    async def send(self, request: ApiRequest, timeout: float) -> ApiResponse: ...


def _decode_body(resp: requests.Response) -> Any:
    if not resp.content:
        return None
    try:
        return resp.json()
    except ValueError:
        return resp.text


class RequestsTransport:
    """
    `requests`-backed transport.

    requests is blocking, so each call runs in a worker thread to keep the event
    loop responsive.
    """

    def __init__(self, base_url: str, session: Optional[requests.Session] = None) -> None:
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._session = session or requests.Session()
        self._session.headers.setdefault("Accept", "application/json")

    def url_for(self, path: str) -> str:
        return self._base_url + path.lstrip("/")

    def _send_blocking(self, request: ApiRequest, timeout: float) -> ApiResponse:
        url = self.url_for(request.path)
        try:
            resp = self._session.request(
                request.method,
                url,
                headers=dict(request.headers),
                json=request.json,
                params=request.params,
                data=request.data,
                files=request.files,
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            raise RequestTimeoutError(
                f"Request timed out after {timeout:g}s", method=request.method, endpoint=request.path
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"No response from server: {str(e)}", method=request.method, endpoint=request.path
            ) from e
        return ApiResponse(status_code=resp.status_code, payload=_decode_body(resp), headers=dict(resp.headers))

    async def send(self, request: ApiRequest, timeout: float) -> ApiResponse:
        return await asyncio.to_thread(self._send_blocking, request, timeout)

    def close(self) -> None:
        self._session.close()


class ApiClient:
    """Entry point for every backend call; shared by the session controller and services."""

    def __init__(self, transport: Transport, config: ClientConfig) -> None:
        self._transport = transport
        self._config = config
        self._middlewares: List[Middleware] = []

    @property
    def config(self) -> ClientConfig:
        return self._config

    def use(self, middleware: Middleware) -> None:
        """Append a middleware. The first one installed runs outermost."""
        self._middlewares.append(middleware)

    async def _send_checked(self, request: ApiRequest) -> ApiResponse:
        timeout = self._config.timeout_seconds
        try:
            resp = await asyncio.wait_for(self._transport.send(request, timeout), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise RequestTimeoutError(
                f"Request timed out after {timeout:g}s", method=request.method, endpoint=request.path
            ) from e
        if resp.status_code >= 400:
            message = first_error_message(resp.payload) or f"Request failed with status {resp.status_code}"
            raise ApiError(
                message,
                status_code=resp.status_code,
                method=request.method,
                endpoint=request.path,
                payload=resp.payload,
            )
        return resp

    def _build_chain(self) -> Handler:
        handler: Handler = self._send_checked
        for mw in reversed(self._middlewares):
            handler = _bind(mw, handler)
        return handler

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
        files: Optional[Mapping[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> ApiResponse:
        req = ApiRequest(
            method=method.upper(),
            path=path.lstrip("/"),
            headers=dict(headers or {}),
            json=json,
            params=params,
            data=data,
            files=files,
        )
        return await self._build_chain()(req)

    async def get(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("POST", path, **kwargs)

    async def put(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("PUT", path, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> ApiResponse:
        return await self.request("DELETE", path, **kwargs)


def _bind(mw: Middleware, call_next: Handler) -> Handler:
    async def _handler(request: ApiRequest) -> ApiResponse:
        return await mw(request, call_next)

    return _handler
