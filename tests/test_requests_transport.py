from __future__ import annotations

import json

import pytest
import requests

from crowdfund.errors import RequestTimeoutError, TransportError
from crowdfund.http.client import ApiRequest, RequestsTransport


def _response(status: int, body: bytes = b"", content_type: str = "application/json") -> requests.Response:
    r = requests.Response()
    r.status_code = status
    r._content = body
    r.headers["Content-Type"] = content_type
    return r


@pytest.fixture
def http_session(monkeypatch):
    sess = requests.Session()
    calls = []

    def _fake_request(method, url, **kwargs):
        calls.append({"method": method, "url": url, **kwargs})
        handler = sess.next_response
        if isinstance(handler, Exception):
            raise handler
        return handler

    monkeypatch.setattr(sess, "request", _fake_request)
    sess.next_response = _response(200, b"{}")
    sess.calls = calls
    return sess


@pytest.mark.asyncio
async def test_send_builds_url_and_passes_timeout(http_session) -> None:
    http_session.next_response = _response(200, json.dumps({"id": 1}).encode())
    t = RequestsTransport("http://api.test/api", session=http_session)

    resp = await t.send(
        ApiRequest(method="GET", path="auth/profile/", headers={"Authorization": "Token x"}), timeout=7
    )

    assert resp.status_code == 200
    assert resp.payload == {"id": 1}
    call = http_session.calls[0]
    assert call["url"] == "http://api.test/api/auth/profile/"
    assert call["timeout"] == 7
    assert call["headers"] == {"Authorization": "Token x"}


@pytest.mark.asyncio
async def test_error_status_is_returned_not_raised(http_session) -> None:
    http_session.next_response = _response(401, b'{"detail": "Invalid token."}')
    t = RequestsTransport("http://api.test/api/", session=http_session)

    resp = await t.send(ApiRequest(method="GET", path="donations/"), timeout=5)

    assert resp.status_code == 401
    assert resp.payload == {"detail": "Invalid token."}


@pytest.mark.asyncio
async def test_non_json_and_empty_bodies(http_session) -> None:
    t = RequestsTransport("http://api.test/api/", session=http_session)

    http_session.next_response = _response(502, b"Bad Gateway", content_type="text/plain")
    assert (await t.send(ApiRequest(method="GET", path="project/"), timeout=5)).payload == "Bad Gateway"

    http_session.next_response = _response(204, b"")
    assert (await t.send(ApiRequest(method="DELETE", path="auth/profile/delete/"), timeout=5)).payload is None


@pytest.mark.asyncio
async def test_timeout_maps_to_request_timeout_error(http_session) -> None:
    http_session.next_response = requests.exceptions.ReadTimeout("read timed out")
    t = RequestsTransport("http://api.test/api/", session=http_session)

    with pytest.raises(RequestTimeoutError) as exc:
        await t.send(ApiRequest(method="GET", path="auth/profile/"), timeout=3)

    assert exc.value.endpoint == "auth/profile/"


@pytest.mark.asyncio
async def test_connection_error_maps_to_transport_error(http_session) -> None:
    http_session.next_response = requests.exceptions.ConnectionError("connection refused")
    t = RequestsTransport("http://api.test/api/", session=http_session)

    with pytest.raises(TransportError) as exc:
        await t.send(ApiRequest(method="POST", path="auth/login/"), timeout=3)

    assert not isinstance(exc.value, RequestTimeoutError)
    assert exc.value.method == "POST"
