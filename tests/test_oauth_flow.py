"""
Goal: Authorization code flow on a real background loop, with the token endpoint mocked by httpx.MockTransport.
"""
import base64
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from fastapi.testclient import TestClient

from spotify_bridge.auth.oauth import AuthorizationCodeFlow, Stage, Status

TOKEN_URL = "https://accounts.example/api/token"


class TokenEndpoint:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else {"access_token": "acc", "expires_in": 3600}
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/api/token":
            return httpx.Response(self.status, json=self.body)
        return httpx.Response(204)

    def form(self, index=-1):
        return {k: v[0] for k, v in parse_qs(self.requests[index].content.decode()).items()}


def make_flow(loop_thread, endpoint, clock=lambda: 1000.0):
    flow = AuthorizationCodeFlow(
        loop_thread,
        token_url=TOKEN_URL,
        redirect_port=18765,
        transport=httpx.MockTransport(endpoint),
        clock=clock,
    )
    flow.client_id = "cid"
    flow.client_secret = "secret"
    return flow


@pytest.fixture
def events():
    return []


def wire(flow, events):
    flow.status_changed = lambda s: events.append(("status", s))
    flow.expiration_changed = lambda e: events.append(("expiry", e))
    flow.refresh_token_changed = lambda t: events.append(("refresh_token", t))


def test_authorize_url(loop_thread):
    flow = make_flow(loop_thread, TokenEndpoint())
    url = urlparse(flow.authorize_url("xyz"))
    q = {k: v[0] for k, v in parse_qs(url.query).items()}
    assert q["response_type"] == "code"
    assert q["client_id"] == "cid"
    assert q["redirect_uri"] == "http://127.0.0.1:18765/callback"
    assert q["state"] == "xyz"
    assert "user-modify-playback-state" in q["scope"]
    flow.close()


def test_refresh_success_fires_hooks(loop_thread, events):
    endpoint = TokenEndpoint(body={"access_token": "acc", "expires_in": 3600, "refresh_token": "new"})
    flow = make_flow(loop_thread, endpoint)
    flow.refresh_token = "old"
    wire(flow, events)
    seen = []
    flow.modify_parameters = lambda stage, params: seen.append(stage)

    assert flow.refresh_access_token().result(timeout=5) is True
    assert events == [("expiry", 4600.0), ("refresh_token", "new"), ("status", Status.GRANTED)]
    assert seen == [Stage.REFRESHING_ACCESS_TOKEN]
    assert flow.access_token == "acc"
    assert flow.expiration_at == 4600.0

    form = endpoint.form()
    assert form == {"grant_type": "refresh_token", "refresh_token": "old"}
    auth = endpoint.requests[0].headers["Authorization"]
    assert auth == "Basic " + base64.b64encode(b"cid:secret").decode()
    flow.close()


def test_refresh_keeps_token_when_not_rotated(loop_thread, events):
    endpoint = TokenEndpoint(body={"access_token": "acc", "expires_in": 60, "refresh_token": "same"})
    flow = make_flow(loop_thread, endpoint)
    flow.refresh_token = "same"
    wire(flow, events)
    assert flow.refresh_access_token().result(timeout=5) is True
    assert [name for name, _ in events] == ["expiry", "status"]
    flow.close()


@pytest.mark.parametrize("status,body", [(400, {"error": "invalid_grant"}), (200, {"unexpected": True})])
def test_refresh_failure_reports_false(loop_thread, events, status, body):
    flow = make_flow(loop_thread, TokenEndpoint(status=status, body=body))
    flow.refresh_token = "old"
    wire(flow, events)
    assert flow.refresh_access_token().result(timeout=5) is False
    assert events == []
    assert flow.status is Status.NOT_AUTHENTICATED
    flow.close()


def test_refresh_without_token(loop_thread):
    endpoint = TokenEndpoint()
    flow = make_flow(loop_thread, endpoint)
    assert flow.refresh_access_token().result(timeout=5) is False
    assert endpoint.requests == []
    flow.close()


def test_grant_then_callback_exchanges_code(loop_thread, events, monkeypatch):
    endpoint = TokenEndpoint(body={"access_token": "acc", "expires_in": 3600, "refresh_token": "r1"})
    flow = make_flow(loop_thread, endpoint)
    wire(flow, events)
    opened = []
    flow.authorize_with_browser = opened.append

    async def no_listener():
        return None

    monkeypatch.setattr(flow, "_ensure_listener", no_listener)

    url = flow.grant().result(timeout=5)
    assert opened == [url]
    state = parse_qs(urlparse(url).query)["state"][0]

    assert loop_thread.submit(flow.handle_callback({"code": "c0de", "state": "wrong"})).result(timeout=5) is False
    assert endpoint.requests == []

    assert loop_thread.submit(flow.handle_callback({"code": "c0de", "state": state})).result(timeout=5) is True
    form = endpoint.form()
    assert form["grant_type"] == "authorization_code"
    assert form["code"] == "c0de"
    assert form["redirect_uri"] == flow.redirect_uri
    assert form["client_id"] == "cid"
    assert ("refresh_token", "r1") in events
    assert events[-1] == ("status", Status.GRANTED)

    # state is single use
    assert loop_thread.submit(flow.handle_callback({"code": "c0de", "state": state})).result(timeout=5) is False
    flow.close()


def test_callback_route_rejects_denied_authorization(loop_thread):
    flow = make_flow(loop_thread, TokenEndpoint())
    client = TestClient(flow.redirect_app)
    r = client.get("/callback", params={"error": "access_denied"})
    assert r.status_code == 400
    r = client.get("/callback", params={"code": "abc"})
    assert r.status_code == 400
    flow.close()


def test_request_carries_bearer_token(loop_thread):
    endpoint = TokenEndpoint()
    flow = make_flow(loop_thread, endpoint)
    flow.access_token = "acc"
    response = flow.request("PUT", "https://api.example/v1/me/player/pause").result(timeout=5)
    assert response.status_code == 204
    assert endpoint.requests[0].headers["Authorization"] == "Bearer acc"
    assert endpoint.requests[0].method == "PUT"
    flow.close()


def test_request_transport_error_surfaces_on_future(loop_thread):
    def refuse(request):
        raise httpx.ConnectError("connection refused", request=request)

    flow = make_flow(loop_thread, refuse)
    future = flow.request("GET", "https://api.example/v1/me/player")
    with pytest.raises(httpx.ConnectError):
        future.result(timeout=5)
    flow.close()
