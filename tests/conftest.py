"""Shared fixtures: a scripted fake backend and a controllable clock."""

import json
from typing import Any, Dict, List
from urllib.parse import parse_qs

import httpx
import pytest

from eway_gateway.services.auth import AuthConfig, AuthMode, create_password_hash

API_URL = "https://crm.example.com/eway/API.svc"


class FakeBackend:
    """
    Scripted stand-in for the backend and its authorization server.

    Responses are queued per method name (the last path segment). The last
    queued response of a method is repeated once the queue is exhausted.
    """

    def __init__(self):
        self.requests: List[httpx.Request] = []
        self._responses: Dict[str, List[Any]] = {}

    def queue(self, method: str, *responses: Any) -> None:
        self._responses.setdefault(method, []).extend(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.url.path.rsplit("/", 1)[-1]
        queued = self._responses.get(method)
        if not queued:
            return httpx.Response(404, json={"error": f"unscripted {method}"})
        item = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(item, Exception):
            raise item
        if isinstance(item, httpx.Response):
            return item
        return httpx.Response(200, json=item)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def requests_to(self, method: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{method}")]

    def bodies(self, method: str) -> List[Dict[str, Any]]:
        return [json.loads(r.content) for r in self.requests_to(method)]

    def forms(self, method: str) -> List[Dict[str, str]]:
        return [
            {k: v[0] for k, v in parse_qs(r.content.decode()).items()}
            for r in self.requests_to(method)
        ]


class FakeClock:
    """Callable clock returning seconds since the epoch."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def legacy_config():
    return AuthConfig(
        api_url=API_URL,
        mode=AuthMode.LEGACY,
        username="api",
        password_hash=create_password_hash("secret123"),
    )


@pytest.fixture
def oauth_config():
    return AuthConfig(
        api_url=API_URL,
        mode=AuthMode.OAUTH2,
        client_id="client-id-123456",
        client_secret="client-secret-abcdef",
        redirect_uri="http://localhost:3000/api/v1/oauth2/callback",
        username="api",
    )


def token_payload(access="access-1", refresh="refresh-1", expires_in=3600, **extra):
    """Token endpoint response body."""
    body = {"access_token": access, "token_type": "Bearer", "expires_in": expires_in}
    if refresh is not None:
        body["refresh_token"] = refresh
    body.update(extra)
    return body


def login_ok(session_id="abc-123"):
    body = {"ReturnCode": "rcSuccess", "Description": None}
    if session_id is not None:
        body["SessionId"] = session_id
    return body
