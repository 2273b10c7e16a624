"""
tests/conftest.py -- Shared fixtures for SecureAuth gateway and harness tests.

This module provides:
  - make_gateway(): builds an isolated app via create_app() with a
    list-backed telemetry sink, so each test sees only its own events
  - gateway: TestClient + captured events, default settings (gate on)
  - vuln_gateway: same, with VULN_MODE on and /internal/reports bypassed
  - TestClientSession: lets scanner.client.ProbeClient drive a TestClient
    instead of the network

Design: every fixture here is function-scoped. The credential and session
stores are volatile and created in the app lifespan, so a fresh TestClient
means a fresh user table -- no cross-test username collisions, no leaked
cookies in the client jar.

bcrypt_rounds=4 is the minimum bcrypt accepts; it keeps hashing fast without
changing any behaviour under test.
"""

from __future__ import annotations

from collections.abc import Generator
from urllib.parse import urlsplit

import pytest
from fastapi.testclient import TestClient

from api.limiter import configure_limiter
from api.main import create_app
from core.config import Settings
from core.telemetry import TelemetryEvent

Gateway = tuple[TestClient, list[TelemetryEvent]]


def make_gateway(**overrides) -> tuple:
    """Return (app, events) for a fresh gateway built from explicit Settings."""
    events: list[TelemetryEvent] = []
    settings = Settings(bcrypt_rounds=4, **overrides)
    app = create_app(settings, telemetry_sinks=[events.append])
    return app, events


def cookie_header(client: TestClient, name: str = "sid") -> dict[str, str]:
    """Move the session cookie out of the client jar into an explicit header.

    Clearing the jar means the request carries exactly the cookie the test
    chose, and nothing the client picked up on earlier responses.
    """
    value = client.cookies.get(name)
    client.cookies.clear()
    return {"Cookie": f"{name}={value}"} if value else {}


@pytest.fixture
def gateway() -> Generator[Gateway, None, None]:
    app, events = make_gateway()
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, events


@pytest.fixture
def vuln_gateway() -> Generator[Gateway, None, None]:
    app, events = make_gateway(vuln_mode=True, vuln_route="/internal/reports")
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, events


@pytest.fixture
def limited_gateway() -> Generator[Gateway, None, None]:
    """Gateway with login rate limiting on at 3/minute.

    The limiter is a process-wide singleton, so it is switched back off and
    its counters cleared on teardown.
    """
    app, events = make_gateway(rate_limit_enabled=True, login_rate_limit="3/minute")
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, events
    configure_limiter(False, "5/minute")


class TestClientSession:
    """requests.Session stand-in that routes ProbeClient calls into a TestClient.

    Only the pieces ProbeClient uses are implemented. Cookies are cleared
    around every call so the TestClient jar behaves like the harness's
    cookie-blocking jar.
    """

    __test__ = False  # not a test class despite the name

    def __init__(self, client: TestClient) -> None:
        self.client = client

    def request(self, method, url, headers=None, data=None, timeout=None, allow_redirects=False):
        self.client.cookies.clear()
        resp = self.client.request(
            method,
            urlsplit(url).path,
            headers=headers,
            content=data,
            follow_redirects=allow_redirects,
        )
        self.client.cookies.clear()
        return resp
