"""
Pytest configuration for pkce_proxy. In-memory audit DB, a controllable clock, and a fake
upstream provider served through httpx.MockTransport so no test touches the network.
"""
import os

# In-memory SQLite; database.py uses StaticPool so all sessions share the same DB
os.environ["AUDIT_DATABASE_URL"] = "sqlite:///:memory:"

from datetime import datetime, timedelta, timezone

import httpx
import pytest

from pkce_proxy.config import ProxyConfig
from pkce_proxy.database import init_db
from pkce_proxy.proxy import PKCEOAuthProxy
from pkce_proxy.upstream import UpstreamClient

T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeUpstream:
    """
    MockTransport handler standing in for Reflect. Token exchanges answer with
    token_status/token_body (dict -> JSON, str -> raw text) unless token_error is set.
    on_exchange runs while the exchange is "in flight", before the response is returned.
    """

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_status = 200
        self.token_body: dict | str = {"access_token": "U1", "refresh_token": "R1", "expires_in": 120}
        self.token_error: Exception | None = None
        self.on_exchange = None
        self.graphs_status = 200
        self.graphs_body = [{"id": "g1", "name": "Notes"}]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path.endswith("/oauth/token"):
            if self.on_exchange is not None:
                self.on_exchange()
            if self.token_error is not None:
                raise self.token_error
            if isinstance(self.token_body, str):
                return httpx.Response(self.token_status, text=self.token_body)
            return httpx.Response(self.token_status, json=self.token_body)
        if request.url.path.endswith("/graphs"):
            return httpx.Response(self.graphs_status, json=self.graphs_body)
        return httpx.Response(404, json={"error": "not_found"})

    @property
    def token_requests(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith("/oauth/token")]


@pytest.fixture(autouse=True)
def audit_db():
    init_db()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream_server():
    return FakeUpstream()


@pytest.fixture
def config(tmp_path):
    return ProxyConfig(
        base_url="http://localhost:3000",
        client_id="reflect-public-client",
        authorization_endpoint="https://reflect.test/oauth",
        token_endpoint="https://reflect.test/api/oauth/token",
        scopes=["read:graph", "write:graph"],
        token_storage_path=str(tmp_path / "tokens.json"),
        api_url="https://reflect.test/api",
    )


@pytest.fixture
def make_proxy(config, clock, upstream_server):
    """Build an engine over the shared config/clock/fake upstream; call again to simulate a restart."""

    def _make(**kwargs) -> PKCEOAuthProxy:
        upstream = UpstreamClient(
            token_endpoint=config.token_endpoint,
            client_id=config.client_id,
            redirect_uri=config.callback_url,
            api_url=config.api_url,
            transport=httpx.MockTransport(upstream_server),
        )
        return PKCEOAuthProxy(config, upstream=upstream, clock=clock, **kwargs)

    return _make


@pytest.fixture
def proxy(make_proxy):
    return make_proxy()
