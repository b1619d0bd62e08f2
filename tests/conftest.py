# Back-office Test Suite - Shared Configuration and Fixtures
#
# This module provides:
# - A fake REST backend mounted on httpx.MockTransport
# - JWT minting for tokens with a chosen expiry
# - In-memory shared storage (one per test, shared by every "tab")
# - A recording timer factory so expiry timers can be inspected and fired
# - Flask app, test client and CLI runner wired to the fake backend

import json
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import httpx
import jwt
import pytest

from backoffice import create_app
from backoffice.extensions import get_context
from backoffice.services.api_client import ApiClient
from backoffice.services.session_service import SessionManager
from backoffice.services.storage_service import ClientStorage


API_BASE = "http://testserver/api"
PASSWORD = "Password123!"
TOKEN_SECRET = "fake-backend-secret"

ADMIN = {"id": 1, "email": "admin@example.com", "role": "admin", "admin_level": "overall"}
CASHIER = {"id": 2, "email": "cashier@example.com", "role": "cashier"}


# =============================================================================
# TOKENS
# =============================================================================

def mint_token(user_id: Any, expires_in: Optional[float] = 3600, now: Optional[datetime] = None) -> str:
    """HS256 token for `user_id`; expires_in=None leaves out the exp claim."""
    claims = {"sub": str(user_id), "jti": f"{user_id}-{datetime.now(timezone.utc).timestamp()}"}
    if expires_in is not None:
        claims["exp"] = (now or datetime.now(timezone.utc)) + timedelta(seconds=expires_in)
    return jwt.encode(claims, TOKEN_SECRET, algorithm="HS256")


# =============================================================================
# FAKE BACKEND
# =============================================================================

@dataclass
class RecordedCall:
    method: str
    path: str
    params: Dict[str, str]
    token: Optional[str]
    body: Any


class FakeBackend:
    """
    Minimal stand-in for the REST API.

    - POST /login, POST /logout and GET /current-user are built in
    - other endpoints are registered with on(); they require a valid token
    - revoke(token) makes every later call with that token answer 401
    - network_down makes every call fail without a response
    """

    def __init__(self):
        self.accounts: Dict[str, Tuple[str, dict]] = {
            ADMIN["email"]: (PASSWORD, dict(ADMIN)),
            CASHIER["email"]: (PASSWORD, dict(CASHIER)),
        }
        self.tokens: Dict[str, dict] = {}
        self.revoked: set = set()
        self.calls: List[RecordedCall] = []
        self.routes: Dict[Tuple[str, str], Callable[[httpx.Request], httpx.Response]] = {}
        self.token_ttl: Optional[float] = 3600
        self.login_override: Optional[Tuple[int, dict]] = None
        self.network_down = False

    # ------ configuration ------

    def on(self, method: str, path: str, status: int = 200, body: Any = None, handler=None):
        if handler is None:
            def handler(request, _status=status, _body=body):
                return httpx.Response(_status, json=_body if _body is not None else {})
        self.routes[(method.upper(), path)] = handler

    def restrict_device(self, status: int = 403, **body):
        payload = {
            "error": "New device detected. Awaiting overall admin approval.",
            "code": "DEVICE_NOT_APPROVED",
            "ip": "10.0.0.7",
            "user_agent": "python-httpx",
            "request_id": 42,
            "email_sent": True,
        }
        payload.update(body)
        self.login_override = (status, payload)

    def issue_token(self, user: dict, expires_in: Optional[float] = 3600) -> str:
        token = mint_token(user["id"], expires_in)
        self.tokens[token] = dict(user)
        return token

    def revoke(self, token: str):
        self.revoked.add(token)

    def calls_to(self, path: str, method: Optional[str] = None) -> List[RecordedCall]:
        return [
            c for c in self.calls
            if c.path == path and (method is None or c.method == method.upper())
        ]

    # ------ transport ------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path.startswith("/api"):
            path = path[len("/api"):] or "/"
        auth = request.headers.get("Authorization", "")
        token = auth.split(" ", 1)[1] if auth.startswith("Bearer ") else None
        body = json.loads(request.content) if request.content else None
        self.calls.append(RecordedCall(request.method, path, dict(request.url.params), token, body))

        if self.network_down:
            raise httpx.ConnectError("Connection refused", request=request)

        if (request.method, path) == ("POST", "/login"):
            return self._login(body or {})

        if (request.method, path) == ("POST", "/logout"):
            return httpx.Response(200, json={"message": "Logout successful"})

        if not self._valid(token):
            return httpx.Response(401, json={"error": "Invalid or expired token"})

        if (request.method, path) == ("GET", "/current-user"):
            return httpx.Response(200, json={"user": self.tokens[token]})

        route = self.routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json={"error": f"No route for {request.method} {path}"})
        return route(request)

    def _login(self, body: dict) -> httpx.Response:
        if self.login_override is not None:
            status, payload = self.login_override
            return httpx.Response(status, json=payload)
        if not body.get("email") or not body.get("password"):
            return httpx.Response(400, json={"error": "email and password required"})
        account = self.accounts.get(body["email"])
        if account is None or account[0] != body["password"]:
            return httpx.Response(401, json={"error": "Invalid credentials"})
        user = account[1]
        token = self.issue_token(user, self.token_ttl)
        return httpx.Response(200, json={"token": token, "user": user})

    def _valid(self, token: Optional[str]) -> bool:
        return bool(token) and token in self.tokens and token not in self.revoked


# =============================================================================
# TIMERS
# =============================================================================

@dataclass
class RecordedTimer:
    delay: float
    function: Callable
    args: tuple = ()
    daemon: bool = False
    started: bool = False
    cancelled: bool = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.function(*self.args)


@dataclass
class RecordingTimerFactory:
    """Drop-in for threading.Timer that records instead of waiting."""
    timers: List[RecordedTimer] = field(default_factory=list)

    def __call__(self, delay, function, args=None, kwargs=None):
        timer = RecordedTimer(delay=delay, function=function, args=tuple(args or ()))
        self.timers.append(timer)
        return timer

    @property
    def active(self) -> List[RecordedTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def timers() -> RecordingTimerFactory:
    return RecordingTimerFactory()


@pytest.fixture
def storage():
    store = ClientStorage.from_url("sqlite://")
    yield store
    store.dispose()


@pytest.fixture
def make_session(backend, storage, timers):
    """Build a SessionManager ("tab") over the shared storage."""
    created = []

    def factory(**kwargs) -> SessionManager:
        api = ApiClient(API_BASE, transport=backend.transport())
        kwargs.setdefault("timer_factory", timers)
        session = SessionManager(api, storage, **kwargs)
        created.append(session)
        return session

    yield factory

    for session in created:
        session.close()
        session.api.close()


@pytest.fixture
def session(make_session) -> SessionManager:
    return make_session()


@pytest.fixture
def admin_session(session) -> SessionManager:
    result = session.login(ADMIN["email"], PASSWORD)
    assert result.ok, result.error
    return session


@pytest.fixture
def app(backend, timers):
    app = create_app(
        {
            "TESTING": True,
            "SECRET_KEY": "test",
            "API_BASE_URL": API_BASE,
            "SESSION_STORAGE_URL": "sqlite://",
            "BUSINESS_TIMEZONE": "Africa/Nairobi",
        },
        transport=backend.transport(),
        timer_factory=timers,
    )
    yield app
    with app.app_context():
        get_context().close()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


@pytest.fixture
def app_session(app) -> SessionManager:
    with app.app_context():
        return get_context().session


# =============================================================================
# TEST MARKERS
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "smoke: Quick smoke tests for critical paths")
    config.addinivalue_line("markers", "auth: Session and login tests")
    config.addinivalue_line("markers", "reports: Financial aggregation tests")
    config.addinivalue_line("markers", "devices: Device approval tests")
    config.addinivalue_line("markers", "concurrent: Cross-tab and concurrency tests")
