"""Shared test fixtures for flowctl.

Provides isolation of the config directory and environment, output
state management, a token-store factory, and :class:`FakeAuthServer`, an
in-memory Flows API + authorization server served through
:class:`httpx.MockTransport`. Fixtures are discovered by pytest
automatically.
"""

from __future__ import annotations

import json
import threading
import time
from http.client import HTTPConnection
from pathlib import Path
from typing import Any, Callable, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx
import pytest
from typer.testing import CliRunner

from flowctl.auth.token_store import TokenStore
from flowctl.models import CredentialRecord
from flowctl.output import OutputFormat, OutputManager, reset_output, set_output


BASE_URL = "https://api.example.com"
AUTH_SERVER = "https://auth.example.com"
AUTHORIZATION_ENDPOINT = f"{AUTH_SERVER}/oauth/authorize"
TOKEN_ENDPOINT = f"{AUTH_SERVER}/oauth/token"
REGISTRATION_ENDPOINT = f"{AUTH_SERVER}/oauth/register"


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager caches references to sys.stdout/sys.stderr at
    creation time. When Typer's CliRunner redirects those streams during
    a test, the cached references become stale afterwards.
    """
    yield
    reset_output()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point every flowctl path at tmp_path and clear FLOWCTL_* variables.

    Tests must never read or overwrite the developer's real credential.

    Returns:
        The config directory used for this test.
    """
    config_dir = tmp_path / "config"
    monkeypatch.setenv("FLOWCTL_CONFIG_DIR", str(config_dir))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    for var in ["FLOWCTL_API_KEY", "FLOWCTL_BASE_URL", "FLOWCTL_LOGIN_TIMEOUT"]:
        monkeypatch.delenv(var, raising=False)
    return config_dir


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a quiet PLAIN-format output manager."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


@pytest.fixture
def cli_runner() -> CliRunner:
    """Typer CLI test runner."""
    return CliRunner()


# ---------------------------------------------------------------------------
# Credential fixtures
# ---------------------------------------------------------------------------


def _make_record(**overrides: Any) -> CredentialRecord:
    """Build a CredentialRecord with sensible defaults overridden by kwargs."""
    defaults: dict[str, Any] = {
        "access_token": "access-1",
        "refresh_token": "refresh-1",
        "expires_at": int((time.time() + 3600) * 1000),
        "client_id": "abc123",
        "base_url": BASE_URL,
        "token_endpoint": TOKEN_ENDPOINT,
    }
    defaults.update(overrides)
    return CredentialRecord(**defaults)


@pytest.fixture
def make_record() -> Callable[..., CredentialRecord]:
    """Factory for CredentialRecord instances; keyword arguments override defaults."""
    return _make_record


@pytest.fixture
def store(tmp_path: Path) -> TokenStore:
    """A TokenStore writing to a disposable directory."""
    return TokenStore(tmp_path / "store" / "cli-token.json")


# ---------------------------------------------------------------------------
# Fake authorization server
# ---------------------------------------------------------------------------


def json_response(status_code: int, data: Any) -> httpx.Response:
    return httpx.Response(status_code, json=data)


class FakeAuthServer:
    """In-memory protected resource + authorization server.

    Each attribute below can be replaced by a test to simulate a failure
    at one step. Every request is recorded in :attr:`requests`.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.protected_resource: httpx.Response = json_response(
            200, {"resource": BASE_URL, "authorization_servers": [AUTH_SERVER]}
        )
        self.server_metadata: httpx.Response = json_response(
            200,
            {
                "issuer": AUTH_SERVER,
                "authorization_endpoint": AUTHORIZATION_ENDPOINT,
                "token_endpoint": TOKEN_ENDPOINT,
                "registration_endpoint": REGISTRATION_ENDPOINT,
            },
        )
        self.registration: httpx.Response = json_response(201, {"client_id": "abc123"})
        self.token: httpx.Response = json_response(
            200,
            {
                "access_token": "access-xyz",
                "refresh_token": "refresh-xyz",
                "expires_in": 3600,
                "token_type": "Bearer",
            },
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if url == f"{BASE_URL}/.well-known/oauth-protected-resource":
            return self.protected_resource
        if url == f"{AUTH_SERVER}/.well-known/oauth-authorization-server":
            return self.server_metadata
        if url == REGISTRATION_ENDPOINT:
            return self.registration
        if url == TOKEN_ENDPOINT:
            return self.token
        return httpx.Response(404)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [r for r in self.requests if str(r.url) == url]

    def token_form(self, index: int = -1) -> dict[str, str]:
        """Decoded form body of a token endpoint request."""
        body = self.requests_to(TOKEN_ENDPOINT)[index].content.decode()
        return {k: v[0] for k, v in parse_qs(body).items()}

    def registration_body(self) -> dict[str, Any]:
        return json.loads(self.requests_to(REGISTRATION_ENDPOINT)[-1].content)


@pytest.fixture
def auth_server() -> FakeAuthServer:
    return FakeAuthServer()


# ---------------------------------------------------------------------------
# Fake browser
# ---------------------------------------------------------------------------


def send_callback(port: int, path: str) -> int:
    """Send a GET to the local callback listener and return the status code."""
    conn = HTTPConnection("127.0.0.1", port, timeout=5)
    try:
        conn.request("GET", path)
        return conn.getresponse().status
    finally:
        conn.close()


class FakeBrowser:
    """Stand-in for ``webbrowser.open`` that follows the redirect itself.

    Args:
        callback_params: Builds the callback query from the authorization
            request's query. Defaults to approving with ``code=xyz`` and the
            echoed ``state``.
    """

    def __init__(
        self,
        callback_params: Optional[Callable[[dict[str, str]], dict[str, str]]] = None,
    ) -> None:
        self.callback_params = callback_params or (
            lambda q: {"code": "xyz", "state": q["state"]}
        )
        self.opened: list[str] = []

    def __call__(self, url: str) -> bool:
        self.opened.append(url)
        query = {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}
        redirect = urlparse(query["redirect_uri"])
        params = self.callback_params(query)
        threading.Thread(
            target=send_callback,
            args=(redirect.port, f"{redirect.path}?{urlencode(params)}"),
            daemon=True,
        ).start()
        return True

    @property
    def last_query(self) -> dict[str, str]:
        return {k: v[0] for k, v in parse_qs(urlparse(self.opened[-1]).query).items()}


@pytest.fixture
def fake_browser(monkeypatch: pytest.MonkeyPatch) -> FakeBrowser:
    """Replace the system browser with a :class:`FakeBrowser` that approves the login."""
    browser = FakeBrowser()
    monkeypatch.setattr("flowctl.auth.flow.webbrowser.open", browser)
    return browser
