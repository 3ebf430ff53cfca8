"""End-to-end tests for the ``flowctl auth`` command group via CliRunner."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Callable
from unittest.mock import MagicMock

import httpx
import pytest
from typer.testing import CliRunner

from flowctl import __version__
from flowctl.app import app
from flowctl.auth.token_store import TokenStore
from flowctl.exceptions import DiscoveryError
from flowctl.models import CredentialRecord

runner = CliRunner()

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*m")


def _strip_ansi(text: str) -> str:
    return _ANSI_RE.sub("", text)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def stored(isolated_config: Path, make_record: Callable[..., CredentialRecord]) -> CredentialRecord:
    """Write a valid credential to the isolated config dir."""
    record = make_record(access_token="stored-token")
    TokenStore().write(record)
    return record


@pytest.fixture
def routed_httpx(auth_server, monkeypatch: pytest.MonkeyPatch) -> Any:
    """Route module-level ``httpx.get``/``httpx.post`` to the fake auth server."""
    client = auth_server.client()
    monkeypatch.setattr("httpx.get", client.get)
    monkeypatch.setattr("httpx.post", client.post)
    return auth_server


@pytest.fixture
def fake_login_flow(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Replace LoginFlow with a mock whose run() succeeds."""
    flow_cls = MagicMock()
    monkeypatch.setattr("flowctl.auth.LoginFlow", flow_cls)
    return flow_cls


# ---------------------------------------------------------------------------
# Top level
# ---------------------------------------------------------------------------


class TestTopLevel:
    def test_version_flag(self) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_version_command(self) -> None:
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert result.output.strip() == f"flowctl {__version__}"

    def test_auth_help(self) -> None:
        result = runner.invoke(app, ["auth", "--help"])
        assert result.exit_code == 0
        output = _strip_ansi(result.output)
        for command in ("login", "logout", "status", "token"):
            assert command in output


# ---------------------------------------------------------------------------
# auth login
# ---------------------------------------------------------------------------


class TestAuthLogin:
    def test_full_login(self, routed_httpx, fake_browser) -> None:
        result = runner.invoke(
            app,
            ["--no-color", "auth", "login", "--base-url", "https://api.example.com/", "--timeout", "10"],
        )

        assert result.exit_code == 0, result.output
        assert "Authentication successful!" in result.output
        record = TokenStore().read()
        assert record is not None
        assert record.access_token == "access-xyz"
        assert record.client_id == "abc123"
        assert record.base_url == "https://api.example.com"

    def test_already_authenticated(self, stored: CredentialRecord, fake_login_flow: MagicMock) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "login"])
        assert result.exit_code == 0
        assert "Already authenticated with https://api.example.com" in result.output
        fake_login_flow.assert_not_called()

    def test_force_relogin(self, stored: CredentialRecord, fake_login_flow: MagicMock) -> None:
        result = runner.invoke(
            app, ["--no-color", "--force", "auth", "login", "--base-url", "https://api.example.com"]
        )
        assert result.exit_code == 0, result.output
        fake_login_flow.assert_called_once()
        fake_login_flow.return_value.run.assert_called_once()

    def test_force_on_login_command(
        self, stored: CredentialRecord, fake_login_flow: MagicMock
    ) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "login", "--force"])
        assert result.exit_code == 0, result.output
        fake_login_flow.return_value.run.assert_called_once()

    def test_already_authenticated_suggests_force(self, stored: CredentialRecord) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "login"])
        assert "flowctl auth login --force" in result.output

    def test_default_base_url_from_env(
        self, fake_login_flow: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FLOWCTL_BASE_URL", "https://env.example.com/")
        result = runner.invoke(app, ["--no-color", "auth", "login"])
        assert result.exit_code == 0, result.output
        assert fake_login_flow.call_args[0][0] == "https://env.example.com"

    def test_default_base_url_localhost(self, fake_login_flow: MagicMock) -> None:
        runner.invoke(app, ["--no-color", "auth", "login"])
        assert fake_login_flow.call_args[0][0] == "http://localhost"

    def test_options_forwarded(self, fake_login_flow: MagicMock) -> None:
        result = runner.invoke(
            app, ["--no-color", "auth", "login", "--timeout", "42", "--no-browser"]
        )
        assert result.exit_code == 0, result.output
        kwargs = fake_login_flow.call_args[1]
        assert kwargs["timeout"] == 42
        assert kwargs["open_browser"] is False

    def test_timeout_from_env(
        self, fake_login_flow: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FLOWCTL_LOGIN_TIMEOUT", "300")
        runner.invoke(app, ["--no-color", "auth", "login"])
        assert fake_login_flow.call_args[1]["timeout"] == 300.0

    def test_invalid_timeout_env(
        self, fake_login_flow: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FLOWCTL_LOGIN_TIMEOUT", "soon")
        result = runner.invoke(app, ["--no-color", "auth", "login"])
        assert result.exit_code == 1
        assert "FLOWCTL_LOGIN_TIMEOUT" in result.output
        fake_login_flow.assert_not_called()

    def test_failure_exit_code(self, fake_login_flow: MagicMock) -> None:
        fake_login_flow.return_value.run.side_effect = DiscoveryError(
            "No authorization servers found in protected resource metadata"
        )
        result = runner.invoke(app, ["--no-color", "auth", "login"])
        assert result.exit_code == 3
        assert "Authentication failed: No authorization servers found" in result.output
        assert TokenStore().read() is None

    def test_env_api_key_skips_login(
        self, fake_login_flow: MagicMock, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("FLOWCTL_API_KEY", "sk-ci")
        monkeypatch.setenv("FLOWCTL_BASE_URL", "https://ci.example.com")
        result = runner.invoke(app, ["--no-color", "auth", "login"])
        assert result.exit_code == 0
        assert "FLOWCTL_API_KEY is set" in result.output
        fake_login_flow.assert_not_called()


# ---------------------------------------------------------------------------
# auth logout
# ---------------------------------------------------------------------------


class TestAuthLogout:
    def test_logout(self, stored: CredentialRecord) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "logout"])
        assert result.exit_code == 0
        assert "Logged out successfully" in result.output
        assert TokenStore().read() is None

    def test_logout_when_not_logged_in(self) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "logout"])
        assert result.exit_code == 0
        assert "No token was stored." in result.output


# ---------------------------------------------------------------------------
# auth status
# ---------------------------------------------------------------------------


class TestAuthStatus:
    def test_not_authenticated(self) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "status"])
        assert result.exit_code == 3
        assert "Not authenticated." in result.output

    def test_json(self, stored: CredentialRecord) -> None:
        result = runner.invoke(app, ["--json", "auth", "status"])
        assert result.exit_code == 0, result.output
        rows = json.loads(result.output)
        assert rows["Mode"] == "oauth"
        assert rows["Base URL"] == "https://api.example.com"
        assert rows["Client ID"] == "abc123"
        assert rows["Expired"] == "False"
        assert rows["Refresh Token"] == "yes"
        assert rows["Credential File"].endswith("cli-token.json")

    def test_plain(self, stored: CredentialRecord) -> None:
        result = runner.invoke(app, ["--plain", "auth", "status"])
        assert result.exit_code == 0
        assert "Base URL\thttps://api.example.com" in result.output

    def test_env_mode(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLOWCTL_API_KEY", "sk-ci")
        monkeypatch.setenv("FLOWCTL_BASE_URL", "https://ci.example.com")
        result = runner.invoke(app, ["--json", "auth", "status"])
        assert result.exit_code == 0
        rows = json.loads(result.output)
        assert rows["Mode"] == "api key (environment)"
        assert rows["Base URL"] == "https://ci.example.com"

    def test_env_key_without_base_url(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLOWCTL_API_KEY", "sk-ci")
        result = runner.invoke(app, ["--no-color", "auth", "status"])
        assert result.exit_code == 1
        assert "FLOWCTL_BASE_URL must be set" in result.output


# ---------------------------------------------------------------------------
# auth token
# ---------------------------------------------------------------------------


class TestAuthToken:
    def test_prints_stored_token(self, stored: CredentialRecord) -> None:
        result = runner.invoke(app, ["auth", "token"])
        assert result.exit_code == 0
        assert result.output.strip() == "stored-token"

    def test_prints_env_key(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("FLOWCTL_API_KEY", "sk-ci")
        monkeypatch.setenv("FLOWCTL_BASE_URL", "https://ci.example.com")
        result = runner.invoke(app, ["auth", "token"])
        assert result.exit_code == 0
        assert result.output.strip() == "sk-ci"

    def test_refreshes_expired_token(
        self,
        routed_httpx,
        make_record: Callable[..., CredentialRecord],
    ) -> None:
        TokenStore().write(make_record(expires_at=0))
        result = runner.invoke(app, ["auth", "token"])
        assert result.exit_code == 0, result.output
        assert result.output.strip() == "access-xyz"
        assert routed_httpx.token_form()["grant_type"] == "refresh_token"

    def test_not_authenticated(self) -> None:
        result = runner.invoke(app, ["--no-color", "auth", "token"])
        assert result.exit_code == 3
        assert "flowctl auth login" in result.output

    def test_refresh_rejected(
        self, routed_httpx, make_record: Callable[..., CredentialRecord]
    ) -> None:
        routed_httpx.token = httpx.Response(400, json={"error": "invalid_grant"})
        TokenStore().write(make_record(expires_at=0))
        result = runner.invoke(app, ["--no-color", "auth", "token"])
        assert result.exit_code == 3
        assert "invalid_grant" in result.output
