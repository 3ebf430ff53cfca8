"""Auth commands -- log in to a Flows API and manage the stored credential.

Provides the ``flowctl auth`` sub-command group. ``login`` runs the
browser-based OAuth flow and stores the resulting credential; the other
commands inspect, use, or remove it.

Typical workflow::

    flowctl auth login --base-url https://api.example.com
    flowctl auth status
    flowctl auth token | pbcopy
    flowctl auth logout
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import typer

from flowctl.exceptions import FlowctlError
from flowctl.exit_codes import EXIT_AUTH_FAILURE
from flowctl.output import error, info, print_data, print_fields, success, suggest


auth_app = typer.Typer(no_args_is_help=True)


@auth_app.command("login")
def auth_login(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        help="API base URL. Defaults to $FLOWCTL_BASE_URL or http://localhost.",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        min=1,
        help="Seconds to wait for the browser redirect (default: $FLOWCTL_LOGIN_TIMEOUT, or no limit).",
    ),
    no_browser: bool = typer.Option(
        False, "--no-browser", help="Print the authorization URL instead of opening a browser."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Log in again even when a credential is stored."
    ),
) -> None:
    """Authenticate with the Flows API in the browser.

    Discovers the API's OAuth endpoints, registers a one-off client,
    opens the authorization page, and stores the issued tokens. When a
    credential is already stored the command does nothing unless
    ``--force`` is given, either here or on the root command.

    Args:
        ctx: Typer context carrying the root ``--force`` flag.
        base_url: API root to authenticate against.
        timeout: Upper bound on the wait for the browser redirect.
        no_browser: Skip launching the system browser.
        force: Replace a stored credential.

    Raises:
        typer.Exit: With the error's exit code if any login step fails.

    Example::

        flowctl auth login --base-url https://api.example.com
        flowctl auth login --force --timeout 300
    """
    from flowctl.auth import LoginFlow, TokenManager
    from flowctl.config import (
        ENV_API_KEY,
        canonical_base_url,
        default_base_url,
        login_timeout_from_env,
    )

    manager = TokenManager()
    if manager.is_using_env_auth():
        info(f"{ENV_API_KEY} is set; API calls already authenticate with that key.")
        suggest(f"Unset {ENV_API_KEY} to log in interactively.")
        return

    force = force or bool(ctx.obj and ctx.obj.get("force"))
    existing = manager.store.read()
    if existing is not None and not force:
        info(f"Already authenticated with {existing.base_url}")
        suggest("Log in again: flowctl auth login --force")
        return

    try:
        if timeout is None:
            timeout = login_timeout_from_env()
        target = canonical_base_url(base_url) if base_url else default_base_url()
        info(f"Starting authentication with {target}")
        LoginFlow(
            target,
            store=manager.store,
            timeout=timeout,
            open_browser=not no_browser,
        ).run()
    except FlowctlError as exc:
        error(f"Authentication failed: {exc}")
        raise typer.Exit(code=exc.exit_code) from None

    success("Authentication successful!")


@auth_app.command("logout")
def auth_logout() -> None:
    """Remove the stored credential.

    Reports rather than fails when nothing is stored.

    Example::

        flowctl auth logout
    """
    from flowctl.auth import TokenManager

    if TokenManager().logout():
        success("Logged out successfully")
    else:
        info("No token was stored.")


@auth_app.command("status")
def auth_status() -> None:
    """Show where API calls get their credentials from.

    Prints a table with the base URL, client id, expiry, and whether a
    refresh token is held. When ``FLOWCTL_API_KEY`` is set, reports the
    environment override instead.

    Raises:
        typer.Exit: With code 3 when not authenticated, or the
            configuration error's code for a half-set environment.

    Example::

        flowctl auth status
        flowctl --json auth status
    """
    from flowctl.auth import TokenManager

    manager = TokenManager()
    try:
        env_auth = manager.get_env_auth()
    except FlowctlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if env_auth is not None:
        print_fields(
            [("Mode", "api key (environment)"), ("Base URL", env_auth.base_url)],
            title="Authentication",
        )
        return

    record = manager.store.read()
    if record is None:
        info("Not authenticated.")
        suggest("Log in: flowctl auth login")
        raise typer.Exit(code=EXIT_AUTH_FAILURE)

    expires = datetime.fromtimestamp(record.expires_at / 1000, tz=timezone.utc)
    fields = [
        ("Mode", "oauth"),
        ("Base URL", record.base_url),
        ("Client ID", record.client_id),
        ("Expires At", expires.isoformat(timespec="seconds")),
        ("Expired", str(manager.now_ms() >= record.expires_at)),
        ("Refresh Token", "yes" if record.refresh_token else "no"),
        ("Credential File", str(manager.store.path)),
    ]
    print_fields(fields, title="Authentication")


@auth_app.command("token")
def auth_token() -> None:
    """Print a valid access token to stdout, refreshing it if needed.

    Example::

        curl -H "Authorization: Bearer $(flowctl auth token)" ...
    """
    from flowctl.auth import TokenManager

    manager = TokenManager()
    try:
        env_auth = manager.get_env_auth()
        token = env_auth.api_key if env_auth is not None else manager.get_valid_token()
    except FlowctlError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    print_data(token)
