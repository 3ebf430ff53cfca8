"""flowctl -- command-line client for the Flows API.

This package holds the authentication core of the ``flowctl`` CLI: OAuth2
endpoint discovery, dynamic client registration, the loopback
Authorization Code + PKCE login, and the on-disk credential lifecycle
(issue, refresh, expire, invalidate).

Typical workflow::

    flowctl auth login --base-url https://api.example.com
    flowctl auth status
    flowctl auth logout

Modules:
    app: Typer application and CLI entry point.
    auth: OAuth2 login flow and token lifecycle.
    client: Thin API client that consumes the auth accessors.
    config: XDG-aware paths, environment variables and constants.
    models: Pydantic models shared across the package.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
