"""OAuth2 authentication core for flowctl.

This package implements the login and credential lifecycle used by every
flowctl command that talks to the Flows API:

- :func:`discover_endpoints` -- resolve OAuth endpoints from a base URL.
- :func:`register_client` -- dynamic client registration.
- :class:`CallbackListener` -- single-shot loopback redirect listener.
- :class:`LoginFlow` / :func:`login` -- the Authorization Code + PKCE login.
- :class:`TokenStore` -- atomic on-disk credential storage.
- :class:`TokenManager` -- validity checks, refresh, and the
  :func:`get_auth_headers` / :func:`get_base_url` accessors.

Typical usage::

    from flowctl.auth import TokenManager

    manager = TokenManager()
    headers = manager.get_auth_headers()
"""

from flowctl.auth.callback import CallbackListener
from flowctl.auth.discovery import discover_endpoints
from flowctl.auth.flow import FlowState, LoginFlow, login
from flowctl.auth.lifecycle import EnvAuth, TokenManager, get_auth_headers, get_base_url
from flowctl.auth.pkce import challenge_from, generate_pkce_pair, random_token
from flowctl.auth.registration import register_client
from flowctl.auth.token_store import TokenStore

__all__ = [
    "CallbackListener",
    "EnvAuth",
    "FlowState",
    "LoginFlow",
    "TokenManager",
    "TokenStore",
    "challenge_from",
    "discover_endpoints",
    "generate_pkce_pair",
    "get_auth_headers",
    "get_base_url",
    "login",
    "random_token",
    "register_client",
]
