"""OAuth2 endpoint discovery.

Resolves the authorization, token, and registration endpoints for a Flows
API base URL with two dependent metadata fetches:

1. ``GET <base>/.well-known/oauth-protected-resource`` (:rfc:`9728`) names
   the authorization servers guarding the API; the first one is used.
2. ``GET <server>/.well-known/oauth-authorization-server`` (:rfc:`8414`)
   lists that server's endpoints.

Nothing is cached: discovery runs on every fresh login, while token
refresh reuses the endpoint stored in the
:class:`~flowctl.models.CredentialRecord`.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from flowctl.auth._transport import send_json_request
from flowctl.config import canonical_base_url
from flowctl.exceptions import DiscoveryError
from flowctl.models import AuthServerEndpoints
from flowctl.output import debug

PROTECTED_RESOURCE_PATH = "/.well-known/oauth-protected-resource"
AUTHORIZATION_SERVER_PATH = "/.well-known/oauth-authorization-server"

_REQUIRED_ENDPOINTS = ("authorization_endpoint", "token_endpoint", "registration_endpoint")


def discover_authorization_server(
    base_url: str, *, client: Optional[httpx.Client] = None
) -> str:
    """Return the first authorization server URL advertised for *base_url*.

    Raises:
        DiscoveryError: On transport or status failure, or when the
            ``authorization_servers`` list is missing or empty.
    """
    url = f"{canonical_base_url(base_url)}{PROTECTED_RESOURCE_PATH}"
    debug(f"Fetching protected resource metadata from {url}")
    data = send_json_request(
        "GET",
        url,
        error_cls=DiscoveryError,
        action="fetch protected resource metadata",
        client=client,
    )
    servers = data.get("authorization_servers") if isinstance(data, dict) else None
    if not isinstance(servers, list) or not servers or not servers[0]:
        raise DiscoveryError(
            "No authorization servers found in protected resource metadata"
        )
    server = str(servers[0])
    debug(f"Using authorization server: {server}")
    return server


def fetch_server_endpoints(
    auth_server_url: str, *, client: Optional[httpx.Client] = None
) -> AuthServerEndpoints:
    """Fetch authorization server metadata and extract the three endpoints.

    Raises:
        DiscoveryError: On transport or status failure, or when any of
            ``authorization_endpoint``, ``token_endpoint`` or
            ``registration_endpoint`` is absent.
    """
    url = f"{canonical_base_url(auth_server_url)}{AUTHORIZATION_SERVER_PATH}"
    debug(f"Fetching authorization server metadata from {url}")
    data: Any = send_json_request(
        "GET",
        url,
        error_cls=DiscoveryError,
        action="fetch authorization server metadata",
        client=client,
    )
    if not isinstance(data, dict):
        data = {}
    missing = [name for name in _REQUIRED_ENDPOINTS if not data.get(name)]
    if missing:
        raise DiscoveryError(
            "Missing required endpoints in authorization server metadata: "
            + ", ".join(missing)
        )
    endpoints = AuthServerEndpoints(**{name: str(data[name]) for name in _REQUIRED_ENDPOINTS})
    debug(f"Authorization endpoint: {endpoints.authorization_endpoint}")
    debug(f"Token endpoint: {endpoints.token_endpoint}")
    debug(f"Registration endpoint: {endpoints.registration_endpoint}")
    return endpoints


def discover_endpoints(
    base_url: str, *, client: Optional[httpx.Client] = None
) -> AuthServerEndpoints:
    """Resolve the OAuth endpoints protecting *base_url*.

    Args:
        base_url: Flows API root, with or without a trailing slash.
        client: Optional :class:`httpx.Client` used for both fetches.

    Returns:
        The discovered :class:`~flowctl.models.AuthServerEndpoints`.

    Raises:
        DiscoveryError: If either fetch fails or the metadata is incomplete.
    """
    server = discover_authorization_server(base_url, client=client)
    return fetch_server_endpoints(server, client=client)
