"""Dynamic OAuth client registration (:rfc:`7591`).

Every login registers a fresh public client whose only redirect URI is the
loopback listener bound for that login, so the listener must already be
running when :func:`register_client` is called.
"""

from __future__ import annotations

from typing import Optional

import httpx

from flowctl.auth._transport import send_json_request
from flowctl.config import CLIENT_NAME, OAUTH_SCOPE
from flowctl.exceptions import RegistrationError
from flowctl.models import ClientRegistrationRequest
from flowctl.output import debug


def build_registration_request(redirect_uri: str) -> ClientRegistrationRequest:
    """Return the registration body for a public PKCE client redirecting to *redirect_uri*."""
    return ClientRegistrationRequest(
        client_name=CLIENT_NAME,
        redirect_uris=[redirect_uri],
        scope=OAUTH_SCOPE,
    )


def register_client(
    registration_endpoint: str,
    redirect_uri: str,
    *,
    client: Optional[httpx.Client] = None,
) -> str:
    """Register an OAuth client and return its ``client_id``.

    Args:
        registration_endpoint: Discovered registration endpoint.
        redirect_uri: The exact ``http://127.0.0.1:<port>/callback`` URI
            of the bound listener.
        client: Optional :class:`httpx.Client` to send the request with.

    Raises:
        RegistrationError: On transport or status failure, or when the
            response carries no ``client_id``.
    """
    body = build_registration_request(redirect_uri)
    data = send_json_request(
        "POST",
        registration_endpoint,
        error_cls=RegistrationError,
        action="register OAuth client",
        client=client,
        json=body.model_dump(),
    )
    client_id = data.get("client_id") if isinstance(data, dict) else None
    if not client_id:
        raise RegistrationError("Registration response missing 'client_id' field")
    debug(f"Obtained client_id {client_id}")
    return str(client_id)
