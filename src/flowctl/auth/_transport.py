"""HTTP plumbing shared by the discovery, registration, and token calls.

Every outbound call of the auth core follows the same contract: one
request, no retries, any transport failure, non-2xx status, or non-JSON
body surfaces as the caller's :class:`~flowctl.exceptions.AuthError`
subclass with the status and response body in the message.

Callers may pass an :class:`httpx.Client`; otherwise the module-level
``httpx`` functions are used.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx
from pydantic import ValidationError

from flowctl.config import DEFAULT_TOKEN_TTL_SECONDS, HTTP_TIMEOUT_SECONDS
from flowctl.exceptions import AuthError
from flowctl.models import TokenResponse


def send_json_request(
    method: str,
    url: str,
    *,
    error_cls: type[AuthError],
    action: str,
    client: Optional[httpx.Client] = None,
    **kwargs: Any,
) -> Any:
    """Send a request and return the decoded JSON body.

    Args:
        method: ``"GET"`` or ``"POST"``.
        url: Absolute request URL.
        error_cls: Exception class raised on any failure.
        action: Short description used in error messages, e.g.
            ``"fetch protected resource metadata"``.
        client: Optional client to send the request with.
        **kwargs: Passed through to ``httpx`` (``json=``, ``data=``, ...).

    Returns:
        The parsed JSON document.

    Raises:
        AuthError: An instance of *error_cls*.
    """
    http: Any = client if client is not None else httpx
    kwargs.setdefault("timeout", HTTP_TIMEOUT_SECONDS)
    kwargs.setdefault("follow_redirects", True)
    headers = {"Accept": "application/json", **kwargs.pop("headers", {})}
    send = http.get if method.upper() == "GET" else http.post

    try:
        response = send(url, headers=headers, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise error_cls(
            f"Failed to {action}: HTTP {exc.response.status_code} {exc.response.text}"
        ) from exc
    except httpx.HTTPError as exc:
        raise error_cls(f"Failed to {action}: {exc}") from exc

    try:
        return response.json()
    except ValueError as exc:
        raise error_cls(f"Failed to {action}: response is not valid JSON") from exc


def request_token(
    token_endpoint: str,
    form: dict[str, str],
    *,
    error_cls: type[AuthError],
    action: str,
    client: Optional[httpx.Client] = None,
) -> TokenResponse:
    """POST a form-encoded grant to the token endpoint and parse the reply.

    Raises:
        AuthError: An instance of *error_cls* on transport or status
            failure, or when the body lacks ``access_token``.
    """
    data = send_json_request(
        "POST",
        token_endpoint,
        error_cls=error_cls,
        action=action,
        client=client,
        data=form,
    )
    if not isinstance(data, dict) or not data.get("access_token"):
        raise error_cls(f"Failed to {action}: response missing 'access_token' field")
    try:
        return TokenResponse.model_validate(data)
    except ValidationError as exc:
        raise error_cls(f"Failed to {action}: malformed token response: {exc}") from exc


def expires_at_ms(token: TokenResponse, now: float) -> int:
    """Absolute expiry in epoch milliseconds for a token issued at *now* (epoch seconds).

    Falls back to one hour when the server omits ``expires_in``.
    """
    ttl = token.expires_in if token.expires_in is not None else DEFAULT_TOKEN_TTL_SECONDS
    return int((now + float(ttl)) * 1000)
