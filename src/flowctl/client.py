"""Minimal Flows API client built on the auth accessors.

:class:`ApiClient` is how commands outside :mod:`flowctl.auth` call the
API. It asks :class:`~flowctl.auth.lifecycle.TokenManager` for the base
URL and ``Authorization`` header once, when the client is opened, and maps
failures onto the :mod:`flowctl.exceptions` hierarchy.

The Flows CLI endpoints are RPC-style: every call is a JSON ``POST`` whose
reply is either ``{"data": ...}`` or ``{"error": "..."}``.

Example::

    with ApiClient() as api:
        apps = api.post("/cli/apps/list_apps", {"projectId": project_id})
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from flowctl.auth.lifecycle import TokenManager
from flowctl.config import HTTP_TIMEOUT_SECONDS
from flowctl.exceptions import ApiError, AuthError, ConnectionError_
from flowctl.output import debug


class ApiClient:
    """Authenticated JSON client for the Flows API.

    Must be used as a context manager so that the underlying transport is
    opened and closed.

    Args:
        manager: Credential source. Defaults to a fresh :class:`TokenManager`.
        timeout: Per-request timeout in seconds.
        transport: Optional custom :mod:`httpx` transport.
    """

    def __init__(
        self,
        manager: Optional[TokenManager] = None,
        timeout: float = HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._manager = manager if manager is not None else TokenManager()
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> ApiClient:
        base_url = self._manager.get_base_url()
        headers = {
            "Content-Type": "application/json",
            **self._manager.get_auth_headers(),
        }
        self._client = httpx.Client(
            base_url=base_url,
            headers=headers,
            timeout=self._timeout,
            transport=self._transport,
        )
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None

    def post(self, path: str, body: Any) -> Any:
        """POST *body* as JSON to *path* and return the decoded reply.

        Raises:
            ConnectionError_: On network or timeout errors.
            AuthError: On 401 / 403.
            ApiError: On any other non-2xx status, a non-JSON body, or an
                ``error`` key in the reply.
        """
        if self._client is None:
            raise RuntimeError("ApiClient must be used as a context manager")

        debug(f"POST {path}")
        try:
            response = self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Request to {path} failed: {exc}") from exc

        if response.status_code in (401, 403):
            raise AuthError(
                f"HTTP {response.status_code}: credentials rejected. "
                "Run 'flowctl auth login' to authenticate again."
            )

        try:
            data = response.json()
        except ValueError:
            data = None

        if isinstance(data, dict) and data.get("error"):
            raise ApiError(str(data["error"]))
        if response.is_error:
            raise ApiError(f"HTTP {response.status_code} {response.reason_phrase}")
        if data is None:
            raise ApiError(f"Response from {path} is not valid JSON")
        return data
