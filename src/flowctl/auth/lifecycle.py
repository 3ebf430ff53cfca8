"""Stored-credential lifecycle: validity, refresh, and the request accessors.

:class:`TokenManager` is the only component the rest of flowctl asks for
credentials. It serves two sources:

* **Environment bypass** -- when ``FLOWCTL_API_KEY`` is set the OAuth
  subsystem is skipped entirely and the key is sent as a bearer token to
  ``FLOWCTL_BASE_URL`` (which is then mandatory). Intended for CI and
  other non-interactive automation.
* **Stored credential** -- the :class:`~flowctl.models.CredentialRecord`
  written by ``flowctl auth login``. It is refreshed against the cached
  token endpoint once it is within :data:`~flowctl.config.REFRESH_SKEW_SECONDS`
  of expiry, so a token never runs out in the middle of a request.

Refresh is a single blocking round-trip with no retry.
"""

from __future__ import annotations

import os
import time
from collections.abc import Mapping
from typing import Callable, NamedTuple, Optional

import httpx

from flowctl.auth._transport import expires_at_ms, request_token
from flowctl.auth.token_store import TokenStore
from flowctl.config import (
    ENV_API_KEY,
    ENV_BASE_URL,
    REFRESH_SKEW_SECONDS,
    canonical_base_url,
)
from flowctl.exceptions import (
    ConfigurationError,
    NoRefreshTokenError,
    NotAuthenticatedError,
    RefreshError,
)
from flowctl.models import CredentialRecord
from flowctl.output import debug


class EnvAuth(NamedTuple):
    """Credentials supplied through ``FLOWCTL_API_KEY`` / ``FLOWCTL_BASE_URL``."""

    api_key: str
    base_url: str


class TokenManager:
    """Hands out valid credentials, refreshing the stored one when needed.

    Args:
        store: Token store to read and update. Defaults to the standard
            location.
        environ: Environment mapping consulted for the API-key bypass.
            Defaults to :data:`os.environ`.
        http_client: Optional :class:`httpx.Client` for refresh requests.
        clock: Returns the current epoch time in seconds.

    Example::

        manager = TokenManager()
        headers = manager.get_auth_headers()
        base_url = manager.get_base_url()
    """

    def __init__(
        self,
        store: Optional[TokenStore] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store if store is not None else TokenStore()
        self._environ = environ
        self._http = http_client
        self._clock = clock

    @property
    def store(self) -> TokenStore:
        return self._store

    # ------------------------------------------------------------------ #
    # Environment bypass
    # ------------------------------------------------------------------ #

    def get_env_auth(self) -> Optional[EnvAuth]:
        """Return the API-key credentials from the environment, if configured.

        Raises:
            ConfigurationError: If ``FLOWCTL_API_KEY`` is set without
                ``FLOWCTL_BASE_URL``.
        """
        env = os.environ if self._environ is None else self._environ
        api_key = env.get(ENV_API_KEY)
        if not api_key:
            return None
        base_url = env.get(ENV_BASE_URL)
        if not base_url:
            raise ConfigurationError(f"{ENV_BASE_URL} must be set when using {ENV_API_KEY}")
        return EnvAuth(api_key=api_key, base_url=canonical_base_url(base_url))

    def is_using_env_auth(self) -> bool:
        """Whether ``FLOWCTL_API_KEY`` is set, so interactive steps can be skipped."""
        env = os.environ if self._environ is None else self._environ
        return bool(env.get(ENV_API_KEY))

    # ------------------------------------------------------------------ #
    # Stored credential
    # ------------------------------------------------------------------ #

    def now_ms(self) -> int:
        return int(self._clock() * 1000)

    def needs_refresh(self, record: CredentialRecord) -> bool:
        """True once *record* is expired or within the refresh skew window."""
        return self.now_ms() > record.expires_at - REFRESH_SKEW_SECONDS * 1000

    def get_valid_token(self) -> str:
        """Return an access token that is good for at least the skew window.

        Raises:
            NotAuthenticatedError: If no credential is stored.
            NoRefreshTokenError: If the token expired and cannot be refreshed.
            RefreshError: If the token endpoint rejects the refresh.
        """
        record = self._store.read()
        if record is None:
            raise NotAuthenticatedError("No stored token found.")
        if self.needs_refresh(record):
            debug("Access token expired or near expiry, refreshing...")
            record = self.refresh(record)
        return record.access_token

    def refresh(self, record: CredentialRecord) -> CredentialRecord:
        """Exchange the refresh token for a new access token and persist it.

        ``base_url``, ``client_id`` and ``token_endpoint`` are carried over
        verbatim. The refresh token is replaced only when the server issues
        a new one.

        Raises:
            NoRefreshTokenError: If *record* has no refresh token.
            RefreshError: On transport or status failure, or a reply
                without ``access_token``.
        """
        if not record.refresh_token:
            raise NoRefreshTokenError()

        issued_at = self._clock()
        token = request_token(
            record.token_endpoint,
            {
                "grant_type": "refresh_token",
                "refresh_token": record.refresh_token,
                "client_id": record.client_id,
            },
            error_cls=RefreshError,
            action="refresh access token",
            client=self._http,
        )
        refreshed = record.model_copy(
            update={
                "access_token": token.access_token,
                "expires_at": expires_at_ms(token, issued_at),
                "refresh_token": token.refresh_token or record.refresh_token,
            }
        )
        self._store.write(refreshed)
        debug("Access token refreshed")
        return refreshed

    # ------------------------------------------------------------------ #
    # Accessors for API calls
    # ------------------------------------------------------------------ #

    def get_auth_headers(self) -> dict[str, str]:
        """Return the ``Authorization`` header for the next API call."""
        env_auth = self.get_env_auth()
        if env_auth is not None:
            return {"Authorization": f"Bearer {env_auth.api_key}"}
        return {"Authorization": f"Bearer {self.get_valid_token()}"}

    def get_base_url(self) -> str:
        """Return the API root: the environment override, else the stored one.

        Raises:
            ConfigurationError: If the API key is set without a base URL.
            NotAuthenticatedError: If neither source provides a base URL.
        """
        env_auth = self.get_env_auth()
        if env_auth is not None:
            return env_auth.base_url
        record = self._store.read()
        if record is not None and record.base_url:
            return record.base_url
        raise NotAuthenticatedError("Base URL not specified.")

    def logout(self) -> bool:
        """Delete the stored credential. Returns ``False`` if none was stored."""
        return self._store.delete()


def get_auth_headers() -> dict[str, str]:
    """Shortcut for :meth:`TokenManager.get_auth_headers` with default settings."""
    return TokenManager().get_auth_headers()


def get_base_url() -> str:
    """Shortcut for :meth:`TokenManager.get_base_url` with default settings."""
    return TokenManager().get_base_url()
