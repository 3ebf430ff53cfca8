"""OAuth2 Authorization Code + PKCE login against a Flows API.

:class:`LoginFlow` composes the rest of :mod:`flowctl.auth` into one login:

1. Discover the authorization, token, and registration endpoints.
2. Bind the loopback :class:`~flowctl.auth.callback.CallbackListener`.
   This has to happen before registration because the registered
   ``redirect_uris`` must contain the concrete port.
3. Register a public OAuth client for that redirect URI.
4. Open the authorization URL (with ``state`` and the S256
   ``code_challenge``) in the user's browser.
5. Wait for the redirect, validate ``state``, ``error``, and ``code``.
6. Exchange the code plus ``code_verifier`` for tokens and persist the
   resulting :class:`~flowctl.models.CredentialRecord`.

The flow tracks its progress in :attr:`LoginFlow.state`; any exception
moves it to :attr:`FlowState.FAILED` and propagates unchanged.
"""

from __future__ import annotations

import enum
import threading
import time
import webbrowser
from typing import Callable, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import httpx

from flowctl.auth._transport import expires_at_ms, request_token
from flowctl.auth.callback import CallbackListener
from flowctl.auth.discovery import discover_endpoints
from flowctl.auth.pkce import generate_pkce_pair, random_token
from flowctl.auth.registration import register_client
from flowctl.auth.token_store import TokenStore
from flowctl.config import OAUTH_SCOPE, canonical_base_url
from flowctl.exceptions import (
    AuthorizationDeniedError,
    MissingCodeError,
    StateMismatchError,
    TokenExchangeError,
)
from flowctl.models import AuthServerEndpoints, CallbackParams, CredentialRecord
from flowctl.output import debug, progress, warning


class FlowState(str, enum.Enum):
    """Progress of a single :class:`LoginFlow` run."""

    PENDING = "pending"
    DISCOVERING = "discovering"
    LISTENING = "listening"
    REGISTERING = "registering"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    PERSISTED = "persisted"
    FAILED = "failed"


def build_authorization_url(
    authorization_endpoint: str,
    *,
    client_id: str,
    redirect_uri: str,
    state: str,
    code_challenge: str,
    scope: str = OAUTH_SCOPE,
) -> str:
    """Append the authorization request parameters to *authorization_endpoint*.

    Query parameters already present on the endpoint are preserved.
    """
    parts = urlparse(authorization_endpoint)
    query = dict(parse_qsl(parts.query, keep_blank_values=True))
    query.update(
        {
            "client_id": client_id,
            "redirect_uri": redirect_uri,
            "response_type": "code",
            "scope": scope,
            "state": state,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
    )
    return urlunparse(parts._replace(query=urlencode(query)))


def validate_callback(params: CallbackParams, expected_state: str) -> str:
    """Check a captured redirect and return its authorization code.

    ``state`` is checked first so that a forged or stale redirect is
    rejected before its other parameters are trusted.

    Raises:
        StateMismatchError: If ``state`` differs from *expected_state*.
        AuthorizationDeniedError: If the server reported an ``error``.
        MissingCodeError: If no ``code`` is present.
    """
    if params.state != expected_state:
        raise StateMismatchError(
            "State mismatch during OAuth callback, aborting. "
            "The redirect may come from a stale browser tab or a forged request."
        )
    if params.error:
        raise AuthorizationDeniedError(
            f"OAuth error: {params.error_description or params.error}"
        )
    if not params.code:
        raise MissingCodeError("No authorization code received")
    return params.code


def _open_in_browser(url: str) -> None:
    """Launch the default browser; failures only produce a warning."""
    try:
        opened = webbrowser.open(url)
    except Exception as exc:  # webbrowser.Error, or OSError from a broken launcher
        warning(f"Could not open a browser ({exc}). Open the URL above manually.")
        return
    if not opened:
        warning("Could not open a browser. Open the URL above manually.")


class LoginFlow:
    """One interactive login against *base_url*.

    A flow instance is single-use: the ephemeral state (nonce, PKCE pair,
    client id, listener) belongs to one :meth:`run` call.

    Args:
        base_url: Flows API root. Trailing slashes are dropped.
        store: Where the resulting credential is written. Defaults to a
            :class:`~flowctl.auth.token_store.TokenStore` at the standard path.
        timeout: Seconds to wait for the browser redirect. ``None`` waits
            indefinitely.
        open_browser: Launch the system browser. When ``False`` only the
            URL is printed.
        http_client: Optional :class:`httpx.Client` for all outbound calls.
        clock: Returns the current epoch time in seconds.
    """

    def __init__(
        self,
        base_url: str,
        *,
        store: Optional[TokenStore] = None,
        timeout: Optional[float] = None,
        open_browser: bool = True,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = canonical_base_url(base_url)
        self._store = store if store is not None else TokenStore()
        self._timeout = timeout
        self._open_browser = open_browser
        self._http = http_client
        self._clock = clock
        self.state = FlowState.PENDING

    def run(self) -> CredentialRecord:
        """Execute the login and persist the credential.

        Returns:
            The stored :class:`~flowctl.models.CredentialRecord`.

        Raises:
            RuntimeError: If this flow has already run.
            AuthError: Any of the login-flow subclasses; see the module
                docstring for which step raises which.
        """
        if self.state != FlowState.PENDING:
            raise RuntimeError("LoginFlow instances are single-use")
        try:
            return self._run()
        except BaseException:
            self.state = FlowState.FAILED
            raise

    def _run(self) -> CredentialRecord:
        self.state = FlowState.DISCOVERING
        endpoints = discover_endpoints(self.base_url, client=self._http)

        self.state = FlowState.LISTENING
        with CallbackListener() as listener:
            redirect_uri = listener.redirect_uri
            debug(f"Redirect URI set to {redirect_uri}")

            self.state = FlowState.REGISTERING
            client_id = register_client(
                endpoints.registration_endpoint, redirect_uri, client=self._http
            )

            code_verifier, code_challenge = generate_pkce_pair()
            nonce = random_token(32)
            authorize_url = build_authorization_url(
                endpoints.authorization_endpoint,
                client_id=client_id,
                redirect_uri=redirect_uri,
                state=nonce,
                code_challenge=code_challenge,
            )

            self.state = FlowState.AWAITING_REDIRECT
            progress("Opening browser and waiting for authentication...")
            progress(f"If the browser does not open, visit:\n{authorize_url}")
            if self._open_browser:
                threading.Thread(
                    target=_open_in_browser, args=(authorize_url,), daemon=True
                ).start()
            params = listener.wait(timeout=self._timeout)

        code = validate_callback(params, nonce)

        self.state = FlowState.EXCHANGING
        record = self._exchange_code(endpoints, client_id, code, code_verifier, redirect_uri)
        self._store.write(record)
        self.state = FlowState.PERSISTED
        return record

    def _exchange_code(
        self,
        endpoints: AuthServerEndpoints,
        client_id: str,
        code: str,
        code_verifier: str,
        redirect_uri: str,
    ) -> CredentialRecord:
        """Exchange the authorization code for tokens and build the record.

        The ``redirect_uri`` must match the registered one exactly, and the
        verifier (never the challenge) proves this client started the flow.
        """
        issued_at = self._clock()
        token = request_token(
            endpoints.token_endpoint,
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": client_id,
                "code_verifier": code_verifier,
            },
            error_cls=TokenExchangeError,
            action="exchange authorization code",
            client=self._http,
        )
        return CredentialRecord(
            access_token=token.access_token,
            refresh_token=token.refresh_token,
            expires_at=expires_at_ms(token, issued_at),
            client_id=client_id,
            base_url=self.base_url,
            token_endpoint=endpoints.token_endpoint,
        )


def login(base_url: str, **kwargs: object) -> CredentialRecord:
    """Run a :class:`LoginFlow` for *base_url* and return the stored record.

    Keyword arguments are forwarded to :class:`LoginFlow`.
    """
    return LoginFlow(base_url, **kwargs).run()  # type: ignore[arg-type]
