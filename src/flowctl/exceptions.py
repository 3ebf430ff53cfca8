"""Exception hierarchy for flowctl.

All exceptions inherit from :class:`FlowctlError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`flowctl.exit_codes`.
The top-level error handler in :func:`flowctl.app.main` catches
``FlowctlError`` and exits with the appropriate code, while unexpected
exceptions produce a crash log and exit with :data:`EXIT_GENERIC_FAILURE`.

Subclass hierarchy::

    FlowctlError (exit 1)
    +-- ConfigurationError        (exit 1)
    +-- ApiError                  (exit 1)
    +-- ConnectionError_          (exit 6)
    +-- AuthError                 (exit 3)
        +-- DiscoveryError
        +-- RegistrationError
        +-- CallbackTimeoutError
        +-- StateMismatchError
        +-- AuthorizationDeniedError
        +-- MissingCodeError
        +-- TokenExchangeError
        +-- NotAuthenticatedError
        +-- NoRefreshTokenError
        +-- RefreshError
"""

from flowctl.exit_codes import (
    EXIT_AUTH_FAILURE,
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
)

_LOGIN_HINT = "Run 'flowctl auth login' to authenticate."


class FlowctlError(Exception):
    """Base exception for all flowctl errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`flowctl.exit_codes`. The entry point catches
    this exception type and calls ``sys.exit(exc.exit_code)``.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class ConfigurationError(FlowctlError):
    """Raised for invalid environment configuration (e.g. an API key without a base URL)."""

    exit_code = EXIT_GENERIC_FAILURE


class ApiError(FlowctlError):
    """Raised when the Flows API rejects a request or reports an error payload."""

    exit_code = EXIT_GENERIC_FAILURE


class ConnectionError_(FlowctlError):
    """Raised on network-level failures (timeout, DNS resolution, connection refused).

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class AuthError(FlowctlError):
    """Raised when authentication fails or no usable credential is available."""

    exit_code = EXIT_AUTH_FAILURE


# --- Login flow ---


class DiscoveryError(AuthError):
    """Raised when the OAuth metadata documents cannot be fetched or are incomplete."""


class RegistrationError(AuthError):
    """Raised when dynamic client registration fails."""


class CallbackTimeoutError(AuthError):
    """Raised when no browser redirect reaches the loopback listener in time."""


class StateMismatchError(AuthError):
    """Raised when the callback ``state`` does not match the nonce sent with the request.

    Signals a possible CSRF / redirect hijack, or a stale browser tab from an
    earlier login attempt.
    """


class AuthorizationDeniedError(AuthError):
    """Raised when the authorization server redirects back with an ``error`` parameter."""


class MissingCodeError(AuthError):
    """Raised when the callback carries neither an error nor an authorization code."""


class TokenExchangeError(AuthError):
    """Raised when the authorization code cannot be exchanged for tokens."""


# --- Stored credential lifecycle ---


class NotAuthenticatedError(AuthError):
    """Raised when no credential is stored locally."""

    def __init__(self, message: str = "Not authenticated.", exit_code: int | None = None):
        super().__init__(f"{message} {_LOGIN_HINT}", exit_code)


class NoRefreshTokenError(AuthError):
    """Raised when the access token expired and the server never issued a refresh token."""

    def __init__(
        self,
        message: str = "Access token expired and no refresh token is available.",
        exit_code: int | None = None,
    ):
        super().__init__(f"{message} {_LOGIN_HINT}", exit_code)


class RefreshError(AuthError):
    """Raised when the token endpoint rejects a refresh request."""
