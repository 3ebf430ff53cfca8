"""Configuration: XDG paths, environment variables, and protocol constants.

This module handles everything flowctl reads from its environment:

* **Directory layout** -- XDG Base Directory compliant on Linux/BSD,
  ``~/.flowctl/`` on macOS and Windows. ``FLOWCTL_CONFIG_DIR`` overrides
  both. See :func:`get_config_dir` and :func:`get_data_dir`.
* **Credential path** -- :func:`token_path` is the single per-user location
  of the stored :class:`~flowctl.models.CredentialRecord`.
* **Environment overrides** -- ``FLOWCTL_API_KEY`` / ``FLOWCTL_BASE_URL``
  bypass the OAuth login entirely (see
  :meth:`~flowctl.auth.lifecycle.TokenManager.get_env_auth`), and
  ``FLOWCTL_LOGIN_TIMEOUT`` bounds how long ``auth login`` waits for the
  browser redirect.
"""

from __future__ import annotations

import math
import os
import platform
from collections.abc import Mapping
from pathlib import Path
from typing import Optional

from flowctl.exceptions import ConfigurationError

_APP_NAME = "flowctl"
_TOKEN_FILENAME = "cli-token.json"

ENV_API_KEY = "FLOWCTL_API_KEY"
ENV_BASE_URL = "FLOWCTL_BASE_URL"
ENV_CONFIG_DIR = "FLOWCTL_CONFIG_DIR"
ENV_LOGIN_TIMEOUT = "FLOWCTL_LOGIN_TIMEOUT"

DEFAULT_BASE_URL = "http://localhost"

# OAuth client identity sent during dynamic registration
CLIENT_NAME = "flowctl CLI"
OAUTH_SCOPE = "api apps:admin apps:view flows:edit"

REFRESH_SKEW_SECONDS = 60
DEFAULT_TOKEN_TTL_SECONDS = 3600
HTTP_TIMEOUT_SECONDS = 30.0


# --- XDG path resolution ---


def _is_xdg_platform() -> bool:
    """Return True if the platform uses the XDG Base Directory layout (Linux/FreeBSD)."""
    return platform.system() == "Linux" or platform.system().endswith("BSD")


def _fallback_base_dir() -> Path:
    """Fallback base directory for non-XDG platforms (macOS, Windows)."""
    return Path.home() / f".{_APP_NAME}"


def _xdg_base(env_var: str, default_segments: tuple[str, ...]) -> Path:
    """Resolve an XDG base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    ``$FLOWCTL_CONFIG_DIR`` wins when set. Otherwise on Linux/BSD:
    ``$XDG_CONFIG_HOME/flowctl/`` (default ``~/.config/flowctl/``), and on
    macOS/Windows: ``~/.flowctl/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    override = os.environ.get(ENV_CONFIG_DIR, "")
    if override:
        path = Path(override).expanduser()
    elif _is_xdg_platform():
        path = _xdg_base("XDG_CONFIG_HOME", (".config",)) / _APP_NAME
    else:
        path = _fallback_base_dir()
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_data_dir() -> Path:
    """Return the data directory (crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/flowctl/`` (default ``~/.local/share/flowctl/``).
    On macOS/Windows: ``~/.flowctl/logs/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    if _is_xdg_platform():
        path = _xdg_base("XDG_DATA_HOME", (".local", "share")) / _APP_NAME
    else:
        path = _fallback_base_dir() / "logs"
    path.mkdir(parents=True, exist_ok=True)
    return path


def token_path() -> Path:
    """Return the path of the stored credential file (``<config_dir>/cli-token.json``)."""
    return get_config_dir() / _TOKEN_FILENAME


# --- Values ---


def canonical_base_url(url: str) -> str:
    """Strip surrounding whitespace and trailing slashes from a service root URL."""
    return url.strip().rstrip("/")


def default_base_url(environ: Optional[Mapping[str, str]] = None) -> str:
    """Base URL used by ``auth login`` when ``--base-url`` is not given."""
    env = os.environ if environ is None else environ
    return canonical_base_url(env.get(ENV_BASE_URL) or DEFAULT_BASE_URL)


def login_timeout_from_env(environ: Optional[Mapping[str, str]] = None) -> Optional[float]:
    """Parse ``FLOWCTL_LOGIN_TIMEOUT`` into seconds.

    Returns:
        The timeout in seconds, or ``None`` (wait indefinitely) when the
        variable is unset or empty.

    Raises:
        ConfigurationError: If the value is not a positive number.
    """
    env = os.environ if environ is None else environ
    raw = env.get(ENV_LOGIN_TIMEOUT, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        raise ConfigurationError(
            f"{ENV_LOGIN_TIMEOUT} must be a number of seconds, got '{raw}'"
        ) from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigurationError(
            f"{ENV_LOGIN_TIMEOUT} must be a positive number of seconds, got '{raw}'"
        )
    return value
