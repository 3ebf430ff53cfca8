"""PKCE and nonce parameter generation (:rfc:`7636`).

Provides the random strings used by the login flow -- the PKCE
``code_verifier`` and the anti-CSRF ``state`` nonce -- and the S256
``code_challenge`` derived from a verifier. All randomness comes from
:mod:`secrets`.
"""

from __future__ import annotations

import base64
import hashlib
import secrets


def _b64url(data: bytes) -> str:
    """URL-safe base64 without ``=`` padding."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def random_token(byte_length: int = 32) -> str:
    """Return *byte_length* random bytes as an unpadded URL-safe base64 string.

    Args:
        byte_length: Bytes of entropy. 32 bytes encode to 43 characters,
            the minimum verifier length allowed by RFC 7636.

    Raises:
        ValueError: If *byte_length* is not positive.
    """
    if byte_length <= 0:
        raise ValueError("byte_length must be positive")
    return _b64url(secrets.token_bytes(byte_length))


def challenge_from(verifier: str) -> str:
    """Return the S256 ``code_challenge`` for *verifier*.

    ``BASE64URL(SHA256(ASCII(verifier)))`` with padding removed.
    """
    return _b64url(hashlib.sha256(verifier.encode("ascii")).digest())


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge (S256).

    Returns:
        A tuple of ``(code_verifier, code_challenge)``. The verifier is
        86 characters long (64 random bytes).
    """
    code_verifier = random_token(64)
    return code_verifier, challenge_from(code_verifier)
