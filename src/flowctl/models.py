"""Pydantic models shared across flowctl.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Persisted** -- serialised as JSON in the user's config directory:
    :class:`CredentialRecord`.

**Wire** -- request and response bodies of the OAuth endpoints:
    :class:`AuthServerEndpoints`, :class:`ClientRegistrationRequest`,
    :class:`TokenResponse`, and :class:`CallbackParams`.

All models use Pydantic v2. Models parsed from server responses use
``extra="allow"`` so that unknown keys do not break parsing.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class CredentialRecord(BaseModel):
    """The locally cached OAuth credential.

    Exactly one record exists per installation. It is created by a
    successful ``auth login``, replaced in place by every refresh, and
    removed by ``auth logout``. Field names are part of the on-disk format
    and must stay stable.

    Example::

        CredentialRecord(
            access_token="eyJ...",
            refresh_token="rt_...",
            expires_at=1767225600000,
            client_id="abc123",
            base_url="https://api.example.com",
            token_endpoint="https://auth.example.com/oauth/token",
        )
    """

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(description="Bearer credential sent to the API")
    refresh_token: Optional[str] = Field(
        default=None, description="Refresh token, if the server issued one"
    )
    expires_at: int = Field(
        description="Expiry as epoch milliseconds, computed locally from expires_in"
    )
    client_id: str = Field(description="Client id assigned by dynamic registration")
    base_url: str = Field(description="Canonical service root (no trailing slash)")
    token_endpoint: str = Field(
        description="Discovered token endpoint, reused for refresh"
    )


class AuthServerEndpoints(BaseModel):
    """The three endpoints resolved from authorization server metadata (:rfc:`8414`)."""

    authorization_endpoint: str
    token_endpoint: str
    registration_endpoint: str


class ClientRegistrationRequest(BaseModel):
    """Dynamic client registration body (:rfc:`7591`).

    ``token_endpoint_auth_method`` is ``none``: the CLI is a public client
    and proves possession of the authorization code with PKCE instead of a
    client secret.
    """

    client_name: str
    redirect_uris: list[str]
    grant_types: list[str] = Field(
        default_factory=lambda: ["authorization_code", "refresh_token"]
    )
    response_types: list[str] = Field(default_factory=lambda: ["code"])
    scope: str
    token_endpoint_auth_method: str = "none"


class TokenResponse(BaseModel):
    """Successful response of the token endpoint (:rfc:`6749` section 5.1)."""

    model_config = ConfigDict(extra="allow")

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[float] = None
    token_type: Optional[str] = None


class CallbackParams(BaseModel):
    """Query parameters captured from the loopback redirect.

    Only the first value of a repeated key is kept.
    """

    params: dict[str, str] = Field(default_factory=dict)

    @property
    def code(self) -> Optional[str]:
        return self.params.get("code") or None

    @property
    def state(self) -> Optional[str]:
        return self.params.get("state")

    @property
    def error(self) -> Optional[str]:
        return self.params.get("error") or None

    @property
    def error_description(self) -> Optional[str]:
        return self.params.get("error_description") or None
