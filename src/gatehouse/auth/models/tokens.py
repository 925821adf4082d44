"""Token response and granted credential models.

Contains the token endpoint response model and the credential that the
authorization state store keeps per security scheme.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict

from gatehouse.auth.models.schemes import GrantFlow, SchemeType


class TokenResponse(BaseModel):
    """OAuth 2.0 token response (RFC 6749 Section 5).

    Represents the response from a token endpoint, or the token fields of an
    implicit grant redirect, including both successful responses
    (Section 5.1) and error responses (Section 5.2). Unknown fields such as
    ``id_token`` are kept.
    """

    model_config = ConfigDict(extra="allow")

    # Success response fields (RFC 6749 Section 5.1)
    access_token: str | None = None
    token_type: str = "Bearer"
    expires_in: int | None = None  # Seconds until expiry
    refresh_token: str | None = None
    scope: str | None = None

    # Error response fields (RFC 6749 Section 5.2)
    error: str | None = None
    error_description: str | None = None
    error_uri: str | None = None

    @classmethod
    def from_payload(
        cls, payload: Mapping[str, Any], token_name: str = "access_token"
    ) -> TokenResponse:
        """Build a token response, reading the access token from ``token_name``.

        Some servers hand out the usable token under another field
        (``id_token`` for example); the scheme names that field.
        """
        data = dict(payload)
        if token_name != "access_token" and data.get(token_name):
            data["access_token"] = data[token_name]
        return cls.model_validate(data)

    def is_success(self) -> bool:
        """Check if token response indicates success."""
        return self.error is None and self.access_token is not None

    def is_error(self) -> bool:
        """Check if token response indicates an error."""
        return self.error is not None

    def calculate_expires_at(self, issued_at: float | None = None) -> float | None:
        """Calculate absolute expiry timestamp from expires_in.

        Returns:
            Unix timestamp when token expires, or None if no expiry
        """
        if self.expires_in is None:
            return None
        return (issued_at if issued_at is not None else time.time()) + self.expires_in

    def describe_error(self) -> str:
        description = f"{self.error}"
        if self.error_description:
            description += f" ({self.error_description})"
        if self.error_uri:
            description += f" See: {self.error_uri}"
        return description


class GrantedAuthorization(BaseModel):
    """Credential granted for one security scheme.

    OAuth2 grants carry a token and the client that obtained it; API key and
    HTTP schemes carry the value the user entered. Compared structurally, so
    two grants with the same fields are equal.
    """

    model_config = ConfigDict(frozen=True)

    scheme_name: str
    scheme_type: SchemeType = SchemeType.OAUTH2
    flow: GrantFlow | None = None

    # OAuth2
    token: TokenResponse | None = None
    client_id: str | None = None
    client_secret: str | None = None
    scopes: tuple[str, ...] = ()

    # apiKey and http bearer
    value: str | None = None

    # http basic
    username: str | None = None
    password: str | None = None

    @property
    def access_token(self) -> str | None:
        if self.token is not None:
            return self.token.access_token
        return None
