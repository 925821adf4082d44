"""Exception hierarchy for API authorization errors.

Provides specific exception types for different failure modes so the view
layer can attribute each failure to the security scheme that caused it.
"""

from __future__ import annotations


class OAuth2Error(Exception):
    """Base exception for all authorization related errors."""

    def __init__(self, message: str, scheme_name: str | None = None):
        super().__init__(message)
        self.message = message
        self.scheme_name = scheme_name

    def __str__(self) -> str:
        if self.scheme_name:
            return f"[{self.scheme_name}] {self.message}"
        return self.message


class InvalidGrantConfiguration(OAuth2Error):
    """Raised when a security scheme or grant is missing a required field."""

    pass


class NetworkFailure(OAuth2Error):
    """Raised when the request dispatcher fails or returns a non-2xx status."""

    def __init__(
        self,
        message: str,
        scheme_name: str | None = None,
        status: int | None = None,
    ):
        super().__init__(message, scheme_name)
        self.status = status


class TokenError(OAuth2Error):
    """Raised when a token endpoint response is not a usable token."""

    pass


class AuthorizationError(OAuth2Error):
    """Raised when the authorization server rejects the authorization."""

    pass


class AuthorizationCallbackError(OAuth2Error):
    """Raised when redirect callback data is malformed or invalid.

    This indicates the authorization server sent an invalid callback URL,
    not that our callback handling code failed.
    """

    pass


class StateValidationError(AuthorizationCallbackError):
    """Raised when OAuth state parameter validation fails.

    This indicates either a missing state parameter, a state mismatch, or a
    callback for an attempt that has been superseded.
    """

    pass


class PKCEError(OAuth2Error):
    """Raised when PKCE parameter generation fails."""

    pass


class MalformedPersistedState(OAuth2Error):
    """Raised when persisted authorizations cannot be decoded."""

    pass
