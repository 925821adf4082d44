"""Security utilities for OAuth 2.0 redirect flows.

Provides cryptographically secure state generation and validation.
"""

from __future__ import annotations

import base64
import secrets
import string

from gatehouse.auth.models.errors import StateValidationError

_STATE_ALPHABET = string.ascii_letters + string.digits + "-._~"


def generate_state() -> str:
    """Generate cryptographically secure state parameter.

    The state parameter provides CSRF protection by ensuring the callback
    matches the original authorization request.

    Returns:
        Cryptographically secure random state string (32 characters)
    """
    return "".join(secrets.choice(_STATE_ALPHABET) for _ in range(32))


def validate_state(
    expected: str, actual: str | None, scheme_name: str | None = None
) -> None:
    """Validate state parameter matches expected value.

    Args:
        expected: State parameter from original authorization request
        actual: State parameter from callback URL
        scheme_name: Scheme the attempt belongs to, for error attribution

    Raises:
        StateValidationError: If state is missing or doesn't match
    """
    if actual is None:
        raise StateValidationError(
            "Authorization server callback missing required state parameter",
            scheme_name,
        )
    if not secrets.compare_digest(expected.encode(), actual.encode()):
        raise StateValidationError(
            "State parameter mismatch - possible CSRF attack", scheme_name
        )


def basic_authorization_header(username: str, password: str | None) -> str:
    """Build an ``Authorization: Basic`` header value."""
    credentials = f"{username}:{password or ''}".encode()
    return "Basic " + base64.b64encode(credentials).decode("ascii")
