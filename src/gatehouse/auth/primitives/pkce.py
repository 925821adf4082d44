"""PKCE (Proof Key for Code Exchange) primitives for access code grants.

Implements RFC 7636 verifier generation and S256 challenge derivation to
prevent authorization code interception attacks.
"""

from __future__ import annotations

import base64
import hashlib
import secrets
import string

from gatehouse.auth.models.errors import PKCEError
from gatehouse.auth.models.security import PKCEParameters

# RFC 7636 Section 4.1 unreserved characters
VERIFIER_ALPHABET = string.ascii_letters + string.digits + "-._~"
VERIFIER_LENGTH = 128


def generate_code_verifier(length: int = VERIFIER_LENGTH) -> str:
    """Generate a cryptographically secure code verifier.

    RFC 7636 Section 4.1: code verifier must be 43-128 characters long
    and use only unreserved characters:
        [A-Z] / [a-z] / [0-9] / "-" / "." / "_" / "~"

    Args:
        length: Verifier length, defaults to the maximum of 128

    Raises:
        ValueError: If length is outside 43-128
    """
    if not (43 <= length <= 128):
        raise ValueError("code_verifier length must be 43-128 characters")
    return "".join(secrets.choice(VERIFIER_ALPHABET) for _ in range(length))


def derive_code_challenge(code_verifier: str) -> str:
    """Derive the S256 code challenge for a verifier.

    RFC 7636 Section 4.2: BASE64URL-ENCODE(SHA256(ASCII(code_verifier))),
    without padding. Deterministic for a given verifier.
    """
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


class PKCEManager:
    """Generates PKCE parameters for access code attempts.

    Uses the S256 challenge method only; the verifier is kept by the
    attempt and sent with the token exchange.
    """

    def generate_parameters(self) -> PKCEParameters:
        """Generate a new verifier and its challenge.

        Raises:
            PKCEError: If parameter generation fails
        """
        try:
            code_verifier = generate_code_verifier()
            return PKCEParameters(
                code_verifier=code_verifier,
                code_challenge=derive_code_challenge(code_verifier),
                code_challenge_method="S256",
            )
        except Exception as e:
            raise PKCEError(f"Failed to generate PKCE parameters: {e}") from e
