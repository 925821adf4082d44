"""PKCE verifier/challenge pair for access code attempts."""

from __future__ import annotations

from dataclasses import dataclass

from gatehouse.auth.models.requests import GrantState


@dataclass(frozen=True)
class PKCEParameters:
    """Verifier and derived challenge for one access code attempt (RFC 7636).

    The challenge travels with the authorization request, the verifier with
    the later token exchange.
    """

    code_verifier: str
    code_challenge: str
    code_challenge_method: str = "S256"

    def __post_init__(self) -> None:
        if not (43 <= len(self.code_verifier) <= 128):
            raise ValueError("code_verifier must be 43-128 characters")
        if not (43 <= len(self.code_challenge) <= 128):
            raise ValueError("code_challenge must be 43-128 characters")
        if self.code_challenge_method != "S256":
            raise ValueError("Only S256 code challenge method is supported")

    def to_grant_state(self, scheme_name: str, state: str) -> GrantState:
        return GrantState(
            scheme_name=scheme_name,
            state=state,
            code_verifier=self.code_verifier,
            code_challenge=self.code_challenge,
        )
