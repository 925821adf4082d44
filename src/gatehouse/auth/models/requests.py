"""Request descriptors and transient per-attempt grant state."""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import parse_qsl


@dataclass(frozen=True)
class AuthorizationRequestDescriptor:
    """A fully built request, handed to the dispatcher or the user agent.

    Constructed fresh for every call and never reused.
    """

    method: str  # "GET" or "POST"
    url: str
    body: str | None = None  # application/x-www-form-urlencoded
    headers: dict[str, str] = field(default_factory=dict)
    query: tuple[tuple[str, str], ...] = ()

    def form_data(self) -> dict[str, str]:
        """Decode the form body into a dictionary."""
        if not self.body:
            return {}
        return dict(parse_qsl(self.body, keep_blank_values=True))


@dataclass(frozen=True)
class GrantState:
    """Security parameters of one in-flight authorization attempt.

    Never persisted. Discarded once the attempt's callback or token exchange
    completes or fails, or when a newer attempt for the same scheme starts.
    """

    scheme_name: str
    state: str
    code_verifier: str | None = None
    code_challenge: str | None = None
