from __future__ import annotations

import logging
from typing import Awaitable, Callable

from gatehouse.auth.models.errors import OAuth2Error
from gatehouse.auth.models.tokens import GrantedAuthorization

logger = logging.getLogger(__name__)


class AuthorizationCallbacks:
    """Manages event callbacks for authorization state changes."""

    def __init__(self):
        self._granted: (
            Callable[[str, GrantedAuthorization], Awaitable[None]] | None
        ) = None
        self._removed: Callable[[str], Awaitable[None]] | None = None
        self._failed: Callable[[str | None, OAuth2Error], Awaitable[None]] | None = (
            None
        )

    def on_authorization_granted(
        self, callback: Callable[[str, GrantedAuthorization], Awaitable[None]]
    ) -> None:
        """Register your callback for newly granted credentials.

        Called once per real change: re-granting an identical credential is
        not announced again.

        Args:
            callback: Your async function called with the scheme name and the
                credential now stored for it.
        """
        self._granted = callback

    async def call_authorization_granted(
        self, scheme_name: str, credential: GrantedAuthorization
    ) -> None:
        if self._granted:
            try:
                await self._granted(scheme_name, credential)
            except Exception as e:
                logger.warning(f"Authorization granted callback failed: {e}")

    def on_authorization_removed(
        self, callback: Callable[[str], Awaitable[None]]
    ) -> None:
        """Register your callback for credentials removed on logout.

        Args:
            callback: Your async function called with the scheme name.
        """
        self._removed = callback

    async def call_authorization_removed(self, scheme_name: str) -> None:
        if self._removed:
            try:
                await self._removed(scheme_name)
            except Exception as e:
                logger.warning(f"Authorization removed callback failed: {e}")

    def on_authorization_failed(
        self, callback: Callable[[str | None, OAuth2Error], Awaitable[None]]
    ) -> None:
        """Register your callback for failed authorization attempts.

        Args:
            callback: Your async function called with the scheme name (None
                when a callback could not be matched to any attempt) and the
                error describing why the attempt failed.
        """
        self._failed = callback

    async def call_authorization_failed(
        self, scheme_name: str | None, reason: OAuth2Error
    ) -> None:
        if self._failed:
            try:
                await self._failed(scheme_name, reason)
            except Exception as e:
                logger.warning(f"Authorization failed callback failed: {e}")
