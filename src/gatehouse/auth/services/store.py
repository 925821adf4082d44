"""In-memory store of granted credentials, keyed by security scheme name."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping

from gatehouse.auth.models.tokens import GrantedAuthorization

logger = logging.getLogger(__name__)

StoreListener = Callable[[str, "GrantedAuthorization | None"], None]


class AuthorizationStateStore:
    """Owned, shared mapping from scheme name to granted credential.

    One entry per scheme; a later grant for the same scheme replaces the
    earlier one. State changes only through the methods below, each applied
    under a lock so readers never see a partial update. Listeners hear about
    real changes only: setting an entry equal to the current one is silent.
    """

    def __init__(self, entries: Mapping[str, GrantedAuthorization] | None = None):
        self._lock = threading.RLock()
        self._entries: dict[str, GrantedAuthorization] = dict(entries or {})
        self._listeners: list[StoreListener] = []

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a change listener.

        Your listener receives the scheme name and the new entry, or None
        when the entry was removed.

        Returns:
            A callable that unsubscribes the listener
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def set_authorization(self, entry: GrantedAuthorization) -> bool:
        """Store a credential, replacing any entry for the same scheme.

        Returns:
            True if the store changed, False if an equal entry was present
        """
        with self._lock:
            if self._entries.get(entry.scheme_name) == entry:
                return False
            self._entries[entry.scheme_name] = entry
            self._notify(entry.scheme_name, entry)
        return True

    def merge(self, entries: Mapping[str, GrantedAuthorization]) -> list[str]:
        """Store several credentials at once.

        Returns:
            Names of the schemes whose entry changed
        """
        changed = []
        with self._lock:
            for entry in entries.values():
                if self.set_authorization(entry):
                    changed.append(entry.scheme_name)
        return changed

    def remove_authorization(self, scheme_name: str) -> bool:
        """Remove the credential for a scheme.

        Returns:
            True if an entry was removed
        """
        with self._lock:
            if self._entries.pop(scheme_name, None) is None:
                return False
            self._notify(scheme_name, None)
        return True

    def clear_all(self) -> list[str]:
        """Remove every credential.

        Returns:
            Names of the schemes that were removed
        """
        with self._lock:
            removed = list(self._entries)
            for scheme_name in removed:
                self.remove_authorization(scheme_name)
        return removed

    def get_authorization(self, scheme_name: str) -> GrantedAuthorization | None:
        with self._lock:
            return self._entries.get(scheme_name)

    def list_authorized(self) -> dict[str, GrantedAuthorization]:
        """Get a snapshot of all stored credentials."""
        with self._lock:
            return dict(self._entries)

    def is_authorized(self, scheme_name: str) -> bool:
        with self._lock:
            return scheme_name in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AuthorizationStateStore):
            return NotImplemented
        return self.list_authorized() == other.list_authorized()

    def _notify(self, scheme_name: str, entry: GrantedAuthorization | None) -> None:
        for listener in list(self._listeners):
            try:
                listener(scheme_name, entry)
            except Exception as e:
                logger.warning(f"Store listener failed for {scheme_name}: {e}")
