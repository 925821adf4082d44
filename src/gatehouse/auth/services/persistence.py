"""Persistence of granted credentials across restarts.

Serializes the authorization state store to a durable key-value slot and
restores it at startup. Only granted credentials are written; per-attempt
state such as PKCE verifiers and state nonces never is.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import ValidationError

from gatehouse.auth.models.errors import MalformedPersistedState
from gatehouse.auth.models.tokens import GrantedAuthorization
from gatehouse.auth.services.store import AuthorizationStateStore

logger = logging.getLogger(__name__)

AUTHORIZED_KEY = "authorized"


class KeyValueStore(Protocol):
    """Durable string key-value storage."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...


class InMemoryKeyValueStore:
    """Key-value storage that lives as long as the process."""

    def __init__(self, items: dict[str, str] | None = None):
        self.items: dict[str, str] = dict(items or {})

    def get_item(self, key: str) -> str | None:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.items[key] = value


class JsonFileKeyValueStore:
    """Key-value storage backed by a single JSON object on disk.

    Writes go to a temporary file that replaces the original, so a crash
    mid-write leaves the previous contents intact.
    """

    def __init__(self, path: str | os.PathLike[str]):
        self.path = Path(path)

    def get_item(self, key: str) -> str | None:
        value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = value

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def _read(self) -> dict[str, object]:
        try:
            with self.path.open(encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable storage file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}


class AuthorizationPersistence:
    """Writes and reads the authorization state store under a fixed key."""

    def __init__(self, storage: KeyValueStore, key: str = AUTHORIZED_KEY):
        self.storage = storage
        self.key = key

    def persist(self, store: AuthorizationStateStore, enabled: bool) -> bool:
        """Serialize the whole store, overwriting the previous value.

        Args:
            store: Store to serialize
            enabled: The persist-authorization option; nothing is written
                when it is off

        Returns:
            True if a value was written
        """
        if not enabled:
            return False

        payload = {
            name: entry.model_dump(mode="json", exclude_none=True)
            for name, entry in store.list_authorized().items()
        }
        self.storage.set_item(self.key, json.dumps(payload))
        logger.debug(f"Persisted {len(payload)} authorization(s)")
        return True

    def restore(self) -> AuthorizationStateStore:
        """Rebuild a store from persisted data.

        Absent, unreadable or malformed data yields an empty store; this
        never raises for bad data.
        """
        try:
            raw = self.storage.get_item(self.key)
        except Exception as e:
            logger.warning(f"Failed to read persisted authorizations: {e}")
            return AuthorizationStateStore()
        if raw is None:
            return AuthorizationStateStore()

        try:
            entries = self._decode(raw)
        except MalformedPersistedState as e:
            logger.warning(f"Discarding persisted authorizations: {e}")
            return AuthorizationStateStore()

        logger.info(f"Restored {len(entries)} persisted authorization(s)")
        return AuthorizationStateStore(entries)

    def _decode(self, raw: str) -> dict[str, GrantedAuthorization]:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedPersistedState(f"Invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedPersistedState(
                f"Expected an object, got {type(data).__name__}"
            )

        entries = {}
        for name, value in data.items():
            if not isinstance(value, dict):
                raise MalformedPersistedState(f"Entry {name!r} is not an object", name)
            if value.get("scheme_name", name) != name:
                raise MalformedPersistedState(
                    f"Entry {name!r} is stored for {value['scheme_name']!r}", name
                )
            try:
                entry = GrantedAuthorization.model_validate(
                    {**value, "scheme_name": name}
                )
            except ValidationError as e:
                raise MalformedPersistedState(
                    f"Invalid entry {name!r}: {e}", name
                ) from e
            entries[entry.scheme_name] = entry
        return entries
