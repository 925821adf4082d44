import json
from unittest.mock import MagicMock

import pytest

from gatehouse.auth.models.errors import MalformedPersistedState
from gatehouse.auth.models.schemes import GrantFlow, SchemeType
from gatehouse.auth.models.tokens import GrantedAuthorization, TokenResponse
from gatehouse.auth.services.persistence import (
    AUTHORIZED_KEY,
    AuthorizationPersistence,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from gatehouse.auth.services.store import AuthorizationStateStore


def populated_store() -> AuthorizationStateStore:
    return AuthorizationStateStore(
        {
            "api_key": GrantedAuthorization(
                scheme_name="api_key", scheme_type=SchemeType.API_KEY, value="abc"
            ),
            "petstore_auth": GrantedAuthorization(
                scheme_name="petstore_auth",
                flow=GrantFlow.ACCESS_CODE,
                token=TokenResponse(
                    access_token="tok", expires_in=3600, id_token="id-tok"
                ),
                client_id="client-1",
                scopes=("read", "write"),
            ),
        }
    )


class TestPersist:
    def test_disabled_option_writes_nothing(self):
        # Arrange
        storage = MagicMock(spec=InMemoryKeyValueStore)
        persistence = AuthorizationPersistence(storage)

        # Act
        written = persistence.persist(populated_store(), enabled=False)

        # Assert
        assert written is False
        storage.set_item.assert_not_called()

    def test_enabled_option_writes_under_authorized_key(self):
        # Arrange
        storage = InMemoryKeyValueStore()
        persistence = AuthorizationPersistence(storage)
        store = AuthorizationStateStore(
            {
                "api_key": GrantedAuthorization(
                    scheme_name="api_key", scheme_type=SchemeType.API_KEY, value="abc"
                )
            }
        )

        # Act
        written = persistence.persist(store, enabled=True)

        # Assert
        assert written is True
        assert json.loads(storage.items[AUTHORIZED_KEY]) == {
            "api_key": {
                "scheme_name": "api_key",
                "scheme_type": "apiKey",
                "scopes": [],
                "value": "abc",
            }
        }

    def test_each_write_overwrites_the_previous_value(self):
        storage = InMemoryKeyValueStore()
        persistence = AuthorizationPersistence(storage)
        persistence.persist(populated_store(), enabled=True)

        persistence.persist(AuthorizationStateStore(), enabled=True)

        assert json.loads(storage.items[AUTHORIZED_KEY]) == {}


class TestRestore:
    def test_restore_reproduces_persisted_store(self):
        # Arrange
        storage = InMemoryKeyValueStore()
        persistence = AuthorizationPersistence(storage)
        original = populated_store()
        persistence.persist(original, enabled=True)

        # Act
        restored = persistence.restore()

        # Assert
        assert restored == original
        token = restored.get_authorization("petstore_auth").token
        assert token.model_extra == {"id_token": "id-tok"}

    def test_absent_value_restores_empty_store(self):
        restored = AuthorizationPersistence(InMemoryKeyValueStore()).restore()

        assert len(restored) == 0

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "[]",
            '"authorized"',
            '{"api_key": "abc"}',
            '{"api_key": {"scheme_type": "bogus"}}',
        ],
    )
    def test_malformed_value_restores_empty_store(self, raw):
        # Arrange
        storage = InMemoryKeyValueStore({AUTHORIZED_KEY: raw})

        # Act
        restored = AuthorizationPersistence(storage).restore()

        # Assert
        assert len(restored) == 0

    def test_malformed_entry_names_the_scheme(self):
        persistence = AuthorizationPersistence(InMemoryKeyValueStore())

        with pytest.raises(MalformedPersistedState) as exc_info:
            persistence._decode('{"api_key": {"scheme_type": "bogus"}}')

        assert exc_info.value.scheme_name == "api_key"

    def test_entry_stored_for_another_scheme_is_rejected(self):
        # Arrange
        raw = json.dumps(
            {
                "api_key": {
                    "scheme_name": "admin_key",
                    "scheme_type": "apiKey",
                    "value": "abc",
                }
            }
        )
        storage = InMemoryKeyValueStore({AUTHORIZED_KEY: raw})

        # Act
        restored = AuthorizationPersistence(storage).restore()

        # Assert
        assert len(restored) == 0
        assert restored.get_authorization("admin_key") is None

    def test_unreadable_storage_restores_empty_store(self, caplog):
        # Arrange
        storage = MagicMock(spec=InMemoryKeyValueStore)
        storage.get_item.side_effect = OSError("disk unavailable")

        # Act
        restored = AuthorizationPersistence(storage).restore()

        # Assert
        assert len(restored) == 0
        assert "Failed to read persisted authorizations: disk unavailable" in (
            caplog.text
        )


class TestJsonFileKeyValueStore:
    def test_round_trip_through_file(self, tmp_path):
        # Arrange
        path = tmp_path / "state" / "auth.json"
        persistence = AuthorizationPersistence(JsonFileKeyValueStore(path))
        original = populated_store()

        # Act
        persistence.persist(original, enabled=True)
        restored = AuthorizationPersistence(JsonFileKeyValueStore(path)).restore()

        # Assert
        assert path.exists()
        assert restored == original

    def test_other_keys_are_preserved(self, tmp_path):
        storage = JsonFileKeyValueStore(tmp_path / "auth.json")
        storage.set_item("other", "value")

        storage.set_item(AUTHORIZED_KEY, "{}")

        assert storage.get_item("other") == "value"
        assert storage.get_item(AUTHORIZED_KEY) == "{}"

    def test_missing_file_has_no_items(self, tmp_path):
        storage = JsonFileKeyValueStore(tmp_path / "missing.json")

        assert storage.get_item(AUTHORIZED_KEY) is None

    def test_corrupt_file_has_no_items(self, tmp_path):
        path = tmp_path / "auth.json"
        path.write_text("{corrupt", encoding="utf-8")

        assert JsonFileKeyValueStore(path).get_item(AUTHORIZED_KEY) is None
