from unittest.mock import AsyncMock

import pytest

from gatehouse.auth.models.errors import NetworkFailure
from gatehouse.auth.models.schemes import SchemeType
from gatehouse.auth.models.tokens import GrantedAuthorization
from gatehouse.auth.services.callbacks import AuthorizationCallbacks

CREDENTIAL = GrantedAuthorization(
    scheme_name="api_key", scheme_type=SchemeType.API_KEY, value="abc"
)
FAILURE = NetworkFailure("Token endpoint returned HTTP 500", "machine", status=500)


class TestAuthorizationCallbacks:
    @pytest.mark.parametrize(
        "register_method,call_method,args",
        [
            (
                "on_authorization_granted",
                "call_authorization_granted",
                ("api_key", CREDENTIAL),
            ),
            ("on_authorization_removed", "call_authorization_removed", ("api_key",)),
            (
                "on_authorization_failed",
                "call_authorization_failed",
                ("machine", FAILURE),
            ),
        ],
    )
    async def test_call_invokes_callback_if_registered(
        self, register_method, call_method, args
    ):
        # Arrange
        callbacks = AuthorizationCallbacks()
        callback = AsyncMock()
        getattr(callbacks, register_method)(callback)

        # Act
        await getattr(callbacks, call_method)(*args)

        # Assert
        callback.assert_awaited_once_with(*args)

    @pytest.mark.parametrize(
        "call_method,args",
        [
            ("call_authorization_granted", ("api_key", CREDENTIAL)),
            ("call_authorization_removed", ("api_key",)),
            ("call_authorization_failed", (None, FAILURE)),
        ],
    )
    async def test_call_does_nothing_if_no_callback_registered(
        self, call_method, args
    ):
        # Arrange
        callbacks = AuthorizationCallbacks()

        # Act & Assert - should not raise
        await getattr(callbacks, call_method)(*args)

    async def test_failing_callback_is_logged_not_raised(self, caplog):
        # Arrange
        callbacks = AuthorizationCallbacks()
        callbacks.on_authorization_removed(
            AsyncMock(side_effect=RuntimeError("view broke"))
        )

        # Act
        await callbacks.call_authorization_removed("api_key")

        # Assert
        assert "Authorization removed callback failed: view broke" in caplog.text
