"""Authorization engine orchestration.

Coordinates server resolution, grant request building, PKCE, the injected
request dispatcher, the authorization state store and persistence to carry
out complete authorization attempts for API security schemes.
"""

from __future__ import annotations

import logging
import secrets
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit

from pydantic import ValidationError

from gatehouse.auth.models.description import ApiDescriptionContext
from gatehouse.auth.models.errors import (
    AuthorizationCallbackError,
    AuthorizationError,
    InvalidGrantConfiguration,
    NetworkFailure,
    OAuth2Error,
    StateValidationError,
    TokenError,
)
from gatehouse.auth.models.grants import (
    AccessCodeGrant,
    ClientCredentialsGrant,
    ImplicitGrant,
    PasswordGrant,
)
from gatehouse.auth.models.requests import AuthorizationRequestDescriptor, GrantState
from gatehouse.auth.models.schemes import GrantFlow, SchemeType, SecurityScheme
from gatehouse.auth.models.tokens import GrantedAuthorization, TokenResponse
from gatehouse.auth.primitives.pkce import PKCEManager
from gatehouse.auth.primitives.servers import resolve_base_url
from gatehouse.auth.services.callbacks import AuthorizationCallbacks
from gatehouse.auth.services.dispatch import (
    DispatchResponse,
    HttpxDispatcher,
    RequestDispatcher,
)
from gatehouse.auth.services.grants import (
    build_authorization_request,
    build_token_request,
)
from gatehouse.auth.services.persistence import (
    AuthorizationPersistence,
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
)
from gatehouse.auth.services.security import generate_state, validate_state
from gatehouse.auth.services.store import AuthorizationStateStore
from gatehouse.config import AuthConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _PendingAttempt:
    """A redirect-based attempt waiting for its callback."""

    scheme: SecurityScheme
    grant_state: GrantState
    client_id: str
    client_secret: str | None
    redirect_uri: str
    scopes: tuple[str, ...]


class AuthorizationEngine:
    """Authorizes an API description's security schemes.

    Owns one authorization state store for the running session. Redirect
    flows (implicit, access code) are split into ``start_authorization``,
    which returns the request the user agent should open, and
    ``handle_callback``, which completes the attempt from the redirect URL.
    Token-endpoint flows (application, password) complete in a single call.

    Every real change to the store is persisted (when enabled) and announced
    through the callbacks. Failed attempts are announced and re-raised; they
    never touch another scheme's credential.
    """

    def __init__(
        self,
        context: ApiDescriptionContext,
        dispatcher: RequestDispatcher,
        config: AuthConfig | None = None,
        store: AuthorizationStateStore | None = None,
        persistence: AuthorizationPersistence | None = None,
        callbacks: AuthorizationCallbacks | None = None,
    ):
        self.context = context
        self.dispatcher = dispatcher
        self.config = config or AuthConfig()
        self.store = store or AuthorizationStateStore()
        self.persistence = persistence
        self.callbacks = callbacks or AuthorizationCallbacks()

        self._pkce_manager = PKCEManager()
        self._attempts: dict[str, _PendingAttempt] = {}
        self._attempts_lock = threading.Lock()

    @classmethod
    def from_config(
        cls,
        context: ApiDescriptionContext,
        config: AuthConfig,
        dispatcher: RequestDispatcher | None = None,
    ) -> AuthorizationEngine:
        """Create an engine with default collaborators for a configuration.

        Uses an httpx dispatcher unless one is given, and JSON file storage
        when ``storage_path`` is configured.
        """
        if config.storage_path:
            storage = JsonFileKeyValueStore(config.storage_path)
        else:
            storage = InMemoryKeyValueStore()

        return cls(
            context,
            dispatcher or HttpxDispatcher(),
            config=config,
            persistence=AuthorizationPersistence(storage),
        )

    @property
    def base_url(self) -> str:
        """Base URL that relative authorization and token URLs resolve against."""
        return resolve_base_url(self.context)

    def update_context(self, context: ApiDescriptionContext) -> None:
        """Switch to a new description context, e.g. after server selection."""
        self.context = context

    # Redirect flows

    async def start_authorization(
        self,
        scheme: SecurityScheme,
        *,
        redirect_uri: str,
        client_id: str | None = None,
        client_secret: str | None = None,
        scopes: Iterable[str] | None = None,
        use_pkce: bool | None = None,
    ) -> AuthorizationRequestDescriptor:
        """Start an implicit or access code attempt.

        Generates the state nonce, and for access code grants the PKCE pair
        when enabled, then records the attempt for the scheme. A new attempt
        replaces any attempt still pending for the same scheme.

        Args:
            scheme: Security scheme with the implicit or accessCode flow
            redirect_uri: Where the authorization server sends the user back
            client_id: Client identifier, defaults to the configured one
            client_secret: Client secret for the later code exchange
            scopes: Scopes to request, defaults to the configured ones
            use_pkce: Override the use-PKCE option for this attempt

        Returns:
            The GET request for the user agent to open

        Raises:
            InvalidGrantConfiguration: If the scheme or inputs are incomplete
            PKCEError: If the PKCE pair cannot be generated
        """
        client_id = client_id or self.config.client_id or ""
        client_secret = client_secret or self.config.client_secret
        requested = tuple(scopes if scopes is not None else self.config.scopes)

        try:
            descriptor, grant_state = self._build_redirect_request(
                scheme, redirect_uri, client_id, requested, use_pkce
            )
        except OAuth2Error as e:
            await self._fail(scheme.name, e)
            raise

        attempt = _PendingAttempt(
            scheme=scheme,
            grant_state=grant_state,
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=requested,
        )
        with self._attempts_lock:
            if scheme.name in self._attempts:
                logger.debug(f"Superseding pending attempt for {scheme.name}")
            self._attempts[scheme.name] = attempt

        logger.info(f"Started {scheme.flow.value} authorization for {scheme.name}")
        return descriptor

    def _build_redirect_request(
        self,
        scheme: SecurityScheme,
        redirect_uri: str,
        client_id: str,
        requested: tuple[str, ...],
        use_pkce: bool | None,
    ) -> tuple[AuthorizationRequestDescriptor, GrantState]:
        if not scheme.uses_redirect:
            raise InvalidGrantConfiguration(
                "Security scheme does not use a redirect flow", scheme.name
            )

        state = generate_state()

        if scheme.flow == GrantFlow.ACCESS_CODE:
            if use_pkce is None:
                use_pkce = self.config.use_pkce_with_authorization_code_grant
            if use_pkce:
                pkce_params = self._pkce_manager.generate_parameters()
                grant_state = pkce_params.to_grant_state(scheme.name, state)
            else:
                grant_state = GrantState(scheme_name=scheme.name, state=state)
            params = AccessCodeGrant(
                client_id=client_id,
                redirect_uri=redirect_uri,
                state=state,
                scopes=requested,
                code_challenge=grant_state.code_challenge,
            )
        else:
            grant_state = GrantState(scheme_name=scheme.name, state=state)
            params = ImplicitGrant(
                client_id=client_id,
                redirect_uri=redirect_uri,
                state=state,
                scopes=requested,
            )

        descriptor = build_authorization_request(
            scheme, params, base_url=self.base_url, config=self.config
        )
        return descriptor, grant_state

    def pending_attempt(self, scheme_name: str) -> GrantState | None:
        """Get the grant state of the scheme's pending attempt, if any."""
        with self._attempts_lock:
            attempt = self._attempts.get(scheme_name)
        return attempt.grant_state if attempt else None

    def cancel_authorization(self, scheme_name: str) -> bool:
        """Abandon the scheme's pending attempt.

        Returns:
            True if an attempt was pending
        """
        with self._attempts_lock:
            return self._attempts.pop(scheme_name, None) is not None

    async def handle_callback(
        self, callback_url: str, scheme_name: str | None = None
    ) -> GrantedAuthorization:
        """Complete a redirect attempt from the authorization server's callback.

        Implicit grants read the token from the URL fragment; access code
        grants exchange the code at the token endpoint through the
        dispatcher. The attempt is found by scheme name when given, or else
        by the callback's state parameter, and is discarded once claimed.

        Args:
            callback_url: Full redirect URL received from the server
            scheme_name: Scheme the callback belongs to, if known

        Returns:
            The stored credential

        Raises:
            StateValidationError: If no pending attempt matches the callback
            AuthorizationError: If the server reported an error
            AuthorizationCallbackError: If the callback lacks a code or token
            NetworkFailure: If the code exchange request fails
            TokenError: If the token response is unusable
        """
        try:
            parsed = urlsplit(callback_url)
            query = dict(parse_qsl(parsed.query, keep_blank_values=True))
            fragment = dict(parse_qsl(parsed.fragment, keep_blank_values=True))
        except ValueError as e:
            error = AuthorizationCallbackError(
                f"Failed to parse callback URL: {e}", scheme_name
            )
            await self._fail(scheme_name, error)
            raise error from e

        params = {**query, **fragment}

        try:
            attempt = self._claim_attempt(scheme_name, params.get("state"))
        except StateValidationError as e:
            await self._fail(scheme_name, e)
            raise

        scheme = attempt.scheme
        try:
            if params.get("error"):
                reported = TokenResponse(
                    error=params["error"],
                    error_description=params.get("error_description"),
                    error_uri=params.get("error_uri"),
                )
                raise AuthorizationError(
                    f"Authorization failed: {reported.describe_error()}", scheme.name
                )

            if scheme.flow == GrantFlow.IMPLICIT:
                token = self._implicit_token(scheme, params)
            else:
                token = await self._exchange_code(attempt, params.get("code"))

        except OAuth2Error as e:
            await self._fail(scheme.name, e)
            raise

        return await self._grant(
            GrantedAuthorization(
                scheme_name=scheme.name,
                flow=scheme.flow,
                token=token,
                client_id=attempt.client_id or None,
                client_secret=attempt.client_secret,
                scopes=attempt.scopes,
            )
        )

    # Token endpoint flows

    async def authorize_client_credentials(
        self, scheme: SecurityScheme, grant: ClientCredentialsGrant
    ) -> GrantedAuthorization:
        """Obtain a token with the client credentials ("application") grant."""
        return await self._authorize_at_token_endpoint(
            scheme, grant, grant.client_id, grant.client_secret, grant.scopes
        )

    async def authorize_password(
        self, scheme: SecurityScheme, grant: PasswordGrant
    ) -> GrantedAuthorization:
        """Obtain a token with the resource owner password grant."""
        return await self._authorize_at_token_endpoint(
            scheme, grant, grant.client_id, grant.client_secret, grant.scopes
        )

    # Non-OAuth schemes and prebuilt credentials

    async def authorize(self, entry: GrantedAuthorization) -> GrantedAuthorization:
        """Store a credential as-is and announce it if it changed anything."""
        return await self._grant(entry)

    async def authorize_api_key(
        self, scheme: SecurityScheme, value: str
    ) -> GrantedAuthorization:
        await self._require_type(scheme, SchemeType.API_KEY)
        return await self._grant(
            GrantedAuthorization(
                scheme_name=scheme.name, scheme_type=SchemeType.API_KEY, value=value
            )
        )

    async def authorize_http(
        self,
        scheme: SecurityScheme,
        *,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
    ) -> GrantedAuthorization:
        """Store HTTP basic credentials or an HTTP bearer token."""
        await self._require_type(scheme, SchemeType.HTTP)
        if scheme.http_scheme == "bearer":
            entry = GrantedAuthorization(
                scheme_name=scheme.name, scheme_type=SchemeType.HTTP, value=token
            )
        else:
            entry = GrantedAuthorization(
                scheme_name=scheme.name,
                scheme_type=SchemeType.HTTP,
                username=username,
                password=password,
            )
        return await self._grant(entry)

    async def logout(self, scheme_names: Iterable[str] | None = None) -> list[str]:
        """Remove credentials for the named schemes, or for all schemes.

        Returns:
            Names of the schemes whose credential was removed
        """
        if scheme_names is None:
            removed = self.store.clear_all()
        else:
            removed = [
                name for name in scheme_names if self.store.remove_authorization(name)
            ]

        if removed:
            logger.info(f"Logged out of {', '.join(removed)}")
            self._persist()
            for name in removed:
                await self.callbacks.call_authorization_removed(name)
        return removed

    async def restore(self) -> dict[str, GrantedAuthorization]:
        """Load persisted credentials into the store.

        Does nothing unless persist_authorization is enabled.

        Returns:
            The credentials that were restored
        """
        if self.persistence is None or not self.config.persist_authorization:
            return {}

        restored = self.persistence.restore().list_authorized()
        changed = self.store.merge(restored)
        for name in changed:
            await self.callbacks.call_authorization_granted(name, restored[name])
        return restored

    async def close(self) -> None:
        """Close the dispatcher if it holds resources."""
        close = getattr(self.dispatcher, "close", None)
        if close is not None:
            await close()

    # Internals

    def _claim_attempt(
        self, scheme_name: str | None, state: str | None
    ) -> _PendingAttempt:
        with self._attempts_lock:
            if scheme_name is not None:
                attempt = self._attempts.get(scheme_name)
                if attempt is None:
                    raise StateValidationError(
                        "No pending authorization attempt", scheme_name
                    )
                # A forged or stale callback must not cancel the real attempt
                validate_state(attempt.grant_state.state, state, scheme_name)
            else:
                if state is None:
                    raise StateValidationError(
                        "Authorization server callback missing required state parameter"
                    )
                attempt = next(
                    (
                        candidate
                        for candidate in self._attempts.values()
                        if secrets.compare_digest(
                            candidate.grant_state.state.encode(), state.encode()
                        )
                    ),
                    None,
                )
                if attempt is None:
                    raise StateValidationError(
                        "No pending authorization attempt matches the callback state"
                    )

            del self._attempts[attempt.scheme.name]
            return attempt

    def _implicit_token(
        self, scheme: SecurityScheme, params: dict[str, str]
    ) -> TokenResponse:
        try:
            # The state nonce is per-attempt data, not part of the token
            fields = {key: value for key, value in params.items() if key != "state"}
            token = TokenResponse.from_payload(fields, scheme.token_name)
        except ValidationError as e:
            raise AuthorizationCallbackError(
                f"Invalid token in callback: {e}", scheme.name
            ) from e
        if not token.is_success():
            raise AuthorizationCallbackError(
                "Callback missing required access token", scheme.name
            )
        return token

    async def _exchange_code(
        self, attempt: _PendingAttempt, code: str | None
    ) -> TokenResponse:
        scheme = attempt.scheme
        if not code:
            raise AuthorizationCallbackError("Missing authorization code", scheme.name)

        descriptor = build_token_request(
            scheme,
            code,
            attempt.redirect_uri,
            attempt.grant_state.code_verifier,
            client_id=attempt.client_id,
            client_secret=attempt.client_secret,
            base_url=self.base_url,
            config=self.config,
        )
        return await self._request_token(scheme, descriptor)

    async def _authorize_at_token_endpoint(
        self,
        scheme: SecurityScheme,
        grant: ClientCredentialsGrant | PasswordGrant,
        client_id: str,
        client_secret: str | None,
        scopes: tuple[str, ...],
    ) -> GrantedAuthorization:
        try:
            descriptor = build_authorization_request(
                scheme, grant, base_url=self.base_url, config=self.config
            )
            token = await self._request_token(scheme, descriptor)
        except OAuth2Error as e:
            await self._fail(scheme.name, e)
            raise

        return await self._grant(
            GrantedAuthorization(
                scheme_name=scheme.name,
                flow=scheme.flow,
                token=token,
                client_id=client_id,
                client_secret=client_secret,
                scopes=tuple(scopes),
            )
        )

    async def _request_token(
        self, scheme: SecurityScheme, descriptor: AuthorizationRequestDescriptor
    ) -> TokenResponse:
        """Send a token request and parse the response (RFC 6749 Section 5)."""
        try:
            response = await self.dispatcher(descriptor)
        except Exception as e:
            raise NetworkFailure(
                f"Token request to {descriptor.url} failed: {e}", scheme.name
            ) from e

        if not response.ok:
            raise NetworkFailure(
                f"Token endpoint returned HTTP {response.status}"
                f"{_error_detail(response)}",
                scheme.name,
                status=response.status,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise TokenError(f"Invalid token response format: {e}", scheme.name) from e
        if not isinstance(payload, dict):
            raise TokenError("Token response is not a JSON object", scheme.name)

        try:
            token = TokenResponse.from_payload(payload, scheme.token_name)
        except ValidationError as e:
            raise TokenError(f"Invalid token response format: {e}", scheme.name) from e

        if token.is_error():
            raise AuthorizationError(
                f"Authorization failed: {token.describe_error()}", scheme.name
            )
        if not token.is_success():
            raise TokenError(
                "Token response missing required access_token", scheme.name
            )

        logger.info(f"Token request for {scheme.name} successful")
        return token

    async def _grant(self, entry: GrantedAuthorization) -> GrantedAuthorization:
        if self.store.set_authorization(entry):
            logger.info(f"Authorized {entry.scheme_name}")
            self._persist()
            await self.callbacks.call_authorization_granted(entry.scheme_name, entry)
        return entry

    async def _fail(self, scheme_name: str | None, error: OAuth2Error) -> None:
        logger.warning(f"Authorization failed: {error}")
        await self.callbacks.call_authorization_failed(scheme_name, error)

    async def _require_type(self, scheme: SecurityScheme, expected: SchemeType) -> None:
        if scheme.type != expected:
            error = InvalidGrantConfiguration(
                f"Security scheme of type {scheme.type.value} is not {expected.value}",
                scheme.name,
            )
            await self._fail(scheme.name, error)
            raise error

    def _persist(self) -> None:
        if self.persistence is not None:
            self.persistence.persist(self.store, self.config.persist_authorization)


def _error_detail(response: DispatchResponse) -> str:
    try:
        payload = response.json()
    except ValueError:
        return ""
    if not isinstance(payload, dict) or "error" not in payload:
        return ""
    detail = f": {payload['error']}"
    if payload.get("error_description"):
        detail += f" - {payload['error_description']}"
    return detail
