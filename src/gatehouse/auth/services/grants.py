"""Request builders for the supported OAuth2 grant types.

Each grant produces an AuthorizationRequestDescriptor from a security scheme
and its grant parameters:
- implicit: GET to the authorization endpoint with response_type=token
- accessCode: GET to the authorization endpoint with response_type=code,
  followed by the authorization_code token exchange (RFC 6749 Section 4.1.3)
- application: POST client_credentials to the token endpoint
- password: POST resource owner credentials to the token endpoint

Builders are pure: they never perform network calls or touch shared state.
Token requests use application/x-www-form-urlencoded encoding as required by
RFC 6749.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from urllib.parse import parse_qsl, urlencode, urlsplit

from gatehouse.auth.models.errors import InvalidGrantConfiguration
from gatehouse.auth.models.grants import (
    AccessCodeGrant,
    ClientAuthentication,
    ClientCredentialsGrant,
    GrantParameters,
    ImplicitGrant,
    PasswordGrant,
)
from gatehouse.auth.models.requests import AuthorizationRequestDescriptor
from gatehouse.auth.models.schemes import GrantFlow, SchemeType, SecurityScheme
from gatehouse.auth.primitives.urls import build_url
from gatehouse.auth.services.security import basic_authorization_header
from gatehouse.config import AuthConfig

logger = logging.getLogger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def build_authorization_request(
    scheme: SecurityScheme,
    params: GrantParameters,
    *,
    base_url: str = "",
    config: AuthConfig | None = None,
) -> AuthorizationRequestDescriptor:
    """Build the first request of a grant.

    For implicit and access code grants this is the GET the user agent
    opens; for application and password grants it is the token request.

    Args:
        scheme: OAuth2 security scheme whose flow matches the parameters
        params: Grant-specific inputs
        base_url: Absolute URL relative endpoints are resolved against
        config: Engine configuration (scope separator, realm, extra query)

    Returns:
        A new request descriptor

    Raises:
        InvalidGrantConfiguration: If the scheme does not support this grant,
            or a required endpoint or parameter is missing
    """
    config = config or AuthConfig()
    _require_flow(scheme, params.kind)

    builder = _BUILDERS[params.kind]
    descriptor = builder(scheme, params, base_url, config)

    logger.debug(
        f"Built {params.kind.value} request for {scheme.name}: "
        f"{descriptor.method} {urlsplit(descriptor.url).path}"
    )
    return descriptor


def build_token_request(
    scheme: SecurityScheme,
    code: str,
    redirect_uri: str,
    code_verifier: str | None = None,
    *,
    client_id: str,
    client_secret: str | None = None,
    base_url: str = "",
    config: AuthConfig | None = None,
) -> AuthorizationRequestDescriptor:
    """Build the access code to access token exchange request.

    Implements RFC 6749 Section 4.1.3 - Access Token Request, including
    the PKCE code_verifier (RFC 7636) when the attempt used one.

    Raises:
        InvalidGrantConfiguration: If the scheme is not an access code scheme
            or a required field is missing
    """
    config = config or AuthConfig()
    _require_flow(scheme, GrantFlow.ACCESS_CODE)
    _require(scheme, code, "authorization code")
    _require(scheme, redirect_uri, "redirect_uri")
    _require(scheme, client_id, "client_id")

    form = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
    }
    if config.use_basic_authentication_with_access_code_grant:
        method = ClientAuthentication.BASIC
    else:
        method = ClientAuthentication.REQUEST_BODY
    headers = _authenticate_client(form, method, client_id, client_secret)

    if code_verifier:
        form["code_verifier"] = code_verifier

    logger.debug(
        f"Built authorization_code exchange for {scheme.name}: "
        f"client_id={client_id}, pkce={'yes' if code_verifier else 'no'}"
    )
    return _token_request(scheme, form, headers, base_url, config)


def _implicit(
    scheme: SecurityScheme,
    params: ImplicitGrant,
    base_url: str,
    config: AuthConfig,
) -> AuthorizationRequestDescriptor:
    return _redirect_request(scheme, params, "token", {}, base_url, config)


def _access_code(
    scheme: SecurityScheme,
    params: AccessCodeGrant,
    base_url: str,
    config: AuthConfig,
) -> AuthorizationRequestDescriptor:
    pkce = {}
    if params.code_challenge:
        pkce = {
            "code_challenge": params.code_challenge,
            "code_challenge_method": "S256",
        }
    return _redirect_request(scheme, params, "code", pkce, base_url, config)


def _client_credentials(
    scheme: SecurityScheme,
    params: ClientCredentialsGrant,
    base_url: str,
    config: AuthConfig,
) -> AuthorizationRequestDescriptor:
    _require(scheme, params.client_id, "client_id")
    _require(scheme, params.client_secret, "client_secret")

    form = {"grant_type": "client_credentials"}
    _add_scope(form, params.scopes, config)
    headers = _authenticate_client(
        form, params.client_authentication, params.client_id, params.client_secret
    )
    return _token_request(scheme, form, headers, base_url, config)


def _password(
    scheme: SecurityScheme,
    params: PasswordGrant,
    base_url: str,
    config: AuthConfig,
) -> AuthorizationRequestDescriptor:
    _require(scheme, params.client_id, "client_id")
    _require(scheme, params.username, "username")
    _require(scheme, params.password, "password")

    form = {
        "grant_type": "password",
        "username": params.username,
        "password": params.password,
    }
    _add_scope(form, params.scopes, config)
    headers = _authenticate_client(
        form, params.client_authentication, params.client_id, params.client_secret
    )
    return _token_request(scheme, form, headers, base_url, config)


_BUILDERS: dict[
    GrantFlow,
    Callable[..., AuthorizationRequestDescriptor],
] = {
    GrantFlow.IMPLICIT: _implicit,
    GrantFlow.ACCESS_CODE: _access_code,
    GrantFlow.APPLICATION: _client_credentials,
    GrantFlow.PASSWORD: _password,
}


def _redirect_request(
    scheme: SecurityScheme,
    params: ImplicitGrant | AccessCodeGrant,
    response_type: str,
    extra: Mapping[str, str],
    base_url: str,
    config: AuthConfig,
) -> AuthorizationRequestDescriptor:
    endpoint = _require(scheme, scheme.authorization_url, "authorizationUrl")
    _require(scheme, params.client_id, "client_id")
    _require(scheme, params.redirect_uri, "redirect_uri")
    _require(scheme, params.state, "state")

    query = {
        "response_type": response_type,
        "client_id": params.client_id,
        "redirect_uri": params.redirect_uri,
    }
    _add_scope(query, params.scopes, config)
    query["state"] = params.state
    if config.realm:
        query["realm"] = config.realm
    query.update(extra)

    for key, value in config.additional_query_string_params.items():
        query.setdefault(key, value)

    url = _resolve(scheme, base_url, endpoint, query)
    return AuthorizationRequestDescriptor(method="GET", url=url, query=_query_of(url))


def _token_request(
    scheme: SecurityScheme,
    form: dict[str, str],
    headers: dict[str, str],
    base_url: str,
    config: AuthConfig,
) -> AuthorizationRequestDescriptor:
    endpoint = _require(scheme, scheme.token_url, "tokenUrl")

    # Scheme-declared fields never replace the standard ones
    for key, value in scheme.additional_form_params.items():
        form.setdefault(key, value)

    url = _resolve(scheme, base_url, endpoint, config.additional_query_string_params)
    return AuthorizationRequestDescriptor(
        method="POST",
        url=url,
        body=urlencode(form),
        headers={**FORM_HEADERS, **headers},
        query=_query_of(url),
    )


def _authenticate_client(
    form: dict[str, str],
    method: ClientAuthentication,
    client_id: str,
    client_secret: str | None,
) -> dict[str, str]:
    """Attach client credentials to a token request.

    Returns:
        Extra headers for the request (empty for request-body authentication)
    """
    if method == ClientAuthentication.BASIC:
        return {"Authorization": basic_authorization_header(client_id, client_secret)}

    form["client_id"] = client_id
    if client_secret:
        form["client_secret"] = client_secret
    return {}


def _add_scope(
    target: dict[str, str], scopes: Iterable[str], config: AuthConfig
) -> None:
    scope = config.scope_separator.join(scopes)
    if scope:
        target["scope"] = scope


def _resolve(
    scheme: SecurityScheme,
    base_url: str,
    endpoint: str,
    query: Mapping[str, str],
) -> str:
    try:
        return build_url(base_url, endpoint, query)
    except ValueError as e:
        raise InvalidGrantConfiguration(
            f"Cannot build an absolute URL for {endpoint}: {e}", scheme.name
        ) from e


def _query_of(url: str) -> tuple[tuple[str, str], ...]:
    return tuple(parse_qsl(urlsplit(url).query, keep_blank_values=True))


def _require_flow(scheme: SecurityScheme, flow: GrantFlow) -> None:
    if scheme.type != SchemeType.OAUTH2:
        raise InvalidGrantConfiguration(
            f"Security scheme of type {scheme.type.value} has no OAuth2 grants",
            scheme.name,
        )
    if scheme.flow != flow:
        declared = scheme.flow.value if scheme.flow else "none"
        raise InvalidGrantConfiguration(
            f"Security scheme declares flow {declared}, not {flow.value}",
            scheme.name,
        )


def _require(scheme: SecurityScheme, value: str | None, field: str) -> str:
    if not value:
        raise InvalidGrantConfiguration(f"Missing required {field}", scheme.name)
    return value
