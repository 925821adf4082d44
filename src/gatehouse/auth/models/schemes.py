"""Security scheme models loaded from API descriptions.

Contains the immutable view of a declared security scheme and the loader
that reads both legacy (``flow``) and multi-server (``flows``) definitions.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class SchemeType(str, Enum):
    API_KEY = "apiKey"
    HTTP = "http"
    OAUTH2 = "oauth2"


class GrantFlow(str, Enum):
    IMPLICIT = "implicit"
    ACCESS_CODE = "accessCode"
    APPLICATION = "application"
    PASSWORD = "password"


# Flow names used by multi-server descriptions
_FLOW_ALIASES = {
    "implicit": GrantFlow.IMPLICIT,
    "accessCode": GrantFlow.ACCESS_CODE,
    "authorizationCode": GrantFlow.ACCESS_CODE,
    "application": GrantFlow.APPLICATION,
    "clientCredentials": GrantFlow.APPLICATION,
    "password": GrantFlow.PASSWORD,
}

# Flows that redirect the user agent to the authorization endpoint
REDIRECT_FLOWS = frozenset({GrantFlow.IMPLICIT, GrantFlow.ACCESS_CODE})


class SecurityScheme(BaseModel):
    """A named authentication mechanism declared by an API description.

    Immutable once loaded; the engine reads it but never changes it.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    type: SchemeType
    flow: GrantFlow | None = None
    authorization_url: str | None = None
    token_url: str | None = None
    scopes: frozenset[str] = Field(default_factory=frozenset)

    # Extra token request form fields declared on the scheme
    additional_form_params: dict[str, str] = Field(default_factory=dict)
    # Token response field carrying the access token (x-tokenName)
    token_name: str = "access_token"

    # apiKey schemes
    parameter_name: str | None = None
    location: str | None = None

    # http schemes
    http_scheme: str | None = None

    @property
    def is_oauth2(self) -> bool:
        return self.type == SchemeType.OAUTH2

    @property
    def uses_redirect(self) -> bool:
        """Check if the scheme's flow goes through the user agent."""
        return self.flow in REDIRECT_FLOWS


def schemes_from_definition(
    name: str, definition: Mapping[str, Any]
) -> list[SecurityScheme]:
    """Build security schemes from a raw security definition.

    Legacy definitions declare a single ``flow``; multi-server definitions
    declare a ``flows`` mapping and yield one scheme per flow, all sharing
    the definition's name. Unsupported or malformed definitions are skipped
    with a warning rather than failing the whole description.

    Args:
        name: Name of the security definition
        definition: Raw definition mapping from the API description

    Returns:
        Zero or more security schemes
    """
    raw_type = definition.get("type")

    if raw_type == "basic":
        return [SecurityScheme(name=name, type=SchemeType.HTTP, http_scheme="basic")]

    if raw_type == SchemeType.API_KEY.value:
        return [
            SecurityScheme(
                name=name,
                type=SchemeType.API_KEY,
                parameter_name=definition.get("name"),
                location=definition.get("in"),
            )
        ]

    if raw_type == SchemeType.HTTP.value:
        http_scheme = str(definition.get("scheme") or "basic").lower()
        return [
            SecurityScheme(name=name, type=SchemeType.HTTP, http_scheme=http_scheme)
        ]

    if raw_type != SchemeType.OAUTH2.value:
        logger.warning(f"Skipping security scheme {name} with type {raw_type!r}")
        return []

    extras = _oauth2_extras(definition)

    if "flows" in definition:
        flows = definition.get("flows") or {}
        if not isinstance(flows, Mapping):
            logger.warning(f"Skipping security scheme {name}: flows is not a mapping")
            return []
        schemes = []
        for flow_name, flow_definition in flows.items():
            scheme = _oauth2_scheme(name, flow_name, flow_definition or {}, extras)
            if scheme is not None:
                schemes.append(scheme)
        return schemes

    scheme = _oauth2_scheme(name, definition.get("flow"), definition, extras)
    return [scheme] if scheme is not None else []


def _oauth2_scheme(
    name: str,
    flow_name: Any,
    flow_definition: Mapping[str, Any],
    extras: dict[str, Any],
) -> SecurityScheme | None:
    flow = _FLOW_ALIASES.get(flow_name) if isinstance(flow_name, str) else None
    if flow is None:
        logger.warning(f"Skipping security scheme {name} with flow {flow_name!r}")
        return None

    return SecurityScheme(
        name=name,
        type=SchemeType.OAUTH2,
        flow=flow,
        authorization_url=flow_definition.get("authorizationUrl"),
        token_url=flow_definition.get("tokenUrl"),
        scopes=frozenset(_scope_names(flow_definition.get("scopes"))),
        **extras,
    )


def _oauth2_extras(definition: Mapping[str, Any]) -> dict[str, Any]:
    extras: dict[str, Any] = {}

    form_params = definition.get("x-additionalFormParams")
    if isinstance(form_params, Mapping):
        extras["additional_form_params"] = {
            str(key): str(value) for key, value in form_params.items()
        }

    token_name = definition.get("x-tokenName")
    if isinstance(token_name, str) and token_name:
        extras["token_name"] = token_name

    return extras


def _scope_names(scopes: Any) -> list[str]:
    # Scopes are declared as name -> description, but tolerate plain lists
    if isinstance(scopes, Mapping):
        return [str(scope) for scope in scopes]
    if isinstance(scopes, (list, tuple, set, frozenset)):
        return [str(scope) for scope in scopes]
    return []
