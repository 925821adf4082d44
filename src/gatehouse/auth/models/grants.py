"""Grant parameter variants, one per supported OAuth2 grant type.

Each variant carries the inputs its grant needs and a class-level ``kind``
used to dispatch to the matching request builder.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from gatehouse.auth.models.schemes import GrantFlow


class ClientAuthentication(str, Enum):
    """How client credentials reach the token endpoint."""

    BASIC = "basic"  # Authorization: Basic header
    REQUEST_BODY = "request-body"  # client_id / client_secret form fields


@dataclass(frozen=True)
class ImplicitGrant:
    kind: ClassVar[GrantFlow] = GrantFlow.IMPLICIT

    client_id: str
    redirect_uri: str
    state: str
    scopes: tuple[str, ...] = ()


@dataclass(frozen=True)
class AccessCodeGrant:
    kind: ClassVar[GrantFlow] = GrantFlow.ACCESS_CODE

    client_id: str
    redirect_uri: str
    state: str
    scopes: tuple[str, ...] = ()
    code_challenge: str | None = None  # RFC 7636, S256 only


@dataclass(frozen=True)
class ClientCredentialsGrant:
    kind: ClassVar[GrantFlow] = GrantFlow.APPLICATION

    client_id: str
    client_secret: str
    scopes: tuple[str, ...] = ()
    client_authentication: ClientAuthentication = ClientAuthentication.BASIC


@dataclass(frozen=True)
class PasswordGrant:
    kind: ClassVar[GrantFlow] = GrantFlow.PASSWORD

    client_id: str
    username: str
    password: str
    client_secret: str | None = None
    scopes: tuple[str, ...] = ()
    client_authentication: ClientAuthentication = ClientAuthentication.BASIC


GrantParameters = Union[
    ImplicitGrant, AccessCodeGrant, ClientCredentialsGrant, PasswordGrant
]
