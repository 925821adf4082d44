"""Configuration for the authorization engine.

Options are accepted under their snake_case names or under the camelCase
names used by documentation-client configuration files.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_PREFIX = "GATEHOUSE_"


class AuthOptions(BaseModel):
    """Authorization options recognized by the engine."""

    # Persist granted credentials between runs
    persist_authorization: bool = False
    # Added to authorization and token URLs unless already present
    additional_query_string_params: dict[str, str] = Field(default_factory=dict)

    use_pkce_with_authorization_code_grant: bool = False
    use_basic_authentication_with_access_code_grant: bool = False

    scope_separator: str = " "
    realm: str | None = None

    # Defaults for attempts that do not name a client
    client_id: str | None = None
    client_secret: str | None = None
    scopes: list[str] = Field(default_factory=list)

    # Where JSON-file persistence keeps its data, if used
    storage_path: str | None = None

    # View-layer option; accepted and ignored here
    validator_url: str | None = None


class AuthSettings(BaseSettings, AuthOptions):
    """Options read from ``GATEHOUSE_*`` environment variables and ``.env``."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class AuthConfig(AuthOptions):
    """Engine options, frozen, with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )

    @classmethod
    def from_env(
        cls, prefix: str = ENV_PREFIX, dotenv_path: str | None = ".env"
    ) -> AuthConfig:
        """Load options from ``GATEHOUSE_*`` environment variables.

        Variables in the ``.env`` file at ``dotenv_path`` are read too, with
        the process environment taking precedence. Mapping and list options
        are given as JSON, e.g.
        ``GATEHOUSE_ADDITIONAL_QUERY_STRING_PARAMS='{"audience": "api"}'``.

        Raises:
            pydantic_settings.SettingsError: If a JSON option cannot be decoded
            pydantic.ValidationError: If an option has an invalid value
        """
        settings = AuthSettings(_env_prefix=prefix, _env_file=dotenv_path)
        return cls.model_validate(settings.model_dump())
