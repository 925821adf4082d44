"""API description context used to resolve relative OAuth endpoints."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class ApiDescriptionContext:
    """Where the loaded API description says its API lives.

    Legacy descriptions carry a single ``host`` and ``scheme``; multi-server
    descriptions carry a list of server templates of which one is selected.
    ``is_multi_server`` decides which of the two is authoritative.
    """

    spec_url: str
    is_multi_server: bool = False

    # Legacy single-host descriptions
    scheme: str = "https"
    host: str | None = None

    # Multi-server descriptions
    selected_server_url: str | None = None
    resolved_server_url: str | None = None  # Effective value, if known
    server_variables: dict[str, str] = field(default_factory=dict)

    @classmethod
    def legacy(
        cls, spec_url: str, host: str | None = None, scheme: str = "https"
    ) -> ApiDescriptionContext:
        return cls(spec_url=spec_url, is_multi_server=False, scheme=scheme, host=host)

    @classmethod
    def multi_server(
        cls,
        spec_url: str,
        selected_server_url: str | None = None,
        server_variables: dict[str, str] | None = None,
        resolved_server_url: str | None = None,
    ) -> ApiDescriptionContext:
        return cls(
            spec_url=spec_url,
            is_multi_server=True,
            selected_server_url=selected_server_url,
            resolved_server_url=resolved_server_url,
            server_variables=dict(server_variables or {}),
        )
