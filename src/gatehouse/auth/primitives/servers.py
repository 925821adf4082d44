"""Server resolution for API descriptions.

Produces the absolute base URL that relative authorization and token URLs
are resolved against, for both legacy single-host descriptions and
multi-server templated descriptions.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from urllib.parse import urljoin

from gatehouse.auth.models.description import ApiDescriptionContext
from gatehouse.auth.primitives.urls import is_absolute_url, origin_of

logger = logging.getLogger(__name__)

_SERVER_VARIABLE = re.compile(r"\{([^{}]+)\}")


def substitute_server_variables(
    template: str, variables: Mapping[str, str]
) -> str | None:
    """Substitute ``{variable}`` placeholders in a server template.

    Returns:
        The effective server value, or None if any placeholder is unbound
    """
    unbound: list[str] = []

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name in variables:
            return str(variables[name])
        unbound.append(name)
        return match.group(0)

    value = _SERVER_VARIABLE.sub(replace, template)
    if unbound:
        logger.debug(f"Server template {template} has unbound variables {unbound}")
        return None
    return value


def effective_server_url(context: ApiDescriptionContext) -> str | None:
    """Get the fully substituted URL of the selected server, if any."""
    if context.resolved_server_url:
        return context.resolved_server_url
    if not context.selected_server_url:
        return None
    return substitute_server_variables(
        context.selected_server_url, context.server_variables
    )


def resolve_base_url(context: ApiDescriptionContext) -> str:
    """Resolve the base URL for relative OAuth endpoints.

    Multi-server descriptions use the selected server's effective value
    (relative servers are resolved against the description's own URL).
    Legacy descriptions use ``scheme://host``; a missing host means "same
    origin as the description". Anything unresolvable falls back to the
    origin of ``spec_url``.

    Never raises. Returns an empty string when not even the description's
    origin is usable (for example a ``data:`` URL).
    """
    fallback = origin_of(context.spec_url)

    try:
        if context.is_multi_server:
            server = effective_server_url(context)
            if not server:
                return fallback
            if not is_absolute_url(server):
                server = urljoin(context.spec_url or "", server)
            return server if is_absolute_url(server) else fallback

        host = (context.host or "").strip()
        if not host:
            return fallback

        if "://" in host:
            # Host carrying its own scheme; keep what it says
            return origin_of(host) or fallback

        scheme = (context.scheme or "https").strip().rstrip(":/").lower()
        return f"{scheme}://{host.rstrip('/')}"

    except ValueError as e:
        logger.warning(f"Falling back to description origin {fallback!r}: {e}")
        return fallback
