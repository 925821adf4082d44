"""URL building for authorization and token endpoints.

Resolves endpoint URLs declared by security schemes against the API's base
URL and merges configured query parameters without overriding the ones the
API description already declares.
"""

from __future__ import annotations

from collections.abc import Mapping
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit


def is_absolute_url(url: str | None) -> bool:
    """Check if a URL has both a scheme and an authority."""
    if not url:
        return False
    try:
        parsed = urlsplit(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def origin_of(url: str | None) -> str:
    """Return ``scheme://authority`` of a URL, or an empty string.

    URLs without an authority (``data:`` URIs, relative paths) have no
    usable origin.
    """
    if not is_absolute_url(url):
        return ""
    parsed = urlsplit(url)
    return f"{parsed.scheme}://{parsed.netloc}"


def build_url(
    base_url: str,
    url: str,
    extra_query: Mapping[str, str] | None = None,
) -> str:
    """Build an absolute endpoint URL with supplementary query parameters.

    Args:
        base_url: Absolute URL that relative endpoints are resolved against.
            Ignored when ``url`` is already absolute.
        url: Relative or absolute endpoint URL
        extra_query: Parameters appended to the query string. A key that is
            already present in ``url`` keeps its existing value.

    Returns:
        Absolute URL string

    Raises:
        ValueError: If no absolute URL can be produced
    """
    target = url if is_absolute_url(url) else urljoin(base_url or "", url)
    parts = urlsplit(target)
    if not (parts.scheme and parts.netloc):
        raise ValueError(f"Cannot resolve {url!r} against base URL {base_url!r}")

    query = parts.query
    if extra_query:
        existing_keys = {key for key, _ in parse_qsl(query, keep_blank_values=True)}
        additions = [
            (key, value)
            for key, value in extra_query.items()
            if key not in existing_keys
        ]
        if additions:
            encoded = urlencode(additions)
            query = f"{query}&{encoded}" if query else encoded

    return urlunsplit(parts._replace(query=query))
