# =============================================================================
# URL Helpers — Source URL Validation, Normalisation, Deduplication
# =============================================================================
#
# A source URL is an absolute http(s) URL. Two URLs are the same source when
# their normalised strings match: whitespace stripped, scheme and host
# lowercased, fragment dropped. Path and query are kept as-is.
# =============================================================================

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit, urlunsplit

from research_agent.errors import ValidationError

MAX_URLS_PER_REQUEST = 20


def is_source_url(url: str) -> bool:
    """True when `url` is an absolute http or https URL with a host."""
    if not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme.lower() in ("http", "https") and bool(parts.netloc)


def normalize_url(url: str) -> str:
    """
    Return the canonical form of a source URL.

    Raises:
        ValueError: If the URL is not an absolute http(s) URL.
    """
    if not is_source_url(url):
        raise ValueError(f"Not an absolute http(s) URL: {url!r}")
    parts = urlsplit(url.strip())
    return urlunsplit((
        parts.scheme.lower(),
        parts.netloc.lower(),
        parts.path,
        parts.query,
        "",
    ))


def dedupe_urls(urls: Iterable[str]) -> list[str]:
    """
    Keep valid source URLs, normalised, in first-seen order.

    Invalid entries are dropped silently.
    """
    seen: set[str] = set()
    result: list[str] = []
    for url in urls:
        if not is_source_url(url):
            continue
        normalized = normalize_url(url)
        if normalized not in seen:
            seen.add(normalized)
            result.append(normalized)
    return result


def coerce_url_list(
    raw: str | list[str] | None,
    max_urls: int = MAX_URLS_PER_REQUEST,
) -> list[str]:
    """
    Turn caller input (one URL or a list of URLs) into a list of URLs.

    The URLs themselves are passed through untouched (only stripped), so the
    model still sees exactly what the caller asked for.

    Raises:
        ValidationError: If no URL is given or more than `max_urls` are.
    """
    if isinstance(raw, str):
        urls = [raw]
    elif isinstance(raw, list):
        urls = list(raw)
    else:
        urls = []

    urls = [u.strip() for u in urls if isinstance(u, str) and u.strip()]
    if not urls:
        raise ValidationError(
            "'urls' must be provided as a string or a non-empty array"
        )
    if len(urls) > max_urls:
        raise ValidationError(f"Maximum of {max_urls} URLs supported")
    return urls
