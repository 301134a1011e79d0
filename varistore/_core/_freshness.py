from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from varistore._core._headers import CacheControl, Headers, parse_cache_control, parse_content_range, parse_vary
from varistore._core.models import AlternateKey, Freshness, ResponseMetadata, TTLSource
from varistore._utils import parse_date

__all__ = (
    "FreshnessOptions",
    "evaluate_freshness",
    "get_freshness_lifetime",
    "get_heuristic_freshness",
    "build_metadata",
)

ONE_WEEK = 604_800


@dataclass(frozen=True)
class FreshnessOptions:
    """
    Configuration used when deriving metadata from response headers.

    Attributes:
    ----------
    shared : bool
        Whether the cache is shared (proxy, CDN). Shared caches honour ``s-maxage``
        over ``max-age``.

        Default: True

    default_grace : int
        Seconds a response may be served stale when it carries neither
        ``stale-while-revalidate`` nor ``stale-if-error``.

        Default: 0

    heuristic_ttl : int
        Freshness lifetime assigned when there are no explicit expiration headers
        and no ``Last-Modified`` to base a heuristic on.

        Default: 0 (stored, but immediately stale)
    """

    shared: bool = True
    default_grace: int = 0
    heuristic_ttl: int = 0


def evaluate_freshness(metadata: ResponseMetadata, now: int) -> Freshness:
    """
    Classify a stored response against the current time.

    >>> metadata = ResponseMetadata(created=0, expires=100, grace=160)
    >>> evaluate_freshness(metadata, 99), evaluate_freshness(metadata, 130), evaluate_freshness(metadata, 160)
    (<Freshness.FRESH: 'fresh'>, <Freshness.STALE: 'stale'>, <Freshness.EXPIRED: 'expired'>)

    ``ttl_set_by`` plays no role here.
    """
    if now < metadata.expires:
        return Freshness.FRESH
    if now < metadata.grace:
        return Freshness.STALE
    return Freshness.EXPIRED


def get_freshness_lifetime(headers: Headers, cache_control: CacheControl, shared: bool) -> Optional[int]:
    """
    Explicit freshness lifetime in seconds, or None when the response has none.

    RFC 9111 Section 4.2.1: s-maxage (shared caches only), then max-age, then
    Expires minus Date.
    """
    if shared and cache_control.s_maxage is not None:
        return cache_control.s_maxage

    if cache_control.max_age is not None:
        return cache_control.max_age

    expires = headers.get("expires")
    if expires is not None:
        expires_timestamp = parse_date(expires)
        if expires_timestamp is None:
            # RFC 9111 Section 5.3: an invalid Expires means "already expired"
            return 0
        date = headers.get("date")
        date_timestamp = parse_date(date) if date is not None else None
        if date_timestamp is None:
            return None
        return max(0, expires_timestamp - date_timestamp)
    return None


def get_heuristic_freshness(headers: Headers, now: int) -> Optional[int]:
    """
    10% of the time since Last-Modified, capped at one week (RFC 9111 Section 4.2.2).
    """
    last_modified = headers.get("last-modified")
    if not last_modified:
        return None

    last_modified_timestamp = parse_date(last_modified)
    if last_modified_timestamp is None:
        return None

    date = headers.get("date")
    date_timestamp = parse_date(date) if date is not None else None
    reference = date_timestamp if date_timestamp is not None else now

    return min(ONE_WEEK, max(0, int((reference - last_modified_timestamp) * 0.1)))


def _grace_period(cache_control: CacheControl, options: FreshnessOptions) -> int:
    if cache_control.must_revalidate or cache_control.no_cache:
        return 0
    if options.shared and cache_control.proxy_revalidate:
        return 0

    windows = [
        window
        for window in (cache_control.stale_while_revalidate, cache_control.stale_if_error)
        if window is not None
    ]
    return max(windows) if windows else options.default_grace


def build_metadata(
    status: int,
    headers: Headers,
    now: int,
    options: Optional[FreshnessOptions] = None,
    *,
    alternate_keys: Iterable[AlternateKey] = (),
) -> ResponseMetadata:
    """
    Derive storage metadata for a response received at ``now``.

    ``no-cache`` responses are stored already stale: they may only be used after
    revalidation, which is the caller's concern.
    """
    options = options or FreshnessOptions()
    cache_control = parse_cache_control(headers.get("cache-control"))

    lifetime = get_freshness_lifetime(headers, cache_control, options.shared)
    ttl_set_by = TTLSource.HEADER
    if lifetime is None:
        ttl_set_by = TTLSource.HEURISTICS
        heuristic = get_heuristic_freshness(headers, now)
        lifetime = heuristic if heuristic is not None else options.heuristic_ttl

    if cache_control.no_cache:
        lifetime = 0

    parsed_headers: Dict[str, Any] = {}
    if status == 206:
        content_range = parse_content_range(headers.get("content-range"))
        if content_range is not None:
            parsed_headers["content-range"] = content_range
    vary = parse_vary(headers.get("vary"))
    if vary:
        parsed_headers["vary"] = vary

    expires = now + lifetime
    return ResponseMetadata(
        created=now,
        expires=expires,
        grace=expires + _grace_period(cache_control, options),
        ttl_set_by=ttl_set_by,
        parsed_headers=parsed_headers,
        alternate_keys=frozenset(alternate_keys),
    )
