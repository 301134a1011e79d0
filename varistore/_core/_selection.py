from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, Sequence, Tuple

from varistore._core._headers import ByteRange
from varistore._core.models import Candidate, Freshness, RefT, VaryHeaders
from varistore._core._freshness import evaluate_freshness
from varistore._utils import partition

logger = logging.getLogger("varistore.selector")

__all__ = ("SortKey", "vary_matches", "range_eligible", "newest_first", "rank_candidates")

SortKey = Callable[[Candidate[Any]], Any]


def vary_matches(candidate_vary: VaryHeaders, request_vary: VaryHeaders) -> bool:
    """
    Check the request against the headers a stored response declared it varies on.

    Only the names the candidate recorded take part. A recorded None (header absent
    at storage time) matches only a request where the header is absent too.

    RFC 9111 Section 4.1: "A stored response with a Vary header field value
    containing a member '*' always fails to match."
    """
    for name, stored_value in candidate_vary.items():
        if name == "*":
            return False
        if request_vary.get(name) != stored_value:
            return False
    return True


def range_eligible(
    candidates: Sequence[Candidate[RefT]],
    requested_range: Optional[ByteRange],
) -> List[Candidate[RefT]]:
    """
    Keep the candidates able to answer the requested range.

    A full response satisfies any range. A partial one must cover the requested
    bytes. Without a range only full responses qualify, unless there are none.
    """
    if requested_range is None:
        partial, full = partition(candidates, lambda candidate: candidate.is_partial)
        return full if full else partial

    eligible: List[Candidate[RefT]] = []
    for candidate in candidates:
        content_range = candidate.metadata.content_range
        if content_range is None or content_range.covers(requested_range):
            eligible.append(candidate)
    return eligible


def newest_first(candidate: Candidate[Any]) -> Tuple[int, int]:
    """
    Default ranking: most recent `created` first, then longest `expires`.

    Remaining ties keep the backend's listing order.
    """
    return (-candidate.metadata.created, -candidate.metadata.expires)


def rank_candidates(
    candidates: Sequence[Candidate[RefT]],
    request_vary: VaryHeaders,
    requested_range: Optional[ByteRange],
    now: int,
    sort_key: SortKey = newest_first,
) -> List[Tuple[Candidate[RefT], Freshness]]:
    """
    Filter and order candidates, best first.

    Pure computation over already fetched metadata; bodies are fetched by the
    selector afterwards.
    """
    vary_matching = [candidate for candidate in candidates if vary_matches(candidate.vary_headers, request_vary)]
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"{len(vary_matching)} of {len(candidates)} candidates match the request's vary headers")

    eligible = range_eligible(vary_matching, requested_range)

    usable: List[Tuple[Candidate[RefT], Freshness]] = []
    for candidate in eligible:
        freshness = evaluate_freshness(candidate.metadata, now)
        if freshness is Freshness.EXPIRED:
            logger.debug(f"Discarding expired candidate {candidate.ref!r}")
            continue
        usable.append((candidate, freshness))

    # sorted() is stable, which keeps ties deterministic
    return sorted(usable, key=lambda pair: sort_key(pair[0]))
