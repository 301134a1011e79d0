from __future__ import annotations

import logging
from typing import Any, Generic, Optional

from varistore._core._base._storages._base import AsyncBaseStore
from varistore._core._headers import ByteRange
from varistore._core._selection import SortKey, newest_first, rank_candidates
from varistore._core.models import RefT, RequestKey, Resolution, VaryHeaders
from varistore._utils import BaseClock, Clock

logger = logging.getLogger("varistore.selector")

__all__ = ("AsyncCandidateSelector",)


class AsyncCandidateSelector(Generic[RefT]):
    """
    Picks the one stored response that answers a request.

    The selector keeps no state of its own and takes no locks. Any number of
    concurrent ``resolve`` calls may share an instance.

    Args:
        store: Backend the candidates come from.
        clock: Source of the current time, defaults to the system clock.
        sort_key: Ranking of the usable candidates, best first. Defaults to
            ``newest_first``.
    """

    def __init__(
        self,
        store: AsyncBaseStore[RefT],
        clock: Optional[BaseClock] = None,
        sort_key: SortKey = newest_first,
    ) -> None:
        self.store = store
        self.clock = clock if clock is not None else Clock()
        self.sort_key = sort_key

    async def resolve(
        self,
        request_key: RequestKey,
        request_vary: VaryHeaders,
        requested_range: Optional[ByteRange] = None,
        opts: Any = None,
    ) -> Optional[Resolution[RefT]]:
        """
        Return the best usable response for the request, or None on a miss.

        Raises:
            BackendFailure: If the backend fails. A failure is never reported as a miss.
        """
        candidates = await self.store.list_candidates(request_key, opts)
        if not candidates:
            logger.debug(f"No candidates stored for request key {request_key}")
            return None

        ranked = rank_candidates(candidates, request_vary, requested_range, self.clock.now(), self.sort_key)

        for candidate, freshness in ranked:
            response = await self.store.get_response(candidate.ref, opts)
            if response is None:
                # evicted or invalidated after listing
                logger.debug(f"Candidate {candidate.ref!r} disappeared, trying the next one")
                continue
            return Resolution(ref=candidate.ref, response=response, freshness=freshness, candidate=candidate)

        logger.debug(f"None of {len(candidates)} candidates is usable for request key {request_key}")
        return None
