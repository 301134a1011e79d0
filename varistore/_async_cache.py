from __future__ import annotations

import logging
from typing import Any, Generic, Iterable, Optional

from varistore._core._async._invalidation import AsyncInvalidationCoordinator
from varistore._core._async._selector import AsyncCandidateSelector
from varistore._core._async._storages._memory import AsyncInMemoryStore
from varistore._core._base._storages._base import AsyncBaseStore
from varistore._core._headers import ByteRange
from varistore._core._selection import SortKey, newest_first
from varistore._core.models import (
    AlternateKey,
    InvalidationResult,
    RefT,
    RequestKey,
    Resolution,
    Response,
    ResponseMetadata,
    UrlDigest,
    VaryHeaders,
)
from varistore._utils import BaseClock

logger = logging.getLogger("varistore.cache")

__all__ = ("AsyncHttpCache",)


class AsyncHttpCache(Generic[RefT]):
    """
    A store, a candidate selector and an invalidation coordinator behind one object.

    This class knows nothing about HTTP clients. Callers compute the request key,
    URL digest and vary headers (see ``HashKeyGen`` and ``vary_headers_for``) and
    the response metadata (see ``build_metadata``).

    Args:
        store: Backend for the cached responses. Defaults to AsyncInMemoryStore().
        clock: Source of the current time, defaults to the system clock.
        sort_key: Ranking of usable candidates. Defaults to ``newest_first``.
    """

    def __init__(
        self,
        store: Optional[AsyncBaseStore[RefT]] = None,
        clock: Optional[BaseClock] = None,
        sort_key: Optional[SortKey] = None,
    ) -> None:
        self.store: AsyncBaseStore[Any] = store if store is not None else AsyncInMemoryStore()
        self.selector: AsyncCandidateSelector[Any] = AsyncCandidateSelector(
            self.store, clock=clock, sort_key=sort_key if sort_key is not None else newest_first
        )
        self.invalidation = AsyncInvalidationCoordinator(self.store)

    @property
    def supports_alternate_keys(self) -> bool:
        return self.invalidation.supports_alternate_keys

    async def get(
        self,
        request_key: RequestKey,
        request_vary: VaryHeaders,
        requested_range: Optional[ByteRange] = None,
        opts: Any = None,
    ) -> Optional[Resolution[RefT]]:
        return await self.selector.resolve(request_key, request_vary, requested_range, opts)

    async def put(
        self,
        request_key: RequestKey,
        url_digest: UrlDigest,
        vary_headers: VaryHeaders,
        response: Response,
        metadata: ResponseMetadata,
        opts: Any = None,
    ) -> None:
        """
        Validate the metadata and store the response as a new candidate.

        Raises:
            InvariantViolation: If ``created <= expires <= grace`` does not hold, or if
                ``content-range`` is not a ``ContentRange``. Nothing is stored in that case.
            BackendFailure: If the backend could not store the response.
        """
        metadata.validate()
        await self.store.put(request_key, url_digest, vary_headers, response, metadata, opts)
        logger.debug(f"Stored a {response.status} response under request key {request_key}")

    async def notify_used(self, ref: RefT, opts: Any = None) -> None:
        await self.store.notify_used(ref, opts)

    async def invalidate_url(self, url_digest: UrlDigest, opts: Any = None) -> InvalidationResult:
        return await self.invalidation.invalidate_url(url_digest, opts)

    async def invalidate_by_alternate_keys(
        self, keys: Iterable[AlternateKey], opts: Any = None
    ) -> InvalidationResult:
        return await self.invalidation.invalidate_by_alternate_keys(keys, opts)
