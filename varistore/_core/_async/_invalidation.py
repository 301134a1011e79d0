from __future__ import annotations

import logging
from typing import Any, Iterable

from varistore._core._base._storages._base import AsyncAlternateKeyStore, AsyncBaseStore
from varistore._core.models import AlternateKey, InvalidationResult, UrlDigest
from varistore._exceptions import UnsupportedCapability

logger = logging.getLogger("varistore.invalidation")

__all__ = ("AsyncInvalidationCoordinator",)


class AsyncInvalidationCoordinator:
    def __init__(self, store: AsyncBaseStore[Any]) -> None:
        self.store = store

    @property
    def supports_alternate_keys(self) -> bool:
        return isinstance(self.store, AsyncAlternateKeyStore)

    async def invalidate_url(self, url_digest: UrlDigest, opts: Any = None) -> InvalidationResult:
        """
        Invalidate every response stored for the URL.

        Once this returns, ``list_candidates`` no longer yields those responses and
        ``get_response`` returns None for their refs.
        """
        result = await self.store.invalidate_url(url_digest, opts)
        logger.debug(f"Invalidated {_describe(result)} responses for URL digest {url_digest}")
        return result

    async def invalidate_by_alternate_keys(
        self, keys: Iterable[AlternateKey], opts: Any = None
    ) -> InvalidationResult:
        """
        Invalidate every response tagged with at least one of ``keys``.

        Raises:
            UnsupportedCapability: If the backend cannot invalidate by alternate key.
                Nothing is invoked on the backend in that case.
        """
        if not isinstance(self.store, AsyncAlternateKeyStore):
            raise UnsupportedCapability("invalidate_by_alternate_key", self.store)

        keys = list(keys)
        result = await self.store.invalidate_by_alternate_key(keys, opts)
        logger.debug(f"Invalidated {_describe(result)} responses for {len(keys)} alternate keys")
        return result


def _describe(result: InvalidationResult) -> str:
    return "an unknown number of" if result.count is None else str(result.count)
