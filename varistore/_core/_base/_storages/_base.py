from __future__ import annotations

import abc
import typing as tp
from abc import ABC

from varistore._core.models import (
    AlternateKey,
    Candidate,
    InvalidationResult,
    RefT,
    RequestKey,
    Response,
    ResponseMetadata,
    StoredResponse,
    UrlDigest,
    VaryHeaders,
)

__all__ = (
    "SyncBaseStore",
    "AsyncBaseStore",
    "SyncAlternateKeyStore",
    "AsyncAlternateKeyStore",
    "supports_alternate_keys",
)


class SyncBaseStore(ABC, tp.Generic[RefT]):
    """
    Persistence primitives for cached HTTP responses.

    ``RefT`` is the backend's own response handle type. Callers never build or
    inspect refs; they only pass back what ``list_candidates`` returned. ``opts``
    is passed through from the caller untouched.
    """

    @abc.abstractmethod
    def list_candidates(self, request_key: RequestKey, opts: tp.Any = None) -> tp.List[Candidate[RefT]]:
        """
        Return every response stored under the key, including stale and expired ones.

        Args:
            request_key: Key derived from the request's method, URL, body and bucket.
            opts: Backend options.

        Returns:
            The candidates, or an empty list if the key is unknown.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def get_response(self, ref: RefT, opts: tp.Any = None) -> tp.Optional[StoredResponse]:
        """
        Fetch a full response by a reference obtained from ``list_candidates``.

        Returns:
            The stored response, or None if it has been evicted or invalidated since.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def put(
        self,
        request_key: RequestKey,
        url_digest: UrlDigest,
        vary_headers: VaryHeaders,
        response: Response,
        metadata: ResponseMetadata,
        opts: tp.Any = None,
    ) -> None:
        """
        Store a response as an additional candidate under ``request_key``.

        The response must also become reachable through ``url_digest`` and each of
        ``metadata.alternate_keys`` for invalidation.

        Raises:
            BackendFailure: If the response could not be stored.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def notify_used(self, ref: RefT, opts: tp.Any = None) -> None:
        """
        Hint that a response was served. Unknown references are ignored.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    def invalidate_url(self, url_digest: UrlDigest, opts: tp.Any = None) -> InvalidationResult:
        """
        Make every response stored for the URL unselectable.

        Raises:
            BackendFailure: If the invalidation could not be applied.
        """
        raise NotImplementedError()


class SyncAlternateKeyStore(SyncBaseStore[RefT]):
    """A store that can also invalidate by alternate key."""

    @abc.abstractmethod
    def invalidate_by_alternate_key(
        self, keys: tp.Iterable[AlternateKey], opts: tp.Any = None
    ) -> InvalidationResult:
        """
        Make every response tagged with at least one of ``keys`` unselectable.

        Raises:
            BackendFailure: If the invalidation could not be applied.
        """
        raise NotImplementedError()


class AsyncBaseStore(ABC, tp.Generic[RefT]):
    """
    Persistence primitives for cached HTTP responses.

    ``RefT`` is the backend's own response handle type. Callers never build or
    inspect refs; they only pass back what ``list_candidates`` returned. ``opts``
    is passed through from the caller untouched.
    """

    @abc.abstractmethod
    async def list_candidates(self, request_key: RequestKey, opts: tp.Any = None) -> tp.List[Candidate[RefT]]:
        """
        Return every response stored under the key, including stale and expired ones.

        Args:
            request_key: Key derived from the request's method, URL, body and bucket.
            opts: Backend options.

        Returns:
            The candidates, or an empty list if the key is unknown.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def get_response(self, ref: RefT, opts: tp.Any = None) -> tp.Optional[StoredResponse]:
        """
        Fetch a full response by a reference obtained from ``list_candidates``.

        Returns:
            The stored response, or None if it has been evicted or invalidated since.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def put(
        self,
        request_key: RequestKey,
        url_digest: UrlDigest,
        vary_headers: VaryHeaders,
        response: Response,
        metadata: ResponseMetadata,
        opts: tp.Any = None,
    ) -> None:
        """
        Store a response as an additional candidate under ``request_key``.

        The response must also become reachable through ``url_digest`` and each of
        ``metadata.alternate_keys`` for invalidation.

        Raises:
            BackendFailure: If the response could not be stored.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def notify_used(self, ref: RefT, opts: tp.Any = None) -> None:
        """
        Hint that a response was served. Unknown references are ignored.
        """
        raise NotImplementedError()

    @abc.abstractmethod
    async def invalidate_url(self, url_digest: UrlDigest, opts: tp.Any = None) -> InvalidationResult:
        """
        Make every response stored for the URL unselectable.

        Raises:
            BackendFailure: If the invalidation could not be applied.
        """
        raise NotImplementedError()


class AsyncAlternateKeyStore(AsyncBaseStore[RefT]):
    """A store that can also invalidate by alternate key."""

    @abc.abstractmethod
    async def invalidate_by_alternate_key(
        self, keys: tp.Iterable[AlternateKey], opts: tp.Any = None
    ) -> InvalidationResult:
        """
        Make every response tagged with at least one of ``keys`` unselectable.

        Raises:
            BackendFailure: If the invalidation could not be applied.
        """
        raise NotImplementedError()


def supports_alternate_keys(store: tp.Union[SyncBaseStore[tp.Any], AsyncBaseStore[tp.Any]]) -> bool:
    """Whether the store implements ``invalidate_by_alternate_key``."""
    return isinstance(store, (SyncAlternateKeyStore, AsyncAlternateKeyStore))
