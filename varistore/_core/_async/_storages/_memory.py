from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterable, List, Optional, Set

import anyio

from varistore._core._base._storages._base import AsyncAlternateKeyStore
from varistore._core.models import (
    AlternateKey,
    Candidate,
    InvalidationResult,
    RequestKey,
    Response,
    ResponseMetadata,
    StoredResponse,
    UrlDigest,
    VaryHeaders,
)
from varistore._lfu_cache import LFUCache

logger = logging.getLogger("varistore.storages")

__all__ = ("AsyncInMemoryStore",)


@dataclass(frozen=True)
class _Record:
    request_key: RequestKey
    url_digest: UrlDigest
    candidate: Candidate[uuid.UUID]
    body: bytes


class AsyncInMemoryStore(AsyncAlternateKeyStore[uuid.UUID]):
    """
    A simple in-memory store.

    :param capacity: The maximum number of responses kept, defaults to 128. When full,
        the least frequently used response is evicted; ``notify_used`` counts as a use.
    :type capacity: int, optional
    """

    def __init__(self, *, capacity: int = 128) -> None:
        self._entries: LFUCache[uuid.UUID, _Record] = LFUCache(capacity=capacity)
        self._by_request_key: Dict[RequestKey, List[uuid.UUID]] = {}
        self._by_url: Dict[UrlDigest, Set[uuid.UUID]] = {}
        self._by_alternate_key: Dict[AlternateKey, Set[uuid.UUID]] = {}
        self._lock = anyio.Lock()

    async def list_candidates(self, request_key: RequestKey, opts: Any = None) -> List[Candidate[uuid.UUID]]:
        async with self._lock:
            refs = self._by_request_key.get(request_key, [])
            candidates = [self._entries.peek(ref).candidate for ref in refs]
        return [
            replace(candidate, headers=candidate.headers.copy(), vary_headers=dict(candidate.vary_headers))
            for candidate in candidates
        ]

    async def get_response(self, ref: uuid.UUID, opts: Any = None) -> Optional[StoredResponse]:
        async with self._lock:
            if ref not in self._entries:
                return None
            record = self._entries.peek(ref)
        candidate = record.candidate
        return StoredResponse(
            status=candidate.status,
            headers=candidate.headers.copy(),
            body=record.body,
            metadata=candidate.metadata,
        )

    async def put(
        self,
        request_key: RequestKey,
        url_digest: UrlDigest,
        vary_headers: VaryHeaders,
        response: Response,
        metadata: ResponseMetadata,
        opts: Any = None,
    ) -> None:
        ref = uuid.uuid4()
        record = _Record(
            request_key=request_key,
            url_digest=url_digest,
            candidate=Candidate(
                ref=ref,
                status=response.status,
                headers=response.headers.copy(),
                vary_headers=dict(vary_headers),
                metadata=metadata,
            ),
            body=bytes(response.body),
        )

        async with self._lock:
            evicted = self._entries.put(ref, record)
            self._by_request_key.setdefault(request_key, []).append(ref)
            self._by_url.setdefault(url_digest, set()).add(ref)
            for alternate_key in metadata.alternate_keys:
                self._by_alternate_key.setdefault(alternate_key, set()).add(ref)
            if evicted is not None:
                evicted_ref, evicted_record = evicted
                logger.debug(f"Evicted response {evicted_ref} to make room for {ref}")
                self._unindex(evicted_ref, evicted_record)

    async def notify_used(self, ref: uuid.UUID, opts: Any = None) -> None:
        async with self._lock:
            self._entries.touch(ref)

    async def invalidate_url(self, url_digest: UrlDigest, opts: Any = None) -> InvalidationResult:
        async with self._lock:
            refs = list(self._by_url.get(url_digest, ()))
            return InvalidationResult(count=self._remove(refs))

    async def invalidate_by_alternate_key(
        self, keys: Iterable[AlternateKey], opts: Any = None
    ) -> InvalidationResult:
        async with self._lock:
            refs: Set[uuid.UUID] = set()
            for key in keys:
                refs.update(self._by_alternate_key.get(key, ()))
            return InvalidationResult(count=self._remove(refs))

    def _remove(self, refs: Iterable[uuid.UUID]) -> int:
        count = 0
        for ref in refs:
            record = self._entries.remove_key(ref)
            if record is None:
                continue
            self._unindex(ref, record)
            count += 1
        return count

    def _unindex(self, ref: uuid.UUID, record: _Record) -> None:
        refs = self._by_request_key.get(record.request_key)
        if refs is not None:
            refs.remove(ref)
            if not refs:
                del self._by_request_key[record.request_key]

        url_refs = self._by_url.get(record.url_digest)
        if url_refs is not None:
            url_refs.discard(ref)
            if not url_refs:
                del self._by_url[record.url_digest]

        for alternate_key in record.candidate.metadata.alternate_keys:
            alternate_refs = self._by_alternate_key.get(alternate_key)
            if alternate_refs is not None:
                alternate_refs.discard(ref)
                if not alternate_refs:
                    del self._by_alternate_key[alternate_key]
