from __future__ import annotations

import hashlib
import logging
import os
import time
import uuid
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple, Union

import anyio

from varistore._core._base._storages._base import AsyncBaseStore
from varistore._core._base._storages._packing import pack_record, unpack_record
from varistore._core.models import (
    Candidate,
    FileBody,
    FileRef,
    InvalidationResult,
    RequestKey,
    Response,
    ResponseMetadata,
    StoredResponse,
    UrlDigest,
    VaryHeaders,
)
from varistore._exceptions import BackendFailure
from varistore._files import AsyncFileManager
from varistore._utils import ensure_cache_dict

logger = logging.getLogger("varistore.storages")

__all__ = ("AsyncFileStore",)

_URL_INDEX_DIR = "_urls"

# How often to reap responses past their grace period (seconds). Default: 1 hour.
BATCH_CLEANUP_INTERVAL = 3600


def _path_component(value: str) -> str:
    # request keys and URL digests are opaque, so they never become path names as they are
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class AsyncFileStore(AsyncBaseStore[FileRef]):
    """
    A simple file store.

    Each response is kept as two files under a directory named after a hash of its
    request key: ``<id>.body`` with the raw body and ``<id>.meta`` with everything else.
    The metadata file is what makes a response visible, so it is written last (by an
    atomic rename) and removed first.

    Alternate keys are recorded in the metadata but cannot be used for invalidation.

    :param base_path: A store base path where the responses should be saved, defaults to None
        (``.cache/varistore``)
    :type base_path: tp.Optional[Union[str, Path]], optional
    :param cleanup_interval: How often, in seconds, responses whose grace period is
        over get deleted. ``None`` disables the cleanup.
    :type cleanup_interval: tp.Optional[float]
    """

    def __init__(
        self,
        *,
        base_path: Optional[Union[str, Path]] = None,
        cleanup_interval: Optional[float] = BATCH_CLEANUP_INTERVAL,
    ) -> None:
        self._base_path = ensure_cache_dict(Path(base_path) if base_path is not None else None)
        self._file_manager = AsyncFileManager()
        self._lock = anyio.Lock()
        self.cleanup_interval = cleanup_interval
        self.last_cleanup = time.time()

    def _directory(self, request_key: RequestKey) -> Path:
        return self._base_path / _path_component(request_key)

    def _paths(self, ref: FileRef) -> Tuple[Path, Path]:
        directory = self._directory(ref.request_key)
        return directory / f"{ref.id}.meta", directory / f"{ref.id}.body"

    def _url_index(self, url_digest: UrlDigest) -> Path:
        return self._base_path / _URL_INDEX_DIR / _path_component(url_digest)

    async def list_candidates(self, request_key: RequestKey, opts: Any = None) -> List[Candidate[FileRef]]:
        directory = self._directory(request_key)
        listed: List[Tuple[int, Candidate[FileRef]]] = []

        async with self._lock:
            try:
                await self._maybe_cleanup()
                meta_files = sorted(directory.glob("*.meta"))
            except OSError as exc:
                raise BackendFailure("list_candidates", exc) from exc

        for meta_path in meta_files:
            try:
                data = await self._file_manager.read_from(meta_path)
            except FileNotFoundError:
                # invalidated while listing
                continue
            except OSError as exc:
                raise BackendFailure("list_candidates", exc) from exc

            status, headers, vary_headers, metadata, extra = unpack_record(data)
            ref = FileRef(request_key=request_key, id=meta_path.stem)
            listed.append(
                (
                    extra.get("sequence", 0),
                    Candidate(ref=ref, status=status, headers=headers, vary_headers=vary_headers, metadata=metadata),
                )
            )

        listed.sort(key=lambda item: item[0])
        return [candidate for _, candidate in listed]

    async def get_response(self, ref: FileRef, opts: Any = None) -> Optional[StoredResponse]:
        meta_path, body_path = self._paths(ref)
        try:
            data = await self._file_manager.read_from(meta_path)
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise BackendFailure("get_response", exc) from exc

        if not body_path.is_file():
            return None

        status, headers, _, metadata, _ = unpack_record(data)
        return StoredResponse(status=status, headers=headers, body=FileBody(body_path), metadata=metadata)

    async def put(
        self,
        request_key: RequestKey,
        url_digest: UrlDigest,
        vary_headers: VaryHeaders,
        response: Response,
        metadata: ResponseMetadata,
        opts: Any = None,
    ) -> None:
        ref = FileRef(request_key=request_key, id=uuid.uuid4().hex)
        meta_path, body_path = self._paths(ref)
        marker = self._url_index(url_digest) / f"{meta_path.parent.name}.{ref.id}"
        data = pack_record(
            response.status,
            response.headers,
            vary_headers,
            metadata,
            extra={"url_digest": url_digest, "sequence": time.time_ns()},
        )

        async with self._lock:
            try:
                meta_path.parent.mkdir(parents=True, exist_ok=True)
                marker.parent.mkdir(parents=True, exist_ok=True)

                await self._file_manager.publish(body_path, response.body)
                marker.touch()
                await self._file_manager.publish(meta_path, data)
            except OSError as exc:
                # the metadata was never published, so nothing else can see these files
                body_path.unlink(missing_ok=True)
                marker.unlink(missing_ok=True)
                raise BackendFailure("put", exc) from exc

    async def notify_used(self, ref: FileRef, opts: Any = None) -> None:
        meta_path, _ = self._paths(ref)
        try:
            os.utime(meta_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise BackendFailure("notify_used", exc) from exc

    async def invalidate_url(self, url_digest: UrlDigest, opts: Any = None) -> InvalidationResult:
        count = 0
        async with self._lock:
            try:
                for marker, meta_path, body_path in self._indexed_files(self._url_index(url_digest)):
                    if self._remove(meta_path, body_path):
                        count += 1
                    marker.unlink(missing_ok=True)
            except OSError as exc:
                raise BackendFailure("invalidate_url", exc) from exc

        logger.debug(f"Invalidated {count} responses for URL digest {url_digest}")
        return InvalidationResult(count=count)

    def _indexed_files(self, url_index: Path) -> Iterator[Tuple[Path, Path, Path]]:
        if not url_index.is_dir():
            return
        for marker in list(url_index.iterdir()):
            directory_name, _, ref_id = marker.name.rpartition(".")
            directory = self._base_path / directory_name
            yield marker, directory / f"{ref_id}.meta", directory / f"{ref_id}.body"

    def _remove(self, meta_path: Path, body_path: Path) -> bool:
        try:
            meta_path.unlink()
        except FileNotFoundError:
            removed = False
        else:
            removed = True
        body_path.unlink(missing_ok=True)
        return removed

    async def _maybe_cleanup(self) -> None:
        if self.cleanup_interval is None:
            return
        now = time.time()
        if now - self.last_cleanup < self.cleanup_interval:
            return
        self.last_cleanup = now

        reaped = 0
        for meta_path in list(self._base_path.glob("*/*.meta")):
            try:
                data = await self._file_manager.read_from(meta_path)
            except FileNotFoundError:  # pragma: no cover
                continue
            _, _, _, metadata, _ = unpack_record(data)
            if metadata.grace <= int(now) and self._remove(meta_path, meta_path.with_suffix(".body")):
                reaped += 1

        # markers whose response is gone, including the ones left by a failed put
        for url_index in list((self._base_path / _URL_INDEX_DIR).glob("*")):
            for marker, meta_path, _ in self._indexed_files(url_index):
                if not meta_path.exists():
                    marker.unlink(missing_ok=True)

        if reaped:
            logger.debug(f"Removed {reaped} responses past their grace period")
