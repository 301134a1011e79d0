from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from sqlite3 import Error as SQLiteError
from typing import Any, Iterable, List, Optional, Union

import threading
import sqlite3

from varistore._core._base._storages._base import SyncAlternateKeyStore
from varistore._core._base._storages._packing import pack_alternate_key, pack_record, unpack_record
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
from varistore._exceptions import BackendFailure
from varistore._utils import ensure_cache_dict

logger = logging.getLogger("varistore.storages")

__all__ = ("SyncSqliteStore",)

# How often to reap responses past their grace period (seconds). Default: 1 hour.
BATCH_CLEANUP_INTERVAL = 3600


class SyncSqliteStore(SyncAlternateKeyStore[uuid.UUID]):
    """
    A store backed by a single sqlite database.

    Every write runs in its own transaction, so a reader sees a response either
    completely (headers, metadata and body) or not at all.

    :param connection: An open connection, defaults to None (a database file is created
        under the cache directory on first use)
    :type connection: tp.Optional[sqlite3.Connection], optional
    :param database_path: Database file used when no connection is given
    :type database_path: Union[str, Path]
    :param cleanup_interval: How often, in seconds, responses whose grace period is
        over get deleted. ``None`` disables the cleanup.
    :type cleanup_interval: tp.Optional[float]
    """

    def __init__(
        self,
        *,
        connection: Optional[sqlite3.Connection] = None,
        database_path: Union[str, Path] = "varistore_cache.db",
        cleanup_interval: Optional[float] = BATCH_CLEANUP_INTERVAL,
    ) -> None:
        self.connection = connection
        self.database_path: Path = database_path if isinstance(database_path, Path) else Path(database_path)
        self.cleanup_interval = cleanup_interval
        self.last_cleanup = time.time()
        self._initialized = False
        self._lock = threading.Lock()

    def _ensure_connection(self) -> sqlite3.Connection:
        """Ensure connection is established and database is initialized."""
        if self.connection is None:
            parent = self.database_path.parent if self.database_path.parent != Path(".") else None
            full_path = ensure_cache_dict(parent) / self.database_path.name
            self.connection = sqlite3.connect(str(full_path), check_same_thread=False)
        if not self._initialized:
            self._initialize_database(self.connection)
            self._initialized = True
        return self.connection

    def _initialize_database(self, connection: sqlite3.Connection) -> None:
        cursor = connection.cursor()

        # `data` holds the packed status, headers, vary headers and metadata
        cursor.execute("""
            CREATE TABLE IF NOT EXISTS responses (
                id BLOB PRIMARY KEY,
                request_key TEXT NOT NULL,
                url_digest TEXT NOT NULL,
                data BLOB NOT NULL,
                body BLOB NOT NULL,
                created_at INTEGER NOT NULL,
                grace_at INTEGER NOT NULL,
                last_used_at REAL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS alternate_keys (
                response_id BLOB NOT NULL,
                alternate_key BLOB NOT NULL,
                PRIMARY KEY (response_id, alternate_key)
            )
        """)

        cursor.execute("CREATE INDEX IF NOT EXISTS idx_responses_request_key ON responses(request_key)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_responses_url_digest ON responses(url_digest)")
        cursor.execute("CREATE INDEX IF NOT EXISTS idx_responses_grace_at ON responses(grace_at)")
        cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_alternate_keys_alternate_key ON alternate_keys(alternate_key)"
        )

        connection.commit()

    def list_candidates(self, request_key: RequestKey, opts: Any = None) -> List[Candidate[uuid.UUID]]:
        with self._lock:
            connection = self._connect("list_candidates")
            try:
                self._maybe_cleanup(connection)
                cursor = connection.cursor()
                cursor.execute(
                    "SELECT id, data FROM responses WHERE request_key = ? ORDER BY rowid", (request_key,)
                )
                rows = cursor.fetchall()
            except SQLiteError as exc:
                self._rollback(connection)
                raise BackendFailure("list_candidates", exc) from exc

        candidates: List[Candidate[uuid.UUID]] = []
        for row in rows:
            status, headers, vary_headers, metadata, _ = unpack_record(row[1])
            candidates.append(
                Candidate(
                    ref=uuid.UUID(bytes=row[0]),
                    status=status,
                    headers=headers,
                    vary_headers=vary_headers,
                    metadata=metadata,
                )
            )
        return candidates

    def get_response(self, ref: uuid.UUID, opts: Any = None) -> Optional[StoredResponse]:
        with self._lock:
            connection = self._connect("get_response")
            try:
                cursor = connection.cursor()
                cursor.execute("SELECT data, body FROM responses WHERE id = ?", (ref.bytes,))
                row = cursor.fetchone()
            except SQLiteError as exc:
                raise BackendFailure("get_response", exc) from exc

        if row is None:
            return None

        status, headers, _, metadata, _ = unpack_record(row[0])
        return StoredResponse(status=status, headers=headers, body=bytes(row[1]), metadata=metadata)

    def put(
        self,
        request_key: RequestKey,
        url_digest: UrlDigest,
        vary_headers: VaryHeaders,
        response: Response,
        metadata: ResponseMetadata,
        opts: Any = None,
    ) -> None:
        ref = uuid.uuid4()
        data = pack_record(response.status, response.headers, vary_headers, metadata)

        with self._lock:
            connection = self._connect("put")
            try:
                cursor = connection.cursor()
                cursor.execute(
                    "INSERT INTO responses (id, request_key, url_digest, data, body, created_at, grace_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (ref.bytes, request_key, url_digest, data, response.body, metadata.created, metadata.grace),
                )
                for alternate_key in metadata.alternate_keys:
                    cursor.execute(
                        "INSERT OR IGNORE INTO alternate_keys (response_id, alternate_key) VALUES (?, ?)",
                        (ref.bytes, pack_alternate_key(alternate_key)),
                    )
                connection.commit()
            except SQLiteError as exc:
                self._rollback(connection)
                raise BackendFailure("put", exc) from exc

    def notify_used(self, ref: uuid.UUID, opts: Any = None) -> None:
        with self._lock:
            connection = self._connect("notify_used")
            try:
                cursor = connection.cursor()
                cursor.execute("UPDATE responses SET last_used_at = ? WHERE id = ?", (time.time(), ref.bytes))
                connection.commit()
            except SQLiteError as exc:
                self._rollback(connection)
                raise BackendFailure("notify_used", exc) from exc

    def invalidate_url(self, url_digest: UrlDigest, opts: Any = None) -> InvalidationResult:
        with self._lock:
            connection = self._connect("invalidate_url")
            try:
                cursor = connection.cursor()
                cursor.execute("DELETE FROM responses WHERE url_digest = ?", (url_digest,))
                count = self._changes(cursor)
                self._delete_orphan_alternate_keys(cursor)
                connection.commit()
            except SQLiteError as exc:
                self._rollback(connection)
                raise BackendFailure("invalidate_url", exc) from exc

        logger.debug(f"Invalidated {count} responses for URL digest {url_digest}")
        return InvalidationResult(count=count)

    def invalidate_by_alternate_key(
        self, keys: Iterable[AlternateKey], opts: Any = None
    ) -> InvalidationResult:
        packed_keys = [pack_alternate_key(key) for key in keys]
        if not packed_keys:
            return InvalidationResult(count=0)
        placeholders = ", ".join("?" for _ in packed_keys)

        with self._lock:
            connection = self._connect("invalidate_by_alternate_key")
            try:
                cursor = connection.cursor()
                cursor.execute(
                    "DELETE FROM responses WHERE id IN "
                    f"(SELECT response_id FROM alternate_keys WHERE alternate_key IN ({placeholders}))",
                    packed_keys,
                )
                count = self._changes(cursor)
                self._delete_orphan_alternate_keys(cursor)
                connection.commit()
            except SQLiteError as exc:
                self._rollback(connection)
                raise BackendFailure("invalidate_by_alternate_key", exc) from exc

        logger.debug(f"Invalidated {count} responses by alternate key")
        return InvalidationResult(count=count)

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None
            self._initialized = False

    def _connect(self, operation: str) -> sqlite3.Connection:
        try:
            return self._ensure_connection()
        except SQLiteError as exc:
            raise BackendFailure(operation, exc) from exc

    def _rollback(self, connection: sqlite3.Connection) -> None:
        try:
            connection.rollback()
        except SQLiteError:
            # the error that caused the rollback is the one reported to the caller
            logger.warning("Could not roll back a failed transaction", exc_info=True)

    def _changes(self, cursor: sqlite3.Cursor) -> int:
        cursor.execute("SELECT changes()")
        row = cursor.fetchone()
        return int(row[0]) if row is not None else 0

    def _delete_orphan_alternate_keys(self, cursor: sqlite3.Cursor) -> None:
        cursor.execute("DELETE FROM alternate_keys WHERE response_id NOT IN (SELECT id FROM responses)")

    def _maybe_cleanup(self, connection: sqlite3.Connection) -> None:
        if self.cleanup_interval is None:
            return
        now = time.time()
        if now - self.last_cleanup < self.cleanup_interval:
            return
        self.last_cleanup = now

        cursor = connection.cursor()
        cursor.execute("DELETE FROM responses WHERE grace_at <= ?", (int(now),))
        reaped = self._changes(cursor)
        self._delete_orphan_alternate_keys(cursor)
        connection.commit()
        if reaped:
            logger.debug(f"Removed {reaped} responses past their grace period")
