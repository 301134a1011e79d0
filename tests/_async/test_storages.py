import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo

import anysqlite
import pytest
from inline_snapshot import snapshot
from time_machine import travel

from varistore import (
    AsyncBaseStore,
    AsyncFileStore,
    AsyncInMemoryStore,
    AsyncSqliteStore,
    BackendFailure,
    ContentRange,
    FileBody,
    FileRef,
    Headers,
    Response,
    ResponseMetadata,
    StoredResponse,
    TTLSource,
    supports_alternate_keys,
)
from tests.conftest import aprint_sqlite_state

# 2024-01-01 12:00:00 UTC
NOW = 1704110400

STORE_KINDS = ["memory", "sqlite", "file"]


async def make_store(kind: str, tmp_path: Path) -> AsyncBaseStore[Any]:
    if kind == "memory":
        return AsyncInMemoryStore()
    if kind == "sqlite":
        return AsyncSqliteStore(connection=await anysqlite.connect(":memory:"))
    return AsyncFileStore(base_path=tmp_path / "cache")


async def put(
    store: AsyncBaseStore[Any],
    request_key: str = "rk",
    url_digest: str = "url",
    vary: Optional[dict] = None,
    body: bytes = b"hello",
    created: int = NOW,
    alternate_keys: Iterable[Any] = (),
    content_range: Optional[ContentRange] = None,
) -> ResponseMetadata:
    metadata = ResponseMetadata(
        created=created,
        expires=created + 60,
        grace=created + 120,
        parsed_headers={"content-range": content_range} if content_range is not None else {},
        alternate_keys=frozenset(alternate_keys),
    )
    await store.put(
        request_key,
        url_digest,
        vary or {},
        Response(status=206 if content_range else 200, headers=Headers({"Content-Type": "text/plain"}), body=body),
        metadata,
    )
    return metadata


def read_body(response: StoredResponse) -> bytes:
    if isinstance(response.body, FileBody):
        return response.body.path.read_bytes()
    return response.body


@pytest.mark.anyio
@pytest.mark.parametrize("kind", STORE_KINDS)
async def test_put_and_get_preserve_everything(kind: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)
    metadata = ResponseMetadata(
        created=NOW,
        expires=NOW + 60,
        grace=NOW + 90,
        ttl_set_by=TTLSource.HEURISTICS,
        parsed_headers={"content-range": ContentRange(0, 999, 2000), "vary": ["accept-encoding"]},
        alternate_keys=frozenset({"product-1"}) if supports_alternate_keys(store) else frozenset(),
    )
    headers = Headers([("Content-Type", "text/plain"), ("Content-Range", "bytes 0-999/2000")])

    response = Response(status=206, headers=headers, body=b"x" * 1000)
    await store.put("rk", "url", {"accept-encoding": None}, response, metadata)

    [candidate] = await store.list_candidates("rk")
    assert candidate.status == 206
    assert candidate.headers == headers
    assert candidate.vary_headers == {"accept-encoding": None}
    assert candidate.metadata == metadata
    assert candidate.is_partial

    stored = await store.get_response(candidate.ref)
    assert stored is not None
    assert stored.status == 206
    assert stored.headers == headers
    assert stored.metadata == metadata
    assert read_body(stored) == b"x" * 1000


@pytest.mark.anyio
@pytest.mark.parametrize("kind", STORE_KINDS)
async def test_unknown_request_key(kind: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)

    assert await store.list_candidates("missing") == []


@pytest.mark.anyio
@pytest.mark.parametrize("kind", STORE_KINDS)
async def test_put_appends_candidates(kind: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)

    await put(store, body=b"first")
    await put(store, body=b"second")
    await put(store, request_key="other", body=b"other")

    candidates = await store.list_candidates("rk")
    assert len(candidates) == 2

    bodies = []
    for candidate in candidates:
        stored = await store.get_response(candidate.ref)
        assert stored is not None
        bodies.append(read_body(stored))
    assert bodies == [b"first", b"second"]


@pytest.mark.anyio
@pytest.mark.parametrize("kind", STORE_KINDS)
async def test_invalidate_url(kind: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)
    await put(store, request_key="get", url_digest="url")
    await put(store, request_key="head", url_digest="url")
    await put(store, request_key="keep", url_digest="other-url")
    [invalidated] = await store.list_candidates("get")

    result = await store.invalidate_url("url")

    assert result.count == 2
    assert await store.list_candidates("get") == []
    assert await store.list_candidates("head") == []
    assert await store.get_response(invalidated.ref) is None
    assert len(await store.list_candidates("keep")) == 1
    assert (await store.invalidate_url("url")).count == 0


@pytest.mark.anyio
@pytest.mark.parametrize("kind", STORE_KINDS)
@pytest.mark.parametrize(
    "request_key, url_digest",
    [
        ("GET.example.com", "url"),
        ("a/b", "url"),
        ("..", "https://example.com/a.b"),
    ],
)
async def test_opaque_keys(kind: str, request_key: str, url_digest: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)
    await put(store, request_key=request_key, url_digest=url_digest, body=b"opaque")

    [candidate] = await store.list_candidates(request_key)
    stored = await store.get_response(candidate.ref)
    assert stored is not None
    assert read_body(stored) == b"opaque"

    result = await store.invalidate_url(url_digest)

    assert result.count == 1
    assert await store.list_candidates(request_key) == []
    assert await store.get_response(candidate.ref) is None


@pytest.mark.anyio
@pytest.mark.parametrize("kind", STORE_KINDS)
async def test_notify_used_unknown_ref_is_ignored(kind: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)
    await put(store)
    [candidate] = await store.list_candidates("rk")
    await store.invalidate_url("url")

    await store.notify_used(candidate.ref)

    assert await store.get_response(candidate.ref) is None


@pytest.mark.anyio
@pytest.mark.parametrize("kind", ["memory", "sqlite"])
async def test_invalidate_by_alternate_key(kind: str, tmp_path: Path) -> None:
    store = await make_store(kind, tmp_path)
    assert supports_alternate_keys(store)
    await put(store, request_key="a", url_digest="url-a", alternate_keys=["product-1", "category"])
    await put(store, request_key="b", url_digest="url-b", alternate_keys=[42])
    await put(store, request_key="c", url_digest="url-c", alternate_keys=["category"])

    result = await store.invalidate_by_alternate_key(["product-1", "42"])  # type: ignore[attr-defined]

    assert result.count == 1
    assert await store.list_candidates("a") == []
    assert len(await store.list_candidates("b")) == 1

    result = await store.invalidate_by_alternate_key([42, "category"])  # type: ignore[attr-defined]

    assert result.count == 2
    assert await store.list_candidates("b") == []
    assert await store.list_candidates("c") == []
    assert (await store.invalidate_url("url-a")).count == 0


@pytest.mark.anyio
async def test_file_store_lacks_alternate_keys(tmp_path: Path) -> None:
    store = AsyncFileStore(base_path=tmp_path)

    assert not supports_alternate_keys(store)
    assert not hasattr(store, "invalidate_by_alternate_key")


@pytest.mark.anyio
async def test_file_store_layout(tmp_path: Path) -> None:
    store = AsyncFileStore(base_path=tmp_path)
    await put(store, body=b"on disk")

    [candidate] = await store.list_candidates("rk")
    assert isinstance(candidate.ref, FileRef)
    assert candidate.ref.request_key == "rk"

    stored = await store.get_response(candidate.ref)
    assert stored is not None
    assert isinstance(stored.body, FileBody)
    directory = stored.body.path.parent
    assert directory.parent == tmp_path
    assert stored.body.path.name == f"{candidate.ref.id}.body"
    assert (tmp_path / ".gitignore").is_file()
    assert sorted(path.name for path in directory.iterdir()) == [
        f"{candidate.ref.id}.body",
        f"{candidate.ref.id}.meta",
    ]


@pytest.mark.anyio
async def test_file_store_response_without_body_is_not_served(tmp_path: Path) -> None:
    store = AsyncFileStore(base_path=tmp_path)
    await put(store)
    [candidate] = await store.list_candidates("rk")
    stored = await store.get_response(candidate.ref)
    assert stored is not None
    assert isinstance(stored.body, FileBody)

    stored.body.path.unlink()

    assert await store.get_response(candidate.ref) is None


@pytest.mark.anyio
async def test_file_store_default_location(use_temp_dir: None) -> None:
    store = AsyncFileStore()
    await put(store)

    assert len(list(Path(".cache/varistore").glob("*/*.meta"))) == 1


@pytest.mark.anyio
@travel(datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("UTC")))
async def test_file_store_reaps_responses_past_grace(tmp_path: Path) -> None:
    store = AsyncFileStore(base_path=tmp_path, cleanup_interval=0)
    await put(store, request_key="dead", url_digest="dead-url", created=NOW - 3600)
    await put(store, request_key="alive", url_digest="alive-url", created=NOW)

    assert len(await store.list_candidates("alive")) == 1

    assert len(list(tmp_path.glob("*/*.meta"))) == 1
    assert len(list(tmp_path.glob("*/*.body"))) == 1
    assert len(list(tmp_path.glob("_urls/*/*"))) == 1
    assert (await store.invalidate_url("dead-url")).count == 0


@pytest.mark.anyio
async def test_file_store_keeps_expired_responses_without_cleanup(tmp_path: Path) -> None:
    store = AsyncFileStore(base_path=tmp_path, cleanup_interval=None)
    await put(store, created=100)

    assert len(await store.list_candidates("rk")) == 1


@pytest.mark.anyio
async def test_file_store_failed_put_leaves_nothing_behind(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    store = AsyncFileStore(base_path=tmp_path)
    publish = store._file_manager.publish

    async def failing_publish(path: Path, data: bytes) -> None:
        if path.suffix == ".meta":
            raise OSError("No space left on device")
        await publish(path, data)

    monkeypatch.setattr(store._file_manager, "publish", failing_publish)

    with pytest.raises(BackendFailure) as exc_info:
        await put(store)

    assert isinstance(exc_info.value.__cause__, OSError)
    assert await store.list_candidates("rk") == []
    assert [path for path in tmp_path.rglob("*") if path.is_file()] == [tmp_path / ".gitignore"]


@pytest.mark.anyio
async def test_memory_eviction_cleans_indexes() -> None:
    store = AsyncInMemoryStore(capacity=1)
    await put(store, request_key="old", url_digest="old-url", alternate_keys=["tag"])
    [evicted] = await store.list_candidates("old")

    await put(store, request_key="new", url_digest="new-url")

    assert await store.list_candidates("old") == []
    assert await store.get_response(evicted.ref) is None
    assert (await store.invalidate_url("old-url")).count == 0
    assert (await store.invalidate_by_alternate_key(["tag"])).count == 0
    assert "old" not in store._by_request_key
    assert "old-url" not in store._by_url
    assert "tag" not in store._by_alternate_key
    assert len(await store.list_candidates("new")) == 1


@pytest.mark.anyio
async def test_memory_notify_used_protects_from_eviction() -> None:
    store = AsyncInMemoryStore(capacity=2)
    await put(store, request_key="a")
    await put(store, request_key="b")
    [used] = await store.list_candidates("a")

    await store.notify_used(used.ref)
    await put(store, request_key="c")

    assert len(await store.list_candidates("a")) == 1
    assert await store.list_candidates("b") == []


@pytest.mark.anyio
async def test_memory_candidates_are_copies() -> None:
    store = AsyncInMemoryStore()
    await put(store, vary={"accept-encoding": "gzip"})
    [candidate] = await store.list_candidates("rk")

    candidate.headers["Content-Type"] = "application/json"
    candidate.vary_headers["accept-encoding"] = "br"  # type: ignore[index]

    [listed] = await store.list_candidates("rk")
    assert listed.headers["Content-Type"] == "text/plain"
    assert listed.vary_headers == {"accept-encoding": "gzip"}


@pytest.mark.anyio
async def test_sqlite_state() -> None:
    store = AsyncSqliteStore(connection=await anysqlite.connect(":memory:"))
    await put(store, alternate_keys=["tag"])

    conn = await store._ensure_connection()
    assert await aprint_sqlite_state(conn) == snapshot("""\
================================================================================
DATABASE SNAPSHOT
================================================================================

TABLE: alternate_keys
--------------------------------------------------------------------------------
Rows: 1

  Row 1:
    alternate_key   = (bytes) 0xa3746167 (4 bytes)

TABLE: responses
--------------------------------------------------------------------------------
Rows: 1

  Row 1:
    request_key     = 'rk'
    url_digest      = 'url'
    body            = (str) 'hello'
    created_at      = 2024-01-01
    grace_at        = 2024-01-01
    last_used_at    = NULL

================================================================================\
""")

    await store.invalidate_url("url")

    assert await aprint_sqlite_state(conn) == snapshot("""\
================================================================================
DATABASE SNAPSHOT
================================================================================

TABLE: alternate_keys
--------------------------------------------------------------------------------
Rows: 0

  (empty)

TABLE: responses
--------------------------------------------------------------------------------
Rows: 0

  (empty)

================================================================================\
""")


@pytest.mark.anyio
@travel(datetime(2024, 1, 1, 12, 0, 0, tzinfo=ZoneInfo("UTC")))
async def test_sqlite_reaps_responses_past_grace() -> None:
    store = AsyncSqliteStore(connection=await anysqlite.connect(":memory:"), cleanup_interval=0)
    await put(store, request_key="dead", created=NOW - 3600)
    await put(store, request_key="alive", created=NOW)

    assert len(await store.list_candidates("alive")) == 1

    conn = await store._ensure_connection()
    cursor = await conn.cursor()
    await cursor.execute("SELECT request_key FROM responses")
    assert await cursor.fetchall() == [("alive",)]


@pytest.mark.anyio
async def test_sqlite_keeps_expired_responses_without_cleanup() -> None:
    store = AsyncSqliteStore(connection=await anysqlite.connect(":memory:"), cleanup_interval=None)
    await put(store, created=100)

    assert len(await store.list_candidates("rk")) == 1


@pytest.mark.anyio
async def test_sqlite_failure_is_reported_as_backend_failure() -> None:
    connection = await anysqlite.connect(":memory:")
    store = AsyncSqliteStore(connection=connection)
    await put(store)
    await connection.close()

    with pytest.raises(BackendFailure) as exc_info:
        await store.list_candidates("rk")

    assert exc_info.value.operation == "list_candidates"
    assert exc_info.value.__cause__ is not None

    with pytest.raises(BackendFailure):
        await put(store)


@pytest.mark.anyio
async def test_sqlite_unknown_ref() -> None:
    store = AsyncSqliteStore(connection=await anysqlite.connect(":memory:"))

    assert await store.get_response(uuid.uuid4()) is None
    await store.notify_used(uuid.uuid4())
