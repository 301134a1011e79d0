from varistore._core._async._storages._file import AsyncFileStore as AsyncFileStore
from varistore._core._async._storages._memory import AsyncInMemoryStore as AsyncInMemoryStore
from varistore._core._async._storages._sqlite import AsyncSqliteStore as AsyncSqliteStore
from varistore._core._base._storages._base import (
    AsyncAlternateKeyStore as AsyncAlternateKeyStore,
    AsyncBaseStore as AsyncBaseStore,
    SyncAlternateKeyStore as SyncAlternateKeyStore,
    SyncBaseStore as SyncBaseStore,
    supports_alternate_keys as supports_alternate_keys,
)
from varistore._core._freshness import (
    FreshnessOptions as FreshnessOptions,
    build_metadata as build_metadata,
    evaluate_freshness as evaluate_freshness,
)
from varistore._core._headers import (
    ByteRange as ByteRange,
    ContentRange as ContentRange,
    Headers as Headers,
    parse_cache_control as parse_cache_control,
    parse_content_range as parse_content_range,
    parse_range as parse_range,
    parse_vary as parse_vary,
)
from varistore._core._keygen import HashKeyGen as HashKeyGen, KeyGen as KeyGen, vary_headers_for as vary_headers_for
from varistore._core._selection import newest_first as newest_first, rank_candidates as rank_candidates
from varistore._core._sync._storages._file import SyncFileStore as SyncFileStore
from varistore._core._sync._storages._memory import SyncInMemoryStore as SyncInMemoryStore
from varistore._core._sync._storages._sqlite import SyncSqliteStore as SyncSqliteStore
from varistore._core.models import (
    AlternateKey as AlternateKey,
    Candidate as Candidate,
    FileBody as FileBody,
    FileRef as FileRef,
    Freshness as Freshness,
    InvalidationResult as InvalidationResult,
    RequestKey as RequestKey,
    Resolution as Resolution,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
    StoredResponse as StoredResponse,
    TTLSource as TTLSource,
    UrlDigest as UrlDigest,
    VaryHeaders as VaryHeaders,
)

__all__ = (
    # Models
    "AlternateKey",
    "Candidate",
    "FileBody",
    "Freshness",
    "InvalidationResult",
    "RequestKey",
    "Resolution",
    "Response",
    "ResponseMetadata",
    "StoredResponse",
    "TTLSource",
    "UrlDigest",
    "VaryHeaders",
    # Headers
    "Headers",
    "ByteRange",
    "ContentRange",
    "parse_cache_control",
    "parse_content_range",
    "parse_range",
    "parse_vary",
    # Keys
    "KeyGen",
    "HashKeyGen",
    "vary_headers_for",
    # Freshness
    "FreshnessOptions",
    "build_metadata",
    "evaluate_freshness",
    # Selection
    "newest_first",
    "rank_candidates",
    # Storages
    "AsyncBaseStore",
    "SyncBaseStore",
    "AsyncAlternateKeyStore",
    "SyncAlternateKeyStore",
    "supports_alternate_keys",
    "AsyncInMemoryStore",
    "SyncInMemoryStore",
    "AsyncSqliteStore",
    "SyncSqliteStore",
    "AsyncFileStore",
    "SyncFileStore",
    "FileRef",
)
