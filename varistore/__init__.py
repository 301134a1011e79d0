from varistore._async_cache import AsyncHttpCache as AsyncHttpCache
from varistore._core import (
    AlternateKey as AlternateKey,
    AsyncAlternateKeyStore as AsyncAlternateKeyStore,
    AsyncBaseStore as AsyncBaseStore,
    AsyncFileStore as AsyncFileStore,
    AsyncInMemoryStore as AsyncInMemoryStore,
    AsyncSqliteStore as AsyncSqliteStore,
    ByteRange as ByteRange,
    Candidate as Candidate,
    ContentRange as ContentRange,
    FileBody as FileBody,
    FileRef as FileRef,
    Freshness as Freshness,
    FreshnessOptions as FreshnessOptions,
    HashKeyGen as HashKeyGen,
    Headers as Headers,
    InvalidationResult as InvalidationResult,
    KeyGen as KeyGen,
    RequestKey as RequestKey,
    Resolution as Resolution,
    Response as Response,
    ResponseMetadata as ResponseMetadata,
    StoredResponse as StoredResponse,
    SyncAlternateKeyStore as SyncAlternateKeyStore,
    SyncBaseStore as SyncBaseStore,
    SyncFileStore as SyncFileStore,
    SyncInMemoryStore as SyncInMemoryStore,
    SyncSqliteStore as SyncSqliteStore,
    TTLSource as TTLSource,
    UrlDigest as UrlDigest,
    VaryHeaders as VaryHeaders,
    build_metadata as build_metadata,
    evaluate_freshness as evaluate_freshness,
    newest_first as newest_first,
    parse_cache_control as parse_cache_control,
    parse_content_range as parse_content_range,
    parse_range as parse_range,
    parse_vary as parse_vary,
    rank_candidates as rank_candidates,
    supports_alternate_keys as supports_alternate_keys,
    vary_headers_for as vary_headers_for,
)
from varistore._core._async._invalidation import AsyncInvalidationCoordinator as AsyncInvalidationCoordinator
from varistore._core._async._selector import AsyncCandidateSelector as AsyncCandidateSelector
from varistore._core._sync._invalidation import SyncInvalidationCoordinator as SyncInvalidationCoordinator
from varistore._core._sync._selector import SyncCandidateSelector as SyncCandidateSelector
from varistore._exceptions import (
    BackendFailure as BackendFailure,
    CacheStoreError as CacheStoreError,
    InvariantViolation as InvariantViolation,
    ParseError as ParseError,
    UnsupportedCapability as UnsupportedCapability,
)
from varistore._sync_cache import SyncHttpCache as SyncHttpCache
from varistore._utils import BaseClock as BaseClock, Clock as Clock

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
    ## Headers
    "Headers",
    "ByteRange",
    "ContentRange",
    "parse_cache_control",
    "parse_content_range",
    "parse_range",
    "parse_vary",
    ## Keys
    "KeyGen",
    "HashKeyGen",
    "vary_headers_for",
    ## Freshness
    "FreshnessOptions",
    "build_metadata",
    "evaluate_freshness",
    # Selection
    "newest_first",
    "rank_candidates",
    "AsyncCandidateSelector",
    "SyncCandidateSelector",
    # Invalidation
    "AsyncInvalidationCoordinator",
    "SyncInvalidationCoordinator",
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
    # Cache
    "AsyncHttpCache",
    "SyncHttpCache",
    # Clocks
    "BaseClock",
    "Clock",
    # Exceptions
    "CacheStoreError",
    "BackendFailure",
    "UnsupportedCapability",
    "InvariantViolation",
    "ParseError",
)
