from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import (
    Any,
    FrozenSet,
    Generic,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from typing_extensions import TypeAlias

from varistore._core._headers import ContentRange, Headers
from varistore._exceptions import InvariantViolation

__all__ = (
    "RequestKey",
    "UrlDigest",
    "AlternateKey",
    "VaryHeaders",
    "RefT",
    "TTLSource",
    "Freshness",
    "ResponseMetadata",
    "FileBody",
    "FileRef",
    "Body",
    "Response",
    "StoredResponse",
    "Candidate",
    "InvalidationResult",
    "Resolution",
)

RequestKey: TypeAlias = str
"""Opaque key derived from a request's method, URL, body and bucket."""

UrlDigest: TypeAlias = str
"""Opaque digest derived from the URL alone."""

AlternateKey: TypeAlias = Union[str, int, bytes]
"""Application-defined tag used for bulk invalidation."""

VaryHeaders: TypeAlias = Mapping[str, Optional[str]]
"""
Normalized header name -> normalized value at storage time.

None marks a header that was absent, which is not the same as an empty value.
"""

RefT = TypeVar("RefT")


class TTLSource(str, enum.Enum):
    HEADER = "header"
    HEURISTICS = "heuristics"


class Freshness(enum.Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True)
class ResponseMetadata:
    created: int
    """UNIX timestamp (seconds) at which the response was stored or revalidated."""

    expires: int
    """The response is fresh until this timestamp."""

    grace: int
    """The response may be served stale until this timestamp."""

    ttl_set_by: TTLSource = TTLSource.HEADER
    """Whether the lifetime came from explicit headers or from heuristics. Informational only."""

    parsed_headers: Mapping[str, Any] = field(default_factory=dict)
    """Parsed response headers; a partial response carries a ContentRange under "content-range"."""

    alternate_keys: FrozenSet[AlternateKey] = frozenset()

    @property
    def content_range(self) -> Optional[ContentRange]:
        value = self.parsed_headers.get("content-range")
        return value if isinstance(value, ContentRange) else None

    def validate(self) -> None:
        """
        Reject metadata that breaks ``created <= expires <= grace``, or whose
        ``content-range`` is not a parsed ``ContentRange``.

        Raises:
            InvariantViolation: If the timestamps are out of order or the content range
                would be mistaken for a full response.
        """
        content_range = self.parsed_headers.get("content-range")
        if content_range is not None and not isinstance(content_range, ContentRange):
            raise InvariantViolation(
                f"Metadata `content-range` must be a ContentRange, got {type(content_range).__name__}."
            )
        if self.created > self.expires:
            raise InvariantViolation(
                f"Metadata `created` ({self.created}) is later than `expires` ({self.expires})."
            )
        if self.expires > self.grace:
            raise InvariantViolation(f"Metadata `expires` ({self.expires}) is later than `grace` ({self.grace}).")


@dataclass(frozen=True)
class FileBody:
    """A body kept outside of memory, on disk."""

    path: Path


Body: TypeAlias = Union[bytes, FileBody]


@dataclass(frozen=True)
class FileRef:
    """Reference to a response kept by a file store."""

    request_key: RequestKey
    id: str


@dataclass(frozen=True)
class Response:
    """An HTTP response as handed to a store."""

    status: int
    headers: Headers = field(default_factory=Headers)
    body: bytes = b""


@dataclass(frozen=True)
class StoredResponse:
    status: int
    headers: Headers
    body: Body
    metadata: ResponseMetadata


@dataclass(frozen=True)
class Candidate(Generic[RefT]):
    """
    Everything needed to match a stored response against a request, without its body.

    ``ref`` is only meaningful to the backend that produced it.
    """

    ref: RefT
    status: int
    headers: Headers
    vary_headers: VaryHeaders
    metadata: ResponseMetadata

    @property
    def is_partial(self) -> bool:
        return self.metadata.content_range is not None


@dataclass(frozen=True)
class InvalidationResult:
    count: Optional[int] = None
    """Number of invalidated responses, or None when the backend cannot tell."""


@dataclass(frozen=True)
class Resolution(Generic[RefT]):
    ref: RefT
    response: StoredResponse
    freshness: Freshness
    candidate: Candidate[RefT]

    @property
    def is_stale(self) -> bool:
        return self.freshness is Freshness.STALE
