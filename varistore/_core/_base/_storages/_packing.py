from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

import msgpack
from typing_extensions import cast

from varistore._core._headers import ContentRange, Headers
from varistore._core.models import ResponseMetadata, TTLSource, VaryHeaders

__all__ = ("pack_record", "unpack_record", "pack_alternate_key")

_CONTENT_RANGE_EXT = 1


def _default(value: Any) -> Any:
    if isinstance(value, ContentRange):
        return msgpack.ExtType(
            _CONTENT_RANGE_EXT,
            cast(bytes, msgpack.packb([value.start, value.end, value.length])),
        )
    if isinstance(value, tuple):
        return list(value)
    raise TypeError(f"Cannot pack {type(value).__name__} into a cache record")


def _ext_hook(code: int, data: bytes) -> Any:
    if code == _CONTENT_RANGE_EXT:
        start, end, length = msgpack.unpackb(data)
        return ContentRange(start, end, length)
    return msgpack.ExtType(code, data)


def pack_alternate_key(key: Any) -> bytes:
    """Encode an alternate key so that 42 and "42" stay distinct in a database column."""
    return cast(bytes, msgpack.packb(key))


def pack_record(
    status: int,
    headers: Headers,
    vary_headers: VaryHeaders,
    metadata: ResponseMetadata,
    extra: Optional[Mapping[str, Any]] = None,
) -> bytes:
    # ContentRange is a tuple subclass; `strict_types` routes it (and plain tuples)
    # through `_default` instead of packing it as an array.
    return cast(
        bytes,
        msgpack.packb(
            {
                "status": status,
                "headers": [[key, header_value] for key, header_value in headers.raw()],
                "vary": dict(vary_headers),
                "metadata": {
                    "created": metadata.created,
                    "expires": metadata.expires,
                    "grace": metadata.grace,
                    "ttl_set_by": metadata.ttl_set_by.value,
                    "parsed_headers": dict(metadata.parsed_headers),
                    "alternate_keys": list(metadata.alternate_keys),
                },
                "extra": dict(extra or {}),
            },
            default=_default,
            strict_types=True,
        ),
    )


def unpack_record(value: bytes) -> Tuple[int, Headers, Dict[str, Optional[str]], ResponseMetadata, Dict[str, Any]]:
    data = msgpack.unpackb(value, ext_hook=_ext_hook)
    meta = data["metadata"]
    metadata = ResponseMetadata(
        created=meta["created"],
        expires=meta["expires"],
        grace=meta["grace"],
        ttl_set_by=TTLSource(meta["ttl_set_by"]),
        parsed_headers=meta["parsed_headers"],
        alternate_keys=frozenset(meta["alternate_keys"]),
    )
    return (
        data["status"],
        Headers([(key, header_value) for key, header_value in data["headers"]]),
        data["vary"],
        metadata,
        data["extra"],
    )
