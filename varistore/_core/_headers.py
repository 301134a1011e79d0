from __future__ import annotations

from typing import (
    Any,
    Iterable,
    Iterator,
    List,
    Mapping,
    MutableMapping,
    NamedTuple,
    Optional,
    Tuple,
    Union,
)

from varistore._exceptions import ParseError

__all__ = (
    "Headers",
    "ByteRange",
    "ContentRange",
    "CacheControl",
    "parse_vary",
    "parse_range",
    "parse_content_range",
    "parse_cache_control",
)

# Cap for delta-seconds values, see RFC 9111 Section 1.2.2
MAX_DELTA_SECONDS = 2147483648


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive multi-valued header mapping.

    Names are stored lower-cased; each name keeps every value it was given, in order.
    Reading a name joins its values with ", " as allowed by RFC 9110 Section 5.3.
    """

    def __init__(
        self,
        headers: Union[Mapping[str, Union[str, List[str]]], Iterable[Tuple[str, str]], None] = None,
    ) -> None:
        self._headers: dict[str, List[str]] = {}
        if headers is None:
            return
        items = headers.items() if isinstance(headers, Mapping) else headers
        for key, value in items:
            values = [value] if isinstance(value, str) else list(value)
            self._headers.setdefault(key.lower(), []).extend(values)

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.lower(), None)

    def raw(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, values in self._headers.items() for value in values]

    def copy(self) -> "Headers":
        return Headers(self._headers)

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._headers.setdefault(key.lower(), []).append(value)

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return f"Headers({self._headers!r})"

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers


def parse_vary(vary_value: Optional[str]) -> List[str]:
    """
    Split a Vary field value into lower-cased field names.

    >>> parse_vary("Accept-Encoding, Accept-Language")
    ['accept-encoding', 'accept-language']
    >>> parse_vary(None)
    []
    """
    if not vary_value:
        return []
    return [name.strip().lower() for name in vary_value.split(",") if name.strip()]


class ByteRange(NamedTuple):
    """
    A single requested byte range, as in `Range: bytes=<start>-<end>`.

    Both bounds are inclusive. ``start=None`` is a suffix range (the last ``end``
    bytes) and ``end=None`` is an open-ended range.
    """

    start: Optional[int]
    end: Optional[int]

    def resolve(self, length: Optional[int]) -> Optional[Tuple[int, int]]:
        """
        Turn the range into concrete inclusive offsets for a resource of ``length`` bytes.

        Returns None when that is impossible, e.g. an open-ended range against an
        unknown length.
        """
        if self.start is None:
            if length is None or not self.end:
                return None
            return max(0, length - self.end), length - 1
        if length is not None and self.start >= length:
            return None
        if self.end is None:
            if length is None:
                return None
            return self.start, length - 1
        if length is not None:
            return self.start, min(self.end, length - 1)
        return self.start, self.end


class ContentRange(NamedTuple):
    """A stored `Content-Range: bytes <start>-<end>/<length>`; length is None for `*`."""

    start: int
    end: int
    length: Optional[int]

    def covers(self, requested: ByteRange) -> bool:
        resolved = requested.resolve(self.length)
        if resolved is None:
            return False
        first, last = resolved
        return self.start <= first and last <= self.end


def _parse_position(value: str, header: str) -> Optional[int]:
    value = value.strip()
    if not value:
        return None
    if not value.isdigit():
        raise ParseError(f"Invalid byte position {value!r} in the {header} header.")
    return int(value)


def parse_range(range_header: Optional[str]) -> Optional[ByteRange]:
    """
    Parse a `Range` request header.

    Only a single `bytes` range is supported; multipart ranges and other units
    return None, which callers treat as "no range requested".
    """
    if not range_header:
        return None

    unit, sep, ranges = range_header.partition("=")
    if not sep:
        raise ParseError(f"Invalid Range header: {range_header!r}")
    if unit.strip().lower() != "bytes":
        return None

    parts = [part.strip() for part in ranges.split(",")]
    if len(parts) != 1:
        # we don't support multiple ranges
        return None

    start_str, sep, end_str = parts[0].partition("-")
    if not sep:
        raise ParseError(f"Invalid range part: {parts[0]!r}")

    start = _parse_position(start_str, "Range")
    end = _parse_position(end_str, "Range")

    if start is None and end is None:
        raise ParseError(f"Invalid range part: {parts[0]!r}")
    if start is not None and end is not None and end < start:
        raise ParseError(f"Range end precedes its start: {parts[0]!r}")
    return ByteRange(start, end)


def parse_content_range(content_range: Optional[str]) -> Optional[ContentRange]:
    """
    Parse a `Content-Range` response header.

    >>> parse_content_range("bytes 0-999/2000")
    ContentRange(start=0, end=999, length=2000)
    >>> parse_content_range("bytes 0-999/*")
    ContentRange(start=0, end=999, length=None)

    An unsatisfied range (`bytes */2000`) describes no stored bytes and yields None.
    """
    if not content_range:
        return None

    unit, _, rest = content_range.strip().partition(" ")
    if unit.lower() != "bytes":
        raise ParseError(f"Unsupported Content-Range unit: {unit!r}")

    range_part, sep, length_part = rest.strip().partition("/")
    if not sep:
        raise ParseError(f"Invalid Content-Range header: {content_range!r}")
    if range_part.strip() == "*":
        return None

    start_str, sep, end_str = range_part.partition("-")
    start = _parse_position(start_str, "Content-Range")
    end = _parse_position(end_str, "Content-Range")
    if not sep or start is None or end is None or end < start:
        raise ParseError(f"Invalid Content-Range header: {content_range!r}")

    length = None if length_part.strip() == "*" else _parse_position(length_part, "Content-Range")
    if length is not None and end >= length:
        raise ParseError(f"Content-Range exceeds the complete length: {content_range!r}")
    return ContentRange(start, end, length)


class CacheControl:
    """
    Cache-Control directives that affect how long a stored response may be used.

    Directives this package has no use for end up in ``extensions``.
    """

    def __init__(self) -> None:
        self.max_age: Optional[int] = None
        self.s_maxage: Optional[int] = None
        self.no_store: bool = False
        self.no_cache: Union[bool, List[str]] = False
        self.private: Union[bool, List[str]] = False
        self.public: bool = False
        self.must_revalidate: bool = False
        self.proxy_revalidate: bool = False
        self.immutable: bool = False

        # RFC 5861
        self.stale_while_revalidate: Optional[int] = None
        self.stale_if_error: Optional[int] = None

        self.extensions: List[str] = []

    def __repr__(self) -> str:
        fields = ", ".join(f"{key}={value!r}" for key, value in vars(self).items() if value not in (None, False, []))
        return f"<{type(self).__name__} {fields}>"


_DELTA_SECONDS_DIRECTIVES = {
    "max-age": "max_age",
    "s-maxage": "s_maxage",
    "stale-while-revalidate": "stale_while_revalidate",
    "stale-if-error": "stale_if_error",
}

_BOOLEAN_DIRECTIVES = {
    "no-store": "no_store",
    "public": "public",
    "must-revalidate": "must_revalidate",
    "proxy-revalidate": "proxy_revalidate",
    "immutable": "immutable",
}


def _split_directives(value: str) -> Iterator[str]:
    """Split on commas that are not inside a quoted string."""
    current = ""
    quoted = False
    escaped = False
    for char in value:
        if escaped:
            current += char
            escaped = False
        elif char == "\\" and quoted:
            current += char
            escaped = True
        elif char == '"':
            current += char
            quoted = not quoted
        elif char == "," and not quoted:
            yield current
            current = ""
        else:
            current += char
    yield current


def _parse_delta_seconds(value: str) -> Optional[int]:
    try:
        seconds = int(value)
    except ValueError:
        return None
    return min(seconds, MAX_DELTA_SECONDS) if seconds >= 0 else None


def parse_cache_control(value: Optional[str]) -> CacheControl:
    """
    Parse a Cache-Control header value.

    Invalid directives are ignored rather than rejected, so a single broken
    directive never makes the whole response uncacheable.

    >>> cc = parse_cache_control('max-age=60, stale-while-revalidate=30, no-cache="Set-Cookie"')
    >>> cc.max_age, cc.stale_while_revalidate, cc.no_cache
    (60, 30, ['set-cookie'])
    """
    cc = CacheControl()
    if not value:
        return cc

    for directive in _split_directives(value):
        name, sep, argument = directive.strip().partition("=")
        name = name.strip().lower()
        if not name:
            continue
        argument = argument.strip()
        if argument.startswith('"') and argument.endswith('"') and len(argument) >= 2:
            argument = argument[1:-1]

        if name in _DELTA_SECONDS_DIRECTIVES:
            setattr(cc, _DELTA_SECONDS_DIRECTIVES[name], _parse_delta_seconds(argument) if sep else None)
        elif name in _BOOLEAN_DIRECTIVES:
            setattr(cc, _BOOLEAN_DIRECTIVES[name], True)
        elif name in ("no-cache", "private"):
            field_names = parse_vary(argument) if sep else []
            setattr(cc, name.replace("-", "_"), field_names or True)
        else:
            cc.extensions.append(directive.strip())
    return cc
