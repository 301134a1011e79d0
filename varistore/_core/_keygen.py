from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Dict, Generator, Iterable, Mapping, Optional, Union

from varistore._core._headers import Headers
from varistore._core.models import RequestKey, UrlDigest

__all__ = ("KeyGen", "HashKeyGen", "vary_headers_for")


class KeyGen(ABC):
    @abstractmethod
    def decoder(self) -> Generator[None, Optional[bytes], bytes]: ...

    def _digest(self, *parts: bytes) -> str:
        decoder = self.decoder()
        next(decoder)
        for part in parts:
            # Length prefixes keep ("ab", "c") and ("a", "bc") apart.
            decoder.send(len(part).to_bytes(8, "big"))
            decoder.send(part)
        try:
            decoder.send(None)
        except StopIteration as exc:
            return exc.value.hex()  # type: ignore[no-any-return]
        raise RuntimeError("Key decoder did not finish")

    def request_key(
        self,
        method: str,
        url: str,
        body: bytes = b"",
        bucket: Optional[Union[str, bytes]] = None,
    ) -> RequestKey:
        """
        Compute the key shared by every response stored for this method, URL, body and bucket.

        Vary headers and ranges are deliberately not part of the key.
        """
        if isinstance(bucket, str):
            bucket = bucket.encode("utf-8")
        return self._digest(
            method.upper().encode("ascii"),
            url.encode("utf-8"),
            body,
            b"" if bucket is None else b"\x01" + bucket,
        )

    def url_digest(self, url: str) -> UrlDigest:
        return self._digest(url.encode("utf-8"))


class HashKeyGen(KeyGen):
    def __init__(self, algorithm: str = "sha256") -> None:
        self.algorithm = algorithm

    def decoder(self) -> Generator[None, Optional[bytes], bytes]:
        hasher = hashlib.new(self.algorithm)
        while True:
            chunk = yield None
            if chunk is None:
                break
            hasher.update(chunk)

        return hasher.digest()


def vary_headers_for(
    vary_names: Iterable[str],
    request_headers: Union[Headers, Mapping[str, str]],
) -> Dict[str, Optional[str]]:
    """
    Capture the request's values for the headers a response varies on.

    Names are lower-cased, repeated values are combined with ", " and surrounding
    whitespace is stripped. Headers missing from the request map to None.

    >>> vary_headers_for(["Accept-Encoding", "Accept"], {"accept-encoding": " gzip "})
    {'accept-encoding': 'gzip', 'accept': None}
    """
    headers = request_headers if isinstance(request_headers, Headers) else Headers(dict(request_headers))
    result: Dict[str, Optional[str]] = {}
    for name in vary_names:
        name = name.strip().lower()
        if not name:
            continue
        values = headers.get_list(name)
        result[name] = None if values is None else ", ".join(value.strip() for value in values)
    return result
