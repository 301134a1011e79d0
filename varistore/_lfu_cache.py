from collections import OrderedDict
from typing import DefaultDict, Dict, Iterator, Optional, Tuple, TypeVar, Generic

K = TypeVar("K")
V = TypeVar("V")

__all__ = ["LFUCache"]


class LFUCache(Generic[K, V]):
    """
    Least-frequently-used mapping with a fixed capacity.

    Reading with ``peek`` does not count as a use; ``touch`` and ``get`` do.
    Within one frequency the oldest key is evicted first.
    """

    def __init__(self, capacity: int):
        if capacity <= 0:
            raise ValueError("Capacity must be positive")

        self.capacity = capacity
        self.cache: Dict[K, Tuple[V, int]] = {}
        self.freq_count: DefaultDict[int, "OrderedDict[K, None]"] = DefaultDict(OrderedDict)
        self.min_freq = 0

    def _bump(self, key: K) -> V:
        value, freq = self.cache[key]
        del self.freq_count[freq][key]
        if not self.freq_count[freq]:
            del self.freq_count[freq]
            if freq == self.min_freq:
                self.min_freq += 1
        freq += 1
        self.freq_count[freq][key] = None
        self.cache[key] = (value, freq)
        return value

    def peek(self, key: K) -> V:
        if key in self.cache:
            return self.cache[key][0]
        raise KeyError(f"Key {key} not found")

    def get(self, key: K) -> V:
        if key in self.cache:
            return self._bump(key)
        raise KeyError(f"Key {key} not found")

    def touch(self, key: K) -> bool:
        if key not in self.cache:
            return False
        self._bump(key)
        return True

    def put(self, key: K, value: V) -> Optional[Tuple[K, V]]:
        """
        Insert or replace ``key``.

        Returns:
            The key and value evicted to make room, if any.
        """
        if key in self.cache:
            _, freq = self.cache[key]
            self.cache[key] = (value, freq)
            self._bump(key)
            return None

        evicted: Optional[Tuple[K, V]] = None
        if len(self.cache) == self.capacity:
            evicted_key, _ = self.freq_count[self.min_freq].popitem(last=False)
            if not self.freq_count[self.min_freq]:
                del self.freq_count[self.min_freq]
            evicted_value, _ = self.cache.pop(evicted_key)
            evicted = (evicted_key, evicted_value)

        self.cache[key] = (value, 1)
        self.freq_count[1][key] = None
        self.min_freq = 1
        return evicted

    def remove_key(self, key: K) -> Optional[V]:
        if key not in self.cache:
            return None
        value, freq = self.cache.pop(key)
        del self.freq_count[freq][key]
        if not self.freq_count[freq]:
            del self.freq_count[freq]
            if freq == self.min_freq:
                self.min_freq = min(self.freq_count, default=0)
        return value

    def __contains__(self, key: object) -> bool:
        return key in self.cache

    def __len__(self) -> int:
        return len(self.cache)

    def __iter__(self) -> Iterator[K]:
        yield from self.cache
