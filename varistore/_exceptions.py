from __future__ import annotations

__all__ = (
    "CacheStoreError",
    "BackendFailure",
    "UnsupportedCapability",
    "InvariantViolation",
    "ParseError",
)


class CacheStoreError(Exception): ...


class BackendFailure(CacheStoreError):
    """
    A backend operation failed (I/O error, backend unavailable, ...).

    The reason is opaque to the core; the original exception, if any, is chained.
    """

    def __init__(self, operation: str, reason: object) -> None:
        super().__init__(f"Backend operation `{operation}` failed: {reason}")
        self.operation = operation
        self.reason = reason


class UnsupportedCapability(CacheStoreError):
    def __init__(self, capability: str, backend: object) -> None:
        super().__init__(f"`{type(backend).__name__}` does not support `{capability}`.")
        self.capability = capability
        self.backend = backend


class InvariantViolation(CacheStoreError, ValueError): ...


class ParseError(CacheStoreError, ValueError): ...
