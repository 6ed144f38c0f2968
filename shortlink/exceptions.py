"""Error taxonomy for the shortlink core.

Hierarchy
=========
::
    ShortlinkError
    ├─ AliasConflictError        requested alias already taken (HTTP 409)
    ├─ AliasNotFoundError        no link stored under the alias (HTTP 404)
    ├─ AliasSpaceExhaustedError  allocator gave up after its attempt bound (HTTP 500)
    ├─ StoreUnavailableError     durable store failed or timed out (HTTP 500)
    ├─ SerializationError        cached payload could not be decoded (HTTP 500)
    └─ CacheError
       ├─ CacheMissError         key absent from the cache
       └─ CacheUnavailableError  cache retries exhausted

Cache errors never leave the core: reads fall back to the store and writes are
logged and dropped. Everything else propagates to the caller.
"""

__all__ = [
    "ShortlinkError",
    "AliasConflictError",
    "AliasNotFoundError",
    "AliasSpaceExhaustedError",
    "StoreUnavailableError",
    "SerializationError",
    "CacheError",
    "CacheMissError",
    "CacheUnavailableError",
]


class ShortlinkError(Exception):
    """Generic base class for shortlink exceptions."""

    error_code = "shortlink:error"


class AliasConflictError(ShortlinkError):
    """Raised when a requested alias is already assigned to another link."""

    error_code = "shortlink:alias_conflict"

    def __init__(self, alias: str):
        super().__init__(f"Alias '{alias}' is already taken")
        self.alias = alias


class AliasNotFoundError(ShortlinkError):
    """Raised when no link is stored under an alias."""

    error_code = "shortlink:alias_not_found"

    def __init__(self, alias: str):
        super().__init__(f"Alias '{alias}' not found")
        self.alias = alias


class AliasSpaceExhaustedError(ShortlinkError):
    """Raised when no unused alias was found within the allowed attempts."""

    error_code = "shortlink:alias_space_exhausted"

    def __init__(self, attempts: int):
        super().__init__(f"No free alias found after {attempts} attempts")
        self.attempts = attempts


class StoreUnavailableError(ShortlinkError):
    """Raised when the durable store encounters an error.

    Examples include connection issues, timeouts, and constraint failures
    other than alias uniqueness.
    """

    error_code = "shortlink:store_unavailable"


class SerializationError(ShortlinkError):
    """Raised when a cached payload is not a valid serialized value."""

    error_code = "shortlink:serialization_error"


class CacheError(ShortlinkError):
    """Base class for cache adapter errors."""

    error_code = "shortlink:cache_error"


class CacheMissError(CacheError):
    """Raised when a requested cache entry is missing."""

    error_code = "shortlink:cache_miss"


class CacheUnavailableError(CacheError):
    """Raised when a cache operation still fails after the retry strategy."""

    error_code = "shortlink:cache_unavailable"
