"""Alias allocation: generate or validate a unique alias.

Random aliases need no counter or coordination state; the durable store is the
only thing consulted for uniqueness, and the unique index on links.alias settles
any race between two callers that pass this check at the same time.

Flow Diagram — allocate()
=========================
::
    ┌─────────────┐
    │ requested?   │
    └──────┬──────┘
    ┌──────┴───────────────┐
    │ YES                  │ NO
    ▼                      ▼
┌──────────┐         ┌──────────────┐
│ store    │         │ generate 6   │◄─────┐
│ lookup   │         │ chars (nanoid)│      │ taken and
└────┬─────┘         └──────┬───────┘      │ attempts left
 found? │                   ▼              │
 ┌──────┴──────┐     ┌──────────────┐      │
 │ YES         │ NO  │ store lookup ├──────┘
 ▼             ▼     └──────┬───────┘
Conflict   return           │ free
           requested        ▼
                        return candidate

    attempts exhausted ──► AliasSpaceExhaustedError

Key Behaviours
===============
- 62^6 (~56 billion) candidates make a collision rare; the bounded loop absorbs it.
- Existence is always checked against the store, never the cache.
- Store errors other than "not found" propagate immediately.

Functions:
    generate_alias():  Random alias of the configured length.

Classes:
    AliasAllocator:  Generates or validates aliases against the store.
"""

import logging
from typing import Optional, Protocol

from nanoid import generate
from prometheus_client import Counter

from shortlink.exceptions import AliasConflictError, AliasNotFoundError, AliasSpaceExhaustedError
from shortlink.schemas import LinkRecord

__all__ = ["ALPHABET", "DEFAULT_ALIAS_LENGTH", "generate_alias", "AliasAllocator"]

ALPHABET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789"
DEFAULT_ALIAS_LENGTH = 6
DEFAULT_MAX_ATTEMPTS = 10

ALIAS_COLLISIONS_TOTAL = Counter(
    "shortlink_alias_collisions_total",
    "Generated alias candidates that were already taken",
)


class LinkLookup(Protocol):
    async def get_link_by_alias(self, alias: str) -> LinkRecord: ...


def generate_alias(length: int = DEFAULT_ALIAS_LENGTH) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    return generate(ALPHABET, length)


class AliasAllocator:
    def __init__(
        self,
        links: LinkLookup,
        length: int = DEFAULT_ALIAS_LENGTH,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        logger: Optional[logging.Logger | logging.LoggerAdapter] = None,
    ):
        assert max_attempts > 0, f"max_attempts must be positive, got {max_attempts!r}"
        self._links = links
        self._length = length
        self._max_attempts = max_attempts
        self._logger = logger or logging.getLogger("shortlink")

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def allocate(self, requested_alias: Optional[str] = None) -> str:
        """Return an alias that is free in the store at the time of the check.

        Raises:
            AliasConflictError: ``requested_alias`` is already taken.
            AliasSpaceExhaustedError: No free candidate within ``max_attempts``.
            StoreUnavailableError: The store could not answer.
        """
        if requested_alias:
            if await self._exists(requested_alias):
                raise AliasConflictError(requested_alias)
            return requested_alias

        for attempt in range(1, self._max_attempts + 1):
            candidate = generate_alias(self._length)
            if not await self._exists(candidate):
                return candidate
            ALIAS_COLLISIONS_TOTAL.inc()
            self._logger.info(f"Generated alias collision on attempt {attempt}: {candidate}")

        self._logger.error(f"Alias allocation gave up after {self._max_attempts} attempts")
        raise AliasSpaceExhaustedError(self._max_attempts)

    async def _exists(self, alias: str) -> bool:
        try:
            await self._links.get_link_by_alias(alias)
        except AliasNotFoundError:
            return False
        return True
