"""Website domain lookup behind a read-through cache.

the cache itself (ttl, stale-while-revalidate, single-flight) is
infrastructure and lives outside this package - anything that implements
CacheProvider can be plugged in. PassthroughCache is the no-cache default.
"""

import logging
from collections.abc import Callable
from typing import Protocol, TypeVar

T = TypeVar("T")

logger = logging.getLogger(__name__)

DOMAIN_CACHE_PREFIX = "website-domain"


class CacheProvider(Protocol):
    def get_or_compute(
        self, key: str, ttl_seconds: int, stale_seconds: int, compute: Callable[[], T]
    ) -> T: ...


class PassthroughCache:
    """Computes every time. used when no cache backend is configured."""

    def get_or_compute(
        self, key: str, ttl_seconds: int, stale_seconds: int, compute: Callable[[], T]
    ) -> T:
        return compute()


class DomainResolver:
    """Resolves a website id to its domain, e.g. to drop self-referrals.

    lookup is whatever reads the website store; it returns None for unknown
    websites. lookup failures resolve to None so a missing domain never fails a
    query - the referrer exclusion is simply skipped.
    """

    def __init__(
        self,
        lookup: Callable[[str], str | None],
        cache: CacheProvider | None = None,
        ttl_seconds: int = 300,
        stale_seconds: int = 60,
    ) -> None:
        self.lookup = lookup
        self.cache = cache or PassthroughCache()
        self.ttl_seconds = ttl_seconds
        self.stale_seconds = stale_seconds

    def resolve(self, website_id: str) -> str | None:
        return self.cache.get_or_compute(
            f"{DOMAIN_CACHE_PREFIX}:{website_id}",
            self.ttl_seconds,
            self.stale_seconds,
            lambda: self._lookup(website_id),
        )

    def _lookup(self, website_id: str) -> str | None:
        try:
            return self.lookup(website_id)
        except Exception:
            logger.exception("Error fetching website domain for %s", website_id)
            return None


def static_domains(domains: dict[str, str]) -> Callable[[str], str | None]:
    """Lookup backed by a fixed mapping - handy for the cli and tests."""
    return domains.get
