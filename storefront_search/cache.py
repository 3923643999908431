"""
Time-bounded cache of the candidate product corpus.

Holds the last complete catalog snapshot and the time it was fetched.
A read within the TTL returns the snapshot as-is; an older (or missing,
or invalidated) snapshot triggers one full synchronous refresh. One
ProductCache is built per process and passed to the search engine.

Refresh policy:
    - Concurrent readers that find the snapshot stale wait on a single
      in-flight refresh and then read its result.
    - Snapshot and timestamp are replaced together as one tuple, so a
      reader never sees products from one refresh with the age of another.
    - If a refresh fails and an older snapshot exists, the older snapshot
      is served (and a warning logged). The timestamp is not advanced,
      so the next read retries. Without a previous snapshot the
      CatalogFetchError propagates.
    - Readers that queued behind a failed refresh get that refresh's
      outcome (stale snapshot or the same error) rather than retrying
      one after another.
    - invalidate() bumps a generation counter. A refresh that started
      before the invalidation does not count as fresh when it lands.
"""

import os
import time
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

from .catalog import ProductRecord
from .errors import CatalogFetchError

logger = logging.getLogger(__name__)

CACHE_TTL = float(os.environ.get("CATALOG_CACHE_TTL", "1800"))

Loader = Callable[[], Awaitable[List[ProductRecord]]]


class ProductCache:
    """
    Args:
        loader: Coroutine function returning the full product corpus,
                e.g. StorefrontCatalog.fetch_all.
        ttl: Maximum snapshot age in seconds.
        clock: Monotonic time source, injectable for tests.
        serve_stale: Serve the previous snapshot when a refresh fails.
    """

    def __init__(self,
                 loader: Loader,
                 ttl: float = CACHE_TTL,
                 clock: Callable[[], float] = time.monotonic,
                 serve_stale: bool = True):
        self._loader = loader
        self.ttl = ttl
        self._clock = clock
        self.serve_stale = serve_stale
        # (products, refreshed_at, generation the load started in)
        self._snapshot: Optional[Tuple[Tuple[ProductRecord, ...], float, int]] = None
        self._generation = 0
        self._attempts = 0
        self._last_error: Optional[CatalogFetchError] = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._snapshot is None or self._snapshot[2] != self._generation:
            return False
        return self._clock() - self._snapshot[1] <= self.ttl

    async def get(self) -> Sequence[ProductRecord]:
        """
        Return the cached product corpus, refreshing it first if stale.

        Raises:
            CatalogFetchError: If a refresh fails and no usable
                snapshot exists (or serve_stale is off).
        """
        if self._is_fresh():
            return self._snapshot[0]

        attempts = self._attempts
        async with self._lock:
            # Another caller may have refreshed while we waited
            if self._is_fresh():
                return self._snapshot[0]
            # ...or failed to; share its outcome instead of retrying
            if self._attempts != attempts and self._last_error is not None:
                return self._fallback(self._last_error)
            return await self._refresh()

    async def _refresh(self) -> Sequence[ProductRecord]:
        generation = self._generation
        try:
            products = await self._loader()
        except CatalogFetchError as e:
            self._last_error = e
            return self._fallback(e)
        finally:
            self._attempts += 1

        products = tuple(products)
        self._snapshot = (products, self._clock(), generation)
        self._last_error = None
        logger.info(f"Catalog cache refreshed: {len(products)} products")
        return products

    def _fallback(self, error: CatalogFetchError) -> Sequence[ProductRecord]:
        previous = self._snapshot
        if previous is None or not self.serve_stale:
            logger.error(f"Catalog refresh failed: {error}")
            raise error
        logger.warning(
            f"Catalog refresh failed, serving {len(previous[0])} cached "
            f"products ({self._clock() - previous[1]:.0f}s old): {error}"
        )
        return previous[0]

    def invalidate(self) -> None:
        """Force the next get() to refresh from upstream, even mid-refresh."""
        self._generation += 1
        logger.info("Catalog cache invalidated")

    @property
    def age(self) -> Optional[float]:
        """Seconds since the last completed refresh, or None if never refreshed."""
        if self._snapshot is None:
            return None
        return self._clock() - self._snapshot[1]
