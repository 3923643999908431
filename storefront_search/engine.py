"""
Product search engine.

Accepts either a text query or an uploaded image:

    text   → upstream catalog search (relevance order) → optional local
             re-sort by price or title
    image  → decode → optional moderation → dominant colors → score every
             cached catalog product → rank → top N

Each candidate is scored independently. If its image is missing, times
out, or cannot be decoded, that candidate falls back to title matching;
one bad image never fails the request.
"""

import os
import asyncio
import logging
from typing import Iterable, List, Optional, Sequence, Tuple

from .cache import ProductCache
from .catalog import ProductRecord, SortOrder, StorefrontCatalog, TEXT_RESULT_LIMIT, sort_products
from .config import Settings
from .errors import ImageDecodeError, NetworkError, UsageError
from .fetcher import ImageFetcher, FETCH_TIMEOUT
from .histograms import ColorBucket, ImageFeatureSet, extract_color_buckets, extract_features
from .moderation import (
    ContentModerator, DEFAULT_DISALLOWED_LABELS, MODERATION_THRESHOLD, screen_image,
)
from .preprocessing import decode_image, write_thumbnail
from .scoring import IMAGE_RESULT_LIMIT, MatchResult, compute_match_score, rank_results

logger = logging.getLogger(__name__)

# Maximum candidate image downloads in flight per request
FETCH_CONCURRENCY = int(os.environ.get("IMAGE_FETCH_CONCURRENCY", "6"))


class SearchEngine:
    """
    Text and image product search over a storefront catalog.

    Args:
        catalog: Storefront client used for text search.
        cache: Candidate corpus for image search.
        fetcher: Downloads candidate images.
        moderator: Optional content classifier for uploads.
        thumbnail_dir: Directory for query thumbnails; None disables them.
        fetch_timeout: Per-image download timeout in seconds.
        concurrency: Maximum simultaneous image downloads.
        text_limit: Products requested for a text search.
        image_limit: Results kept after ranking an image search.
        disallowed_labels: Moderation labels that reject an upload.
        moderation_threshold: Probability above which a label rejects.
    """

    def __init__(self,
                 catalog: StorefrontCatalog,
                 cache: ProductCache,
                 fetcher: ImageFetcher,
                 moderator: Optional[ContentModerator] = None,
                 thumbnail_dir: Optional[str] = None,
                 fetch_timeout: float = FETCH_TIMEOUT,
                 concurrency: int = FETCH_CONCURRENCY,
                 text_limit: int = TEXT_RESULT_LIMIT,
                 image_limit: int = IMAGE_RESULT_LIMIT,
                 disallowed_labels: Iterable[str] = DEFAULT_DISALLOWED_LABELS,
                 moderation_threshold: float = MODERATION_THRESHOLD):
        self.catalog = catalog
        self.cache = cache
        self.fetcher = fetcher
        self.moderator = moderator
        self.thumbnail_dir = thumbnail_dir
        self.fetch_timeout = fetch_timeout
        self.concurrency = max(1, concurrency)
        self.text_limit = text_limit
        self.image_limit = image_limit
        self.disallowed_labels = tuple(disallowed_labels)
        self.moderation_threshold = moderation_threshold

    @classmethod
    def from_settings(cls,
                      settings: Settings,
                      moderator: Optional[ContentModerator] = None) -> "SearchEngine":
        """Wire a catalog client, cache and fetcher from Settings."""
        catalog = StorefrontCatalog(
            domain=settings.store_domain,
            access_token=settings.access_token,
            api_version=settings.api_version,
            page_size=settings.page_size,
            page_delay=settings.page_delay,
        )
        return cls(
            catalog=catalog,
            cache=ProductCache(catalog.fetch_all, ttl=settings.cache_ttl),
            fetcher=ImageFetcher(timeout=settings.fetch_timeout),
            moderator=moderator,
            thumbnail_dir=settings.thumbnail_dir,
            fetch_timeout=settings.fetch_timeout,
            concurrency=settings.fetch_concurrency,
            text_limit=settings.text_limit,
            image_limit=settings.image_limit,
            disallowed_labels=settings.disallowed_labels,
            moderation_threshold=settings.moderation_threshold,
        )

    async def close(self) -> None:
        await self.fetcher.close()

    def invalidate_cache(self) -> None:
        """Make the next image search refetch the catalog."""
        self.cache.invalidate()

    async def search(self,
                     query: Optional[str] = None,
                     image: Optional[bytes] = None,
                     sort: SortOrder = SortOrder.RELEVANCE) -> List[MatchResult]:
        """
        Search by text or by image (exactly one of them).

        Args:
            query: Free-text query.
            image: Raw uploaded image bytes.
            sort: Ordering for text results; ignored for image search,
                  whose results are ordered by match score.

        Returns:
            Ordered MatchResult list. Image results carry a match score.

        Raises:
            UsageError: If neither or both inputs are given.
            ImageDecodeError: If the uploaded image is unreadable.
            ModerationRejection: If the upload is disallowed content.
            CatalogFetchError: If the catalog is unavailable (and, for
                image search, no cached corpus exists).
        """
        query = (query or "").strip()
        if query and image:
            raise UsageError("Provide either a text query or an image, not both")
        if query:
            return await self.search_text(query, sort)
        if image:
            return await self.search_image(image)
        raise UsageError("No text or image provided for search")

    async def search_text(self, query: str, sort: SortOrder = SortOrder.RELEVANCE) -> List[MatchResult]:
        products = await self.catalog.search(query, first=self.text_limit)
        return [MatchResult(product=p) for p in sort_products(products, sort)]

    async def search_image(self, image: bytes) -> List[MatchResult]:
        image_np = decode_image(image)
        await screen_image(self.moderator, image_np,
                           self.disallowed_labels, self.moderation_threshold)

        features = extract_features(image_np, thumbnail=self._write_thumbnail(image_np))
        logger.info(
            f"Query image {features.width}x{features.height}, dominant colors: "
            f"{[(c.rgb, round(c.percentage, 1)) for c in features.colors]}"
        )

        candidates = await self.cache.get()
        return await self.rank(features, candidates)

    async def rank(self,
                   features: ImageFeatureSet,
                   candidates: Sequence[ProductRecord]) -> List[MatchResult]:
        """
        Score every candidate against the query colors, then sort and truncate.

        Downloads run concurrently up to the concurrency limit. Scores are
        collected by candidate position, so the ranking is the same for
        any download completion order.
        """
        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [asyncio.ensure_future(self._candidate_colors(p, semaphore)) for p in candidates]
        try:
            candidate_colors = await asyncio.gather(*tasks)
        except BaseException:
            # Unexpected failure in one candidate: stop the other downloads
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        results = [
            MatchResult(product=p,
                        match_score=compute_match_score(features.colors, p.title, colors))
            for p, colors in zip(candidates, candidate_colors)
        ]

        visual = sum(1 for c in candidate_colors if c is not None)
        ranked = rank_results(results, self.image_limit)
        logger.info(
            f"Image search complete: {len(candidates)} candidates "
            f"({visual} compared visually) → {len(ranked)} results"
        )
        return ranked

    async def _candidate_colors(self,
                                product: ProductRecord,
                                semaphore: asyncio.Semaphore) -> Optional[Tuple[ColorBucket, ...]]:
        """Dominant colors of a candidate's image, or None to use the lexical fallback."""
        if not product.image_url:
            return None

        try:
            async with semaphore:
                data = await self.fetcher.fetch(product.image_url, timeout=self.fetch_timeout)
            return extract_color_buckets(decode_image(data))
        except (NetworkError, ImageDecodeError, asyncio.TimeoutError) as e:
            logger.warning(f"Image unavailable for product {product.id}, using title match: {e!r}")
            return None

    def _write_thumbnail(self, image_np) -> Optional[str]:
        if not self.thumbnail_dir:
            return None
        try:
            return write_thumbnail(image_np, self.thumbnail_dir)
        except OSError as e:
            logger.warning(f"Could not write query thumbnail: {e}")
            return None
