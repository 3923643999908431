"""
Storefront catalog client.

Reads the product listing from the storefront GraphQL API. Two access
patterns are supported:

    search()      one page of products matching a text query, in the
                  upstream relevance order
    iter_pages()  the whole active catalog as a lazy, finite sequence of
                  product batches, following continuation cursors with
                  a short pause between pages to respect rate limits

All transport and payload problems surface as CatalogFetchError.
"""

import os
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Dict, List, Optional

import aiohttp

from .errors import CatalogFetchError

logger = logging.getLogger(__name__)

API_VERSION = os.environ.get("SHOPIFY_API_VERSION", "2024-07")
PAGE_SIZE = int(os.environ.get("CATALOG_PAGE_SIZE", "50"))
PAGE_DELAY = float(os.environ.get("CATALOG_PAGE_DELAY", "0.25"))
REQUEST_TIMEOUT = float(os.environ.get("CATALOG_REQUEST_TIMEOUT", "15"))
TEXT_RESULT_LIMIT = int(os.environ.get("TEXT_RESULT_LIMIT", "12"))

# Upper bound on pages per full fetch, in case upstream never clears hasNextPage
MAX_PAGES = int(os.environ.get("CATALOG_MAX_PAGES", "200"))

PRODUCTS_QUERY = """
query($query: String, $first: Int!, $after: String, $sortKey: ProductSortKeys) {
  products(query: $query, first: $first, after: $after, sortKey: $sortKey) {
    edges {
      node {
        id
        title
        descriptionHtml
        handle
        featuredImage { url altText }
        variants(first: 1) {
          edges {
            node {
              price { amount currencyCode }
            }
          }
        }
      }
    }
    pageInfo { hasNextPage endCursor }
  }
}
"""


class SortOrder(str, Enum):
    """Result ordering for text search."""

    RELEVANCE = "relevance"
    PRICE_ASC = "price-asc"
    PRICE_DESC = "price-desc"
    TITLE_ASC = "title-asc"
    TITLE_DESC = "title-desc"


@dataclass(frozen=True)
class ProductRecord:
    id: str
    title: str
    url: str
    image_url: Optional[str]
    price: Optional[float]
    currency: str
    description: Optional[str] = None


@dataclass
class CatalogPage:
    products: List[ProductRecord] = field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class StorefrontCatalog:
    """
    GraphQL client for the storefront product listing.

    Args:
        domain: Store domain, e.g. "my-shop.myshopify.com".
        access_token: Storefront API access token.
        api_version: Storefront API version segment of the endpoint.
        page_size: Products requested per page on full fetches.
        page_delay: Seconds to wait between consecutive page requests.
        timeout: Total timeout per HTTP request in seconds.
    """

    def __init__(self,
                 domain: str,
                 access_token: str,
                 api_version: str = API_VERSION,
                 page_size: int = PAGE_SIZE,
                 page_delay: float = PAGE_DELAY,
                 timeout: float = REQUEST_TIMEOUT):
        self.domain = domain
        self.api_version = api_version
        self.page_size = page_size
        self.page_delay = page_delay
        self.timeout = timeout
        self._headers = {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": access_token,
        }

    @property
    def endpoint(self) -> str:
        return f"https://{self.domain}/api/{self.api_version}/graphql.json"

    async def fetch_page(self,
                         cursor: Optional[str] = None,
                         query: Optional[str] = None,
                         first: Optional[int] = None) -> CatalogPage:
        """
        Fetch one page of products.

        Args:
            cursor: Continuation cursor from the previous page, or None
                    for the first page.
            query: Optional upstream search expression.
            first: Page size; defaults to the configured page size.

        Returns:
            CatalogPage with parsed products and continuation info.

        Raises:
            CatalogFetchError: On transport failure, non-200 status,
                GraphQL errors, or a payload without a product listing.
        """
        variables = {
            "query": query or None,
            "first": first or self.page_size,
            "after": cursor,
            "sortKey": "RELEVANCE" if query else "ID",
        }
        data = await self._post({"query": PRODUCTS_QUERY, "variables": variables})
        return self._parse_page(data)

    async def iter_pages(self, query: Optional[str] = None) -> AsyncIterator[List[ProductRecord]]:
        """
        Yield product batches page by page until the listing is exhausted.

        Each call starts again from the first page.
        """
        cursor = None
        for page_number in range(1, MAX_PAGES + 1):
            page = await self.fetch_page(cursor=cursor, query=query)
            logger.debug(f"Catalog page {page_number}: {len(page.products)} products")
            yield page.products

            if not page.has_more:
                return
            if not page.next_cursor or page.next_cursor == cursor:
                raise CatalogFetchError(
                    f"Catalog page {page_number} reports more results without a new cursor"
                )
            cursor = page.next_cursor
            await asyncio.sleep(self.page_delay)

        logger.warning(f"Catalog listing truncated after {MAX_PAGES} pages")

    async def fetch_all(self, query: Optional[str] = None) -> List[ProductRecord]:
        """Collect every page of the listing into one list."""
        products: List[ProductRecord] = []
        async for batch in self.iter_pages(query=query):
            products.extend(batch)
        logger.info(f"Fetched {len(products)} catalog products")
        return products

    async def search(self, query: str, first: int = TEXT_RESULT_LIMIT) -> List[ProductRecord]:
        """Return the first page of products matching a text query, relevance ordered."""
        page = await self.fetch_page(query=query, first=first)
        logger.info(f"Catalog search '{query}' returned {len(page.products)} products")
        return page.products

    # ── HTTP helper ───────────────────────────────────────────────────────────

    async def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Single GraphQL POST. Returns the decoded JSON body."""
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.endpoint,
                    json=payload,
                    headers=self._headers,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as resp:
                    if resp.status != 200:
                        text = await resp.text()
                        raise CatalogFetchError(f"Catalog error {resp.status}: {text[:200]}")
                    return await resp.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise CatalogFetchError(f"Catalog request failed: {e!r}") from e

    # ── Parsers ───────────────────────────────────────────────────────────────

    def _parse_page(self, data: Any) -> CatalogPage:
        if not isinstance(data, dict):
            raise CatalogFetchError("Catalog response is not a JSON object")

        if data.get("errors"):
            messages = "; ".join(
                str(err.get("message", err)) if isinstance(err, dict) else str(err)
                for err in data["errors"]
            )
            raise CatalogFetchError(f"Catalog query failed: {messages}")

        listing = (data.get("data") or {}).get("products")
        if not isinstance(listing, dict):
            raise CatalogFetchError("Catalog response has no product listing")

        products = []
        for edge in listing.get("edges") or []:
            product = self._parse_product((edge or {}).get("node"))
            if product:
                products.append(product)

        page_info = listing.get("pageInfo") or {}
        return CatalogPage(
            products=products,
            next_cursor=page_info.get("endCursor"),
            has_more=bool(page_info.get("hasNextPage")),
        )

    def _parse_product(self, node: Any) -> Optional[ProductRecord]:
        if not isinstance(node, dict) or not node.get("id"):
            return None

        handle = node.get("handle") or ""
        image = (node.get("featuredImage") or {}).get("url") or None

        variants = (node.get("variants") or {}).get("edges") or []
        price_info = {}
        if variants:
            price_info = ((variants[0] or {}).get("node") or {}).get("price") or {}

        return ProductRecord(
            id=str(node["id"]),
            title=(node.get("title") or "").strip(),
            url=f"https://{self.domain}/products/{handle}",
            image_url=image,
            price=_parse_amount(price_info.get("amount")),
            currency=price_info.get("currencyCode") or "",
            description=node.get("descriptionHtml") or None,
        )


# ── Helpers ────────────────────────────────────────────────────────────────────

def _parse_amount(amount: Any) -> Optional[float]:
    """Parse a decimal amount such as "29.99"; None when missing or invalid."""
    if amount is None or amount == "":
        return None
    try:
        return float(amount)
    except (TypeError, ValueError):
        return None


def sort_products(products: List[ProductRecord], order: SortOrder) -> List[ProductRecord]:
    """
    Re-sort products locally. RELEVANCE keeps the upstream order.

    Products without a price go last on price sorts in either direction.
    """
    order = SortOrder(order)
    if order is SortOrder.RELEVANCE:
        return list(products)

    if order in (SortOrder.TITLE_ASC, SortOrder.TITLE_DESC):
        return sorted(products, key=lambda p: p.title.casefold(),
                      reverse=order is SortOrder.TITLE_DESC)

    priced = [p for p in products if p.price is not None]
    unpriced = [p for p in products if p.price is None]
    priced.sort(key=lambda p: p.price, reverse=order is SortOrder.PRICE_DESC)
    return priced + unpriced
