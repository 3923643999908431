"""
Process configuration — reads from the environment and a .env file.

Algorithm tunables (bucket width, bonuses, TTL, limits) are module-level
constants in the modules that use them, each read from an environment
variable with a literal default. This module loads .env into the
environment before those modules are imported, and bundles the settings
the search engine is built from into one Settings object.

Storefront credentials:
    SHOPIFY_STORE_DOMAIN   e.g. my-shop.myshopify.com
    SHOPIFY_ACCESS_TOKEN   Storefront API access token
"""

import os
from dataclasses import dataclass
from typing import Optional, Tuple

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


@dataclass(frozen=True)
class Settings:
    store_domain: str
    access_token: str
    api_version: str
    page_size: int
    page_delay: float
    cache_ttl: float
    fetch_timeout: float
    fetch_concurrency: int
    text_limit: int
    image_limit: int
    thumbnail_dir: Optional[str]
    disallowed_labels: Tuple[str, ...]
    moderation_threshold: float

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Build settings from environment variables.

        Raises:
            ConfigurationError: If the storefront domain or access token is missing.
        """
        from . import cache, catalog, engine, fetcher, moderation, scoring

        domain = (os.getenv("SHOPIFY_STORE_DOMAIN") or "").strip()
        token = (os.getenv("SHOPIFY_ACCESS_TOKEN") or "").strip()
        if not domain or not token:
            raise ConfigurationError(
                "SHOPIFY_STORE_DOMAIN and SHOPIFY_ACCESS_TOKEN must be set "
                "(environment or .env file)"
            )

        return cls(
            store_domain=domain,
            access_token=token,
            api_version=catalog.API_VERSION,
            page_size=catalog.PAGE_SIZE,
            page_delay=catalog.PAGE_DELAY,
            cache_ttl=cache.CACHE_TTL,
            fetch_timeout=fetcher.FETCH_TIMEOUT,
            fetch_concurrency=engine.FETCH_CONCURRENCY,
            text_limit=catalog.TEXT_RESULT_LIMIT,
            image_limit=scoring.IMAGE_RESULT_LIMIT,
            thumbnail_dir=os.getenv("THUMBNAIL_DIR", "").strip() or None,
            disallowed_labels=moderation.DEFAULT_DISALLOWED_LABELS,
            moderation_threshold=moderation.MODERATION_THRESHOLD,
        )
