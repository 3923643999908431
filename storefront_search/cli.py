"""Command-line interface for storefront product search."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

from .catalog import SortOrder
from .config import Settings
from .engine import SearchEngine
from .errors import SearchError, UsageError


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments for a single search."""
    parser = argparse.ArgumentParser(
        description="Search storefront products by text query or by image."
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Free-text query, e.g. 'blue shirt'.",
    )
    parser.add_argument(
        "--image",
        type=Path,
        default=None,
        help="Path to an image file to search by color similarity.",
    )
    parser.add_argument(
        "--sort",
        choices=[order.value for order in SortOrder],
        default=SortOrder.RELEVANCE.value,
        help="Ordering for text search results.",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log pipeline progress to stderr.",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


async def run_search(args: argparse.Namespace) -> list[dict]:
    image = args.image.read_bytes() if args.image else None
    engine = SearchEngine.from_settings(Settings.from_env())
    try:
        results = await engine.search(query=args.query, image=image,
                                      sort=SortOrder(args.sort))
    finally:
        await engine.close()
    return [r.to_dict() for r in results]


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        products = asyncio.run(run_search(args))
    except UsageError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2
    except SearchError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"error: could not read image: {e}", file=sys.stderr)
        return 2

    json.dump({"products": products}, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
