"""
Match scoring for image search results.

Combines two signals into one integer match score per candidate:
color-histogram overlap when the candidate image could be analysed, and
title vocabulary matches. When a visual comparison is available only a
small flat bonus is added for a category term, so the title does not
outweigh what the pixels already show. Without one, the full lexical
score is used.
"""

import os
import math
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .catalog import ProductRecord
from .histograms import ColorBucket, compare_histograms
from .lexical import CATEGORY_TERMS, has_term, lexical_score

logger = logging.getLogger(__name__)

VISUAL_CATEGORY_BONUS = int(os.environ.get("VISUAL_CATEGORY_BONUS", "15"))
IMAGE_RESULT_LIMIT = int(os.environ.get("IMAGE_RESULT_LIMIT", "12"))


@dataclass(frozen=True)
class MatchResult:
    """A product with its match score. Text-search results carry no score."""

    product: ProductRecord
    match_score: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        p = self.product
        data = {
            "id": p.id,
            "title": p.title,
            "description": p.description,
            "url": p.url,
            "image": p.image_url or "",
            "price": p.price,
            "currency": p.currency,
        }
        if self.match_score is not None:
            data["matchScore"] = self.match_score
        return data


def _round_half_up(score: float) -> int:
    """Round .5 upward, matching the color quantizer (round() is half-to-even)."""
    return int(math.floor(score + 0.5))


def compute_match_score(query_colors: Sequence[ColorBucket],
                        title: str,
                        candidate_colors: Optional[Sequence[ColorBucket]] = None) -> int:
    """
    Compute the integer match score for one candidate.

    Args:
        query_colors: Dominant colors of the uploaded image.
        title: Candidate product title.
        candidate_colors: Dominant colors of the candidate image, or None
            when the image was missing or could not be fetched/decoded.

    Returns:
        Rounded score. Visual path: histogram overlap plus
        VISUAL_CATEGORY_BONUS for a category term. Fallback path:
        lexical score only.
    """
    if candidate_colors is None:
        return _round_half_up(lexical_score(query_colors, title))

    score = compare_histograms(query_colors, candidate_colors)
    if has_term(title or "", CATEGORY_TERMS):
        score += VISUAL_CATEGORY_BONUS

    return _round_half_up(score)


def rank_results(results: List[MatchResult], limit: int = IMAGE_RESULT_LIMIT) -> List[MatchResult]:
    """
    Sort results by match score descending and keep the first `limit`.

    The sort is stable, so equal scores keep their input order.
    """
    ranked = sorted(results, key=lambda r: -(r.match_score or 0))
    return ranked[:limit]
