"""
Lexical category matching between a query image and product titles.

When no candidate image can be compared, a product is scored by how
many vocabulary groups its title hits: the name of one of the query's
dominant colors, a garment/category term, and a material/pattern term.
Each group is awarded at most once.
"""

import os
import logging
from typing import Callable, List, Optional, Sequence, Tuple

from .histograms import ColorBucket

logger = logging.getLogger(__name__)

COLOR_BONUS = int(os.environ.get("LEX_COLOR_BONUS", "30"))
CATEGORY_BONUS = int(os.environ.get("LEX_CATEGORY_BONUS", "30"))
MATERIAL_BONUS = int(os.environ.get("LEX_MATERIAL_BONUS", "25"))

CATEGORY_TERMS = (
    "shirt", "blouse", "dress", "skirt", "jacket", "coat", "sweater",
    "hoodie", "pants", "jeans", "shorts", "shoe", "sneaker", "boot",
    "sandal", "bag", "backpack", "hat", "cap", "scarf", "jewelry",
    "necklace", "bracelet", "earring", "watch",
)

MATERIAL_TERMS = (
    "cotton", "denim", "leather", "silk", "wool", "linen", "polyester",
    "suede", "cashmere", "striped", "floral", "plaid", "checked", "polka",
)

# Ordered color-name rules over a quantized (r, g, b). First match wins,
# so the broad neutral rules come before the hue rules they overlap.
ColorRule = Tuple[str, Callable[[int, int, int], bool]]

COLOR_RULES: List[ColorRule] = [
    ("white",  lambda r, g, b: r > 200 and g > 200 and b > 200),
    ("black",  lambda r, g, b: r < 60 and g < 60 and b < 60),
    ("gray",   lambda r, g, b: max(r, g, b) - min(r, g, b) < 30),
    ("yellow", lambda r, g, b: r > 200 and g > 200 and b < 100),
    ("orange", lambda r, g, b: r > 200 and 100 <= g <= 200 and b < 100),
    ("pink",   lambda r, g, b: r > 200 and g < 200 and b > 150),
    ("red",    lambda r, g, b: r > 150 and g < 100 and b < 100),
    ("purple", lambda r, g, b: r > 100 and g < 100 and b > 150),
    ("navy",   lambda r, g, b: r < 60 and g < 60 and 100 < b <= 160),
    ("blue",   lambda r, g, b: b > 150 and r < 100),
    ("green",  lambda r, g, b: g > 150 and r < 150 and b < 150),
    ("brown",  lambda r, g, b: 100 < r <= 200 and 40 <= g < 120 and b < 80),
]


def color_name(rgb: Sequence[int]) -> Optional[str]:
    """Map a quantized RGB triple to a canonical color name, or None."""
    r, g, b = rgb
    for name, rule in COLOR_RULES:
        if rule(r, g, b):
            return name
    return None


def has_term(title: str, terms: Sequence[str]) -> bool:
    """True if any term occurs as a substring of the (case-folded) title."""
    title = title.casefold()
    return any(term in title for term in terms)


def lexical_score(colors: Sequence[ColorBucket], title: str) -> int:
    """
    Score a product title against the query's dominant colors and the
    fixed vocabularies.

    Args:
        colors: Dominant color buckets of the query image.
        title: Product title.

    Returns:
        Sum of COLOR_BONUS, CATEGORY_BONUS and MATERIAL_BONUS for the
        groups that match, each at most once. 0 when nothing matches.
    """
    title = (title or "").casefold()
    score = 0

    names = [n for n in (color_name(c.rgb) for c in colors) if n]
    if has_term(title, names):
        score += COLOR_BONUS

    if has_term(title, CATEGORY_TERMS):
        score += CATEGORY_BONUS

    if has_term(title, MATERIAL_TERMS):
        score += MATERIAL_BONUS

    return score
