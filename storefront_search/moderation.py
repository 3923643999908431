"""
Optional content moderation gate for uploaded images.

Moderation is a pluggable capability: the engine accepts any
ContentModerator implementation (for example one wrapping an NSFW
classifier) or None. A classifier that errors never blocks a search;
the failure is logged and the search proceeds unmoderated.
"""

import os
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, List, Optional

import numpy as np

from .errors import ModerationRejection

logger = logging.getLogger(__name__)

MODERATION_THRESHOLD = float(os.environ.get("MODERATION_THRESHOLD", "0.7"))
DEFAULT_DISALLOWED_LABELS = tuple(
    label.strip().casefold()
    for label in os.environ.get("MODERATION_DISALLOWED_LABELS", "porn,hentai,sexy").split(",")
    if label.strip()
)


@dataclass(frozen=True)
class ModerationLabel:
    label: str
    probability: float


class ContentModerator(ABC):
    """Classifies decoded pixels into labelled probabilities."""

    @abstractmethod
    async def classify(self, image_np: np.ndarray) -> List[ModerationLabel]:
        """Return label probabilities for an RGB uint8 image."""
        ...


async def screen_image(moderator: Optional[ContentModerator],
                       image_np: np.ndarray,
                       disallowed_labels: Iterable[str] = DEFAULT_DISALLOWED_LABELS,
                       threshold: float = MODERATION_THRESHOLD) -> None:
    """
    Reject an image whose disallowed labels exceed the threshold.

    Args:
        moderator: Classifier, or None to skip moderation.
        image_np: Decoded query image.
        disallowed_labels: Labels that cause rejection (case-insensitive).
        threshold: Probability above which a disallowed label rejects.

    Raises:
        ModerationRejection: On the first disallowed label over threshold.
    """
    if moderator is None:
        return

    try:
        labels = await moderator.classify(image_np)
    except Exception as e:
        logger.warning(f"Content classifier failed, continuing without moderation: {e}")
        return

    disallowed = {label.casefold() for label in disallowed_labels}
    for item in labels:
        if item.label.casefold() in disallowed and item.probability > threshold:
            logger.info(f"Rejected upload: {item.label} ({item.probability:.2f})")
            raise ModerationRejection(item.label, item.probability)
