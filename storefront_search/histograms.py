"""
Dominant-color histogram extraction and comparison.

Extracts a compact color fingerprint from a product image: every pixel
of a downsampled copy is snapped to a coarse RGB grid (bucket width
configurable via HIST_BUCKET_WIDTH), bucket frequencies are converted to
percentages, and only the top-K buckets are kept.

The comparator scores two fingerprints by summing pairwise bucket
overlap: identical buckets count triple, near buckets count in
proportion to their RGB distance. It is a cheap, explainable heuristic
for ranking tens of candidates, not a distribution distance.
"""

import os
import math
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from .errors import ImageDecodeError
from .preprocessing import normalize_image, downsample_image

logger = logging.getLogger(__name__)

# Quantization and sampling configuration.
# A wider bucket merges more shades; a larger sample side costs more
# per image but captures small accents.
BUCKET_WIDTH = int(os.environ.get("HIST_BUCKET_WIDTH", "32"))
TOP_K = int(os.environ.get("HIST_TOP_K", "5"))
MAX_SIDE = int(os.environ.get("HIST_MAX_SIDE", "100"))

# Comparator constants
EXACT_WEIGHT = float(os.environ.get("EXACT_WEIGHT", "3"))
SIMILARITY_THRESHOLD = float(os.environ.get("SIMILARITY_THRESHOLD", "100"))


@dataclass(frozen=True)
class ColorBucket:
    """A quantized RGB value and the share of sampled pixels in it (0-100)."""

    rgb: Tuple[int, int, int]
    percentage: float


@dataclass(frozen=True)
class ImageFeatureSet:
    """Color fingerprint of one query image."""

    colors: Tuple[ColorBucket, ...]
    width: int
    height: int
    thumbnail: Optional[str] = None


def quantize_channel(values: np.ndarray, bucket_width: int = BUCKET_WIDTH) -> np.ndarray:
    """Round channel values half-up to the nearest multiple of bucket_width, capped at 255."""
    snapped = np.floor(values.astype(np.float64) / bucket_width + 0.5) * bucket_width
    return np.clip(snapped, 0, 255).astype(np.int32)


def extract_color_buckets(image_np: np.ndarray,
                          bucket_width: int = BUCKET_WIDTH,
                          top_k: int = TOP_K,
                          max_side: int = MAX_SIDE) -> Tuple[ColorBucket, ...]:
    """
    Extract the dominant quantized colors of an image.

    Process:
        1. Normalize to uint8 RGB (alpha dropped)
        2. Downsample so neither side exceeds max_side
        3. Snap every channel to the bucket grid
        4. Count pixels per (r, g, b) bucket and convert to percentages
        5. Sort by percentage descending and keep the top K

    Args:
        image_np: Decoded pixels, grayscale / RGB / RGBA, row-major.
        bucket_width: Quantization step per channel.
        top_k: Number of buckets to keep.
        max_side: Sampling bound on the longest image side.

    Returns:
        Tuple of ColorBucket, most frequent first. Ties keep ascending
        RGB order so the output is deterministic.

    Raises:
        ImageDecodeError: If the pixel data is empty or malformed.
    """
    image_np = normalize_image(image_np)
    sample = downsample_image(image_np, max_side)

    pixels = quantize_channel(sample.reshape(-1, 3), bucket_width)
    if pixels.shape[0] == 0:
        raise ImageDecodeError("Image has no pixels")

    buckets, counts = np.unique(pixels, axis=0, return_counts=True)
    percentages = counts * 100.0 / pixels.shape[0]

    order = np.argsort(-counts, kind="stable")[:top_k]

    return tuple(
        ColorBucket(rgb=tuple(int(c) for c in buckets[i]),
                    percentage=float(percentages[i]))
        for i in order
    )


def extract_features(image_np: np.ndarray,
                     thumbnail: Optional[str] = None) -> ImageFeatureSet:
    """Build the ImageFeatureSet for a decoded query image."""
    colors = extract_color_buckets(image_np)
    h, w = image_np.shape[:2]
    logger.debug(f"Extracted {len(colors)} dominant colors from {w}x{h} image")
    return ImageFeatureSet(colors=colors, width=w, height=h, thumbnail=thumbnail)


def color_distance(rgb1: Sequence[int], rgb2: Sequence[int]) -> float:
    """Euclidean distance in RGB space."""
    return math.sqrt(sum((a - b) ** 2 for a, b in zip(rgb1, rgb2)))


def compare_histograms(query: Sequence[ColorBucket],
                       candidate: Sequence[ColorBucket],
                       exact_weight: float = EXACT_WEIGHT,
                       threshold: float = SIMILARITY_THRESHOLD) -> float:
    """
    Score the color overlap between two bucket sequences.

    Every query bucket is paired with every candidate bucket. Identical
    buckets add min(pct1, pct2) * exact_weight; buckets closer than
    threshold add min(pct1, pct2) scaled down linearly with distance.

    Args:
        query: Buckets of the uploaded image.
        candidate: Buckets of a catalog product image.
        exact_weight: Multiplier for identical buckets.
        threshold: RGB distance beyond which buckets contribute nothing.

    Returns:
        Non-negative similarity score; 0.0 if either sequence is empty.
    """
    if not query or not candidate:
        return 0.0

    score = 0.0
    for b1 in query:
        for b2 in candidate:
            overlap = min(b1.percentage, b2.percentage)
            if b1.rgb == b2.rgb:
                score += overlap * exact_weight
                continue

            distance = color_distance(b1.rgb, b2.rgb)
            if distance < threshold:
                score += overlap * (1 - distance / threshold)

    return score
