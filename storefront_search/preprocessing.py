"""
Image decoding and normalization for color extraction.

Turns uploaded or downloaded image bytes into a uint8 RGB array, bounds
the pixel count before per-pixel work, and writes the small display
thumbnail shown next to search results.
"""

import os
import uuid
import logging
from typing import Optional

import cv2
import numpy as np

from .errors import ImageDecodeError

logger = logging.getLogger(__name__)

THUMBNAIL_MAX_SIDE = int(os.environ.get("THUMBNAIL_MAX_SIDE", "200"))
THUMBNAIL_QUALITY = int(os.environ.get("THUMBNAIL_QUALITY", "85"))


def decode_image(data: bytes) -> np.ndarray:
    """
    Decode encoded image bytes (JPEG, PNG, WebP, ...) into an RGB array.

    Args:
        data: Raw file contents.

    Returns:
        uint8 array of shape (H, W, 3) in RGB channel order.

    Raises:
        ImageDecodeError: If the bytes are empty or not a readable image.
    """
    if not data:
        raise ImageDecodeError("Empty image data")

    buffer = np.frombuffer(data, dtype=np.uint8)
    try:
        # IMREAD_COLOR yields 8-bit BGR for gray, paletted, 16-bit and alpha inputs alike
        image = cv2.imdecode(buffer, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    if image is None:
        raise ImageDecodeError("Could not decode image: unsupported or corrupt data")

    return cv2.cvtColor(image, cv2.COLOR_BGR2RGB)


def normalize_image(image_np: np.ndarray) -> np.ndarray:
    """
    Ensure image is uint8 RGB format.

    Accepts grayscale (H, W), RGB (H, W, 3) and RGBA (H, W, 4) input.
    The alpha channel is dropped.

    Raises:
        ImageDecodeError: If the array is empty or has an unusable shape.
    """
    if image_np is None or image_np.size == 0:
        raise ImageDecodeError("Image has no pixels")

    if image_np.dtype != np.uint8:
        if image_np.max() <= 1.0:
            image_np = (image_np * 255).astype(np.uint8)
        else:
            image_np = np.clip(image_np, 0, 255).astype(np.uint8)

    if image_np.ndim == 2:
        return np.stack([image_np] * 3, axis=-1)
    if image_np.ndim == 3 and image_np.shape[2] == 4:
        return np.ascontiguousarray(image_np[:, :, :3])
    if image_np.ndim == 3 and image_np.shape[2] == 3:
        return image_np

    raise ImageDecodeError(f"Unsupported pixel layout: shape {image_np.shape}")


def downsample_image(image_np: np.ndarray, max_side: int) -> np.ndarray:
    """
    Shrink an image so neither side exceeds max_side, preserving aspect ratio.

    Images already within the bound are returned unchanged. INTER_AREA
    averages source pixels, so a uniform image stays uniform.
    """
    h, w = image_np.shape[:2]
    scale = max_side / max(h, w)
    if scale >= 1.0:
        return image_np

    new_w = max(1, int(round(w * scale)))
    new_h = max(1, int(round(h * scale)))
    return cv2.resize(image_np, (new_w, new_h), interpolation=cv2.INTER_AREA)


def write_thumbnail(image_np: np.ndarray,
                    directory: str,
                    max_side: int = THUMBNAIL_MAX_SIDE,
                    name: Optional[str] = None) -> str:
    """
    Write a JPEG display thumbnail for a query image.

    Args:
        image_np: RGB uint8 image.
        directory: Output directory, created if missing.
        max_side: Longest side of the written thumbnail.
        name: Optional file stem; a random one is generated otherwise.

    Returns:
        Path of the written file.

    Raises:
        OSError: If the directory cannot be created or the file written.
    """
    os.makedirs(directory, exist_ok=True)
    thumb = downsample_image(normalize_image(image_np), max_side)
    path = os.path.join(directory, f"{name or uuid.uuid4().hex}.jpg")

    ok = cv2.imwrite(path, cv2.cvtColor(thumb, cv2.COLOR_RGB2BGR),
                     [cv2.IMWRITE_JPEG_QUALITY, THUMBNAIL_QUALITY])
    if not ok:
        raise OSError(f"Could not write thumbnail to {path}")

    logger.debug(f"Wrote thumbnail {path} ({thumb.shape[1]}x{thumb.shape[0]})")
    return path
