"""Shared test fixtures for storefront search tests."""

import numpy as np
import cv2
import pytest

from storefront_search.catalog import ProductRecord


def encode_png(image_rgb: np.ndarray) -> bytes:
    """Encode an RGB array as PNG bytes."""
    ok, buf = cv2.imencode(".png", cv2.cvtColor(image_rgb, cv2.COLOR_RGB2BGR))
    assert ok
    return buf.tobytes()


def make_product(pid: str, title: str, price: float = 10.0,
                 image_url: str = None) -> ProductRecord:
    return ProductRecord(
        id=pid,
        title=title,
        url=f"https://shop.example.com/products/{pid}",
        image_url=image_url,
        price=price,
        currency="USD",
    )


@pytest.fixture
def solid_red_image():
    """Generate a 200x200 solid pure-red image."""
    img = np.zeros((200, 200, 3), dtype=np.uint8)
    img[:, :] = [255, 0, 0]
    return img


@pytest.fixture
def solid_blue_image():
    """Generate a 200x200 solid pure-blue image."""
    img = np.zeros((200, 200, 3), dtype=np.uint8)
    img[:, :] = [0, 0, 255]
    return img


@pytest.fixture
def red_white_image():
    """Generate a 100x100 image, left half red, right half white."""
    img = np.ones((100, 100, 3), dtype=np.uint8) * 255
    img[:, :50] = [255, 0, 0]
    return img


@pytest.fixture
def noise_image():
    """Generate a 300x200 random noise image."""
    rng = np.random.RandomState(42)
    return rng.randint(0, 255, (200, 300, 3), dtype=np.uint8)


@pytest.fixture
def red_png(solid_red_image):
    return encode_png(solid_red_image)


@pytest.fixture
def blue_png(solid_blue_image):
    return encode_png(solid_blue_image)
