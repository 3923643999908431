"""Tests for dominant-color extraction and histogram comparison."""

from unittest.mock import patch

import numpy as np
import pytest

from storefront_search import histograms
from storefront_search.errors import ImageDecodeError
from storefront_search.histograms import (
    ColorBucket, compare_histograms, extract_color_buckets, extract_features,
    quantize_channel, EXACT_WEIGHT,
)
from storefront_search.preprocessing import decode_image, downsample_image

from conftest import encode_png


class TestQuantizeChannel:
    """Tests for per-channel bucket snapping."""

    def test_rounds_to_nearest_multiple(self):
        values = np.array([0, 15, 16, 47, 48, 100])
        assert quantize_channel(values, 32).tolist() == [0, 0, 32, 32, 64, 96]

    def test_caps_at_255(self):
        values = np.array([240, 250, 255])
        assert quantize_channel(values, 32).tolist() == [255, 255, 255]


class TestExtractColorBuckets:
    """Tests for dominant color extraction."""

    def test_uniform_image_single_bucket(self, solid_red_image):
        buckets = extract_color_buckets(solid_red_image)
        assert len(buckets) == 1
        assert buckets[0].rgb == (255, 0, 0)
        assert buckets[0].percentage == pytest.approx(100.0)

    @pytest.mark.parametrize("color", [(0, 0, 0), (255, 255, 255), (37, 140, 201)])
    def test_any_uniform_color_single_bucket(self, color):
        img = np.zeros((64, 48, 3), dtype=np.uint8)
        img[:, :] = color
        buckets = extract_color_buckets(img)
        assert len(buckets) == 1
        assert buckets[0].percentage == pytest.approx(100.0)

    def test_two_tone_split(self, red_white_image):
        buckets = extract_color_buckets(red_white_image)
        assert len(buckets) == 2
        assert {b.rgb for b in buckets} == {(255, 0, 0), (255, 255, 255)}
        assert [b.percentage for b in buckets] == pytest.approx([50.0, 50.0])

    def test_sorted_descending(self):
        img = np.zeros((100, 100, 3), dtype=np.uint8)
        img[:70] = [0, 0, 255]
        img[70:90] = [0, 255, 0]
        img[90:] = [255, 0, 0]
        buckets = extract_color_buckets(img)
        assert [b.rgb for b in buckets] == [(0, 0, 255), (0, 255, 0), (255, 0, 0)]
        assert [b.percentage for b in buckets] == pytest.approx([70.0, 20.0, 10.0])

    def test_top_k_cap(self, noise_image):
        buckets = extract_color_buckets(noise_image, top_k=5)
        assert len(buckets) == 5
        pcts = [b.percentage for b in buckets]
        assert pcts == sorted(pcts, reverse=True)

    def test_full_distribution_sums_to_100(self, noise_image):
        buckets = extract_color_buckets(noise_image, top_k=10_000)
        assert sum(b.percentage for b in buckets) == pytest.approx(100.0)

    def test_rgba_alpha_ignored(self):
        img = np.zeros((20, 20, 4), dtype=np.uint8)
        img[:, :] = [0, 255, 0, 10]
        buckets = extract_color_buckets(img)
        assert buckets == (ColorBucket(rgb=(0, 255, 0), percentage=100.0),)

    def test_grayscale_input(self):
        img = np.full((10, 10), 128, dtype=np.uint8)
        buckets = extract_color_buckets(img)
        assert buckets[0].rgb == (128, 128, 128)

    def test_empty_image_raises(self):
        with pytest.raises(ImageDecodeError):
            extract_color_buckets(np.zeros((0, 0, 3), dtype=np.uint8))

    def test_bad_shape_raises(self):
        with pytest.raises(ImageDecodeError):
            extract_color_buckets(np.zeros((10, 10, 2), dtype=np.uint8))


class TestDownsample:
    """Tests for the sampling bound."""

    def test_bounds_longest_side_preserving_aspect(self, noise_image):
        small = downsample_image(noise_image, 100)
        assert small.shape[:2] == (67, 100)

    def test_small_image_unchanged(self):
        img = np.zeros((30, 40, 3), dtype=np.uint8)
        assert downsample_image(img, 100) is img


class TestDecodeImage:
    """Tests for byte decoding."""

    def test_png_round_trip_is_rgb(self, solid_red_image):
        decoded = decode_image(encode_png(solid_red_image))
        assert decoded.shape == (200, 200, 3)
        assert tuple(decoded[0, 0]) == (255, 0, 0)

    def test_corrupt_bytes_raise(self):
        with pytest.raises(ImageDecodeError):
            decode_image(b"definitely not an image")

    def test_empty_bytes_raise(self):
        with pytest.raises(ImageDecodeError):
            decode_image(b"")


class TestExtractFeatures:
    def test_records_dimensions(self, noise_image):
        features = extract_features(noise_image, thumbnail="thumb.jpg")
        assert (features.width, features.height) == (300, 200)
        assert features.thumbnail == "thumb.jpg"
        assert len(features.colors) <= 5

    def test_normalizes_input_once(self, noise_image):
        with patch("storefront_search.histograms.normalize_image",
                   wraps=histograms.normalize_image) as normalize:
            extract_features(noise_image)
        assert normalize.call_count == 1

    def test_grayscale_dimensions(self):
        features = extract_features(np.zeros((30, 40), dtype=np.uint8))
        assert (features.width, features.height) == (40, 30)
        assert features.colors[0].rgb == (0, 0, 0)


class TestCompareHistograms:
    """Tests for the pairwise bucket comparator."""

    def test_empty_inputs_score_zero(self):
        a = (ColorBucket((255, 0, 0), 100.0),)
        assert compare_histograms((), a) == 0
        assert compare_histograms(a, ()) == 0
        assert compare_histograms((), ()) == 0

    def test_identical_uniform_images(self):
        a = (ColorBucket((255, 0, 0), 100.0),)
        assert compare_histograms(a, a) == pytest.approx(100.0 * EXACT_WEIGHT)

    def test_exact_match_uses_min_percentage(self):
        a = (ColorBucket((255, 0, 0), 80.0),)
        b = (ColorBucket((255, 0, 0), 30.0),)
        assert compare_histograms(a, b) == pytest.approx(30.0 * EXACT_WEIGHT)

    def test_near_colors_partial_credit(self):
        a = (ColorBucket((0, 0, 0), 50.0),)
        b = (ColorBucket((0, 0, 32), 40.0),)
        # distance 32 → 40 * (1 - 32/100)
        assert compare_histograms(a, b) == pytest.approx(40.0 * 0.68)

    def test_distant_colors_score_zero(self):
        a = (ColorBucket((255, 0, 0), 100.0),)
        b = (ColorBucket((0, 0, 255), 100.0),)
        assert compare_histograms(a, b) == 0

    def test_symmetric(self):
        a = (ColorBucket((255, 0, 0), 60.0), ColorBucket((224, 32, 0), 25.0),
             ColorBucket((255, 255, 255), 15.0))
        b = (ColorBucket((255, 255, 255), 50.0), ColorBucket((255, 0, 0), 35.0),
             ColorBucket((192, 32, 32), 15.0))
        assert compare_histograms(a, b) == pytest.approx(compare_histograms(b, a))

    def test_same_color_scores_higher_than_different(self, solid_red_image,
                                                     solid_blue_image, red_white_image):
        red = extract_color_buckets(solid_red_image)
        blue = extract_color_buckets(solid_blue_image)
        half_red = extract_color_buckets(red_white_image)
        assert compare_histograms(red, half_red) > compare_histograms(red, blue)
