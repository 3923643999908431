"""Tests for the optional upload moderation gate."""

import numpy as np
import pytest

from storefront_search.errors import ModerationRejection
from storefront_search.moderation import ContentModerator, ModerationLabel, screen_image

IMAGE = np.zeros((4, 4, 3), dtype=np.uint8)


class StaticModerator(ContentModerator):
    def __init__(self, *labels):
        self.labels = list(labels)
        self.calls = 0

    async def classify(self, image_np):
        self.calls += 1
        return self.labels


class BrokenModerator(ContentModerator):
    async def classify(self, image_np):
        raise RuntimeError("classifier unavailable")


@pytest.mark.asyncio
class TestScreenImage:
    async def test_no_moderator_passes(self):
        await screen_image(None, IMAGE)

    async def test_over_threshold_rejects(self):
        moderator = StaticModerator(ModerationLabel("Neutral", 0.2), ModerationLabel("Porn", 0.8))
        with pytest.raises(ModerationRejection) as exc:
            await screen_image(moderator, IMAGE, ["porn"], threshold=0.7)
        assert exc.value.label == "Porn"
        assert exc.value.probability == 0.8
        assert exc.value.status_code == 422

    async def test_at_threshold_passes(self):
        moderator = StaticModerator(ModerationLabel("porn", 0.7))
        await screen_image(moderator, IMAGE, ["porn"], threshold=0.7)

    async def test_allowed_label_passes(self):
        moderator = StaticModerator(ModerationLabel("neutral", 0.99))
        await screen_image(moderator, IMAGE, ["porn"], threshold=0.7)
        assert moderator.calls == 1

    async def test_classifier_failure_ignored(self):
        await screen_image(BrokenModerator(), IMAGE, ["porn"])
