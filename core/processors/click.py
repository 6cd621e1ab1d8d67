"""
Click cadence features: interval, travel distance between clicks and rate.
"""

import math
from typing import Optional, Sequence

from core.processors import stats
from core.processors.ingestor import ClickSample
from core.schemas.outputs import ClickFeatures


MIN_CLICKS = 5


class ClickFeatureExtractor:
    """Stateless click feature extraction."""

    def extract(self, clicks: Sequence[ClickSample]) -> Optional[ClickFeatures]:
        clicks = list(clicks)
        if len(clicks) < MIN_CLICKS:
            return None

        intervals = [b.ts - a.ts for a, b in zip(clicks, clicks[1:])]
        distances = [math.hypot(b.x - a.x, b.y - a.y) for a, b in zip(clicks, clicks[1:])]
        minutes = (clicks[-1].ts - clicks[0].ts) / 60_000.0

        return ClickFeatures(
            avg_iv=stats.mean(intervals),
            std_iv=stats.std(intervals),
            avg_dist=stats.mean(distances),
            cpm=len(clicks) / minutes if minutes > 0 else 0.0,
            n=len(clicks),
        )
