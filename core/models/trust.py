"""
BehaviorGuard Trust Scorer

Weighted multi-channel comparison of live features against the baseline.

Each channel yields a deviation in [0, 100] (mean of its metric deviations);
channels are combined with fixed weights renormalised over the channels that
have data on both sides. The combined risk is scaled by a time-of-day/week
factor and turned into a trust score:

    trust = clamp(100 - risk * adjustment, 0, 100)
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from core.schemas.outputs import (
    BehaviorProfile,
    ClickFeatures,
    FeatureVector,
    KeystrokeFeatures,
    MouseFeatures,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Policy constants
# =============================================================================

KEYSTROKE_WEIGHT = 0.5
MOUSE_WEIGHT = 0.3
CLICK_WEIGHT = 0.2

# (feature attribute, tolerance divisor)
KEYSTROKE_TOLERANCES = (
    ("med_dwell", 0.6),
    ("mad_dwell", 0.7),
    ("med_flight", 0.7),
    ("med_iv", 0.65),
    ("wpm", 0.6),
)
CLICK_TOLERANCES = (
    ("cpm", 1.2),
    ("avg_dist", 1.2),
)

# Time-context multipliers
NIGHT_FACTOR = 0.85      # hour < 5 or hour >= 22
WEEKEND_FACTOR = 0.90    # Saturday / Sunday
MORNING_FACTOR = 0.92    # 5 <= hour < 12


def relative_deviation(current: float, baseline: float, tolerance: float = 1.0) -> float:
    """min(1, |current - baseline| / baseline / tolerance) * 100."""
    return min(1.0, abs(current - baseline) / baseline / tolerance) * 100.0


def absolute_deviation(current: float, baseline: float) -> float:
    return min(1.0, abs(current - baseline)) * 100.0


def time_adjustment(now: datetime) -> float:
    """Multiplicative risk factor for the local hour and weekday."""
    hour = now.hour
    adj = 1.0
    if hour < 5 or hour >= 22:
        adj *= NIGHT_FACTOR
    if now.weekday() >= 5:
        adj *= WEEKEND_FACTOR
    if 5 <= hour < 12:
        adj *= MORNING_FACTOR
    return adj


class TrustScorer:
    """Scores a live FeatureVector against a BehaviorProfile baseline."""

    def score(
        self,
        current: FeatureVector,
        profile: Optional[BehaviorProfile],
        previous: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Optional[float]:
        """
        Compute the trust score, or return ``previous`` unchanged when there
        is nothing to compare (no profile, no live keystroke/mouse data or no
        channel present on both sides).
        """
        if profile is None or not profile.features.has_primary_channel:
            return previous
        if not current.has_primary_channel:
            return previous

        risk = self.risk(current, profile.features)
        if risk is None:
            return previous

        adj = time_adjustment(now or datetime.now())
        return max(0.0, min(100.0, 100.0 - risk * adj))

    def risk(self, current: FeatureVector, baseline: FeatureVector) -> Optional[float]:
        """Weighted mean channel deviation before the time adjustment."""
        parts: List[Tuple[float, float]] = []
        if current.ks is not None and baseline.ks is not None:
            parts.append((self._keystroke_deviation(current.ks, baseline.ks), KEYSTROKE_WEIGHT))
        if current.mouse is not None and baseline.mouse is not None:
            parts.append((self._mouse_deviation(current.mouse, baseline.mouse), MOUSE_WEIGHT))
        if current.click is not None and baseline.click is not None:
            parts.append((self._click_deviation(current.click, baseline.click), CLICK_WEIGHT))

        if not parts:
            return None
        total_weight = sum(w for _, w in parts)
        return sum(r * w for r, w in parts) / total_weight

    # -------------------------------------------------------------------------
    # Channels
    # -------------------------------------------------------------------------

    def _keystroke_deviation(self, cur: KeystrokeFeatures, base: KeystrokeFeatures) -> float:
        deviations = [
            relative_deviation(getattr(cur, name), getattr(base, name), tol)
            for name, tol in KEYSTROKE_TOLERANCES
            if getattr(base, name) > 0
        ]
        return sum(deviations) / len(deviations) if deviations else 0.0

    def _mouse_deviation(self, cur: MouseFeatures, base: MouseFeatures) -> float:
        deviations = []
        if base.avg_vel > 0:
            deviations.append(relative_deviation(cur.avg_vel, base.avg_vel))
        deviations.append(absolute_deviation(cur.curvature, base.curvature))
        deviations.append(absolute_deviation(cur.entropy, base.entropy))
        return sum(deviations) / len(deviations)

    def _click_deviation(self, cur: ClickFeatures, base: ClickFeatures) -> float:
        deviations = [
            relative_deviation(getattr(cur, name), getattr(base, name), tol)
            for name, tol in CLICK_TOLERANCES
            if getattr(base, name) > 0
        ]
        return sum(deviations) / len(deviations) if deviations else 0.0
