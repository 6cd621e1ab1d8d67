"""
BehaviorGuard Bot Detector

Additive heuristic scorer for scripted or synthetic input. Each rule that
fires adds its points and a reason; the verdict flags a bot once the total
reaches BOT_THRESHOLD. Point values and band edges are fixed policy.

Rules:
- Mouse entropy < 0.02                       +40
- Tremor frequency outside [3, 12] Hz (> 0)   +30
- Curvature < 0.01                           +25
- Median key interval < 30 ms                +50
- Interval CV (IQR / median) < 0.15, n >= 30 +25
- Digraph variance < 3 with >= 10 digraphs   +20
- No micro-corrections in last 50 samples    +30
"""

import itertools
import logging
from typing import List, Optional

from core.processors.ingestor import RawBuffers
from core.processors.mouse import direction_change_ratio
from core.schemas.outputs import BotVerdict, KeystrokeFeatures, MouseFeatures


logger = logging.getLogger(__name__)


# =============================================================================
# Thresholds
# =============================================================================

BOT_THRESHOLD = 85
MAX_CONFIDENCE = 100

MIN_ENTROPY = 0.02
HUMAN_TREMOR_BAND = (3.0, 12.0)  # Hz
MIN_CURVATURE = 0.01
MIN_HUMAN_INTERVAL_MS = 30.0
MIN_INTERVAL_CV = 0.15
MIN_CV_SAMPLES = 30
MIN_DIGRAPH_VARIANCE = 3.0
MIN_DIGRAPHS = 10
MIN_CORRECTION_SAMPLES = 20
CORRECTION_WINDOW = 50
MIN_CORRECTION_RATIO = 0.15


class BotDetector:
    """Scores the current features and raw trail for automation artefacts."""

    def detect(
        self,
        ks: Optional[KeystrokeFeatures],
        mouse: Optional[MouseFeatures],
        buffers: RawBuffers,
    ) -> BotVerdict:
        score = 0
        reasons: List[str] = []

        if mouse is not None:
            if mouse.entropy < MIN_ENTROPY:
                score += 40
                reasons.append("Mouse entropy < 0.02")
            low, high = HUMAN_TREMOR_BAND
            if mouse.jitter_freq > 0 and not low <= mouse.jitter_freq <= high:
                score += 30
                reasons.append(f"Jitter {mouse.jitter_freq:.1f}Hz")
            if mouse.curvature < MIN_CURVATURE:
                score += 25
                reasons.append("Perfect geometric paths")

        if ks is not None:
            if ks.med_iv < MIN_HUMAN_INTERVAL_MS:
                score += 50
                reasons.append("Superhuman speed <30ms")
            cv = ks.iqr_iv / ks.med_iv if ks.med_iv > 0 else 0.0
            if cv < MIN_INTERVAL_CV and ks.n >= MIN_CV_SAMPLES:
                score += 25
                reasons.append(f"CV={cv:.3f} too consistent")
            if ks.dig_var < MIN_DIGRAPH_VARIANCE and len(buffers.digraphs) >= MIN_DIGRAPHS:
                score += 20
                reasons.append("Digraph variance too low")

        if len(buffers.mouse) >= MIN_CORRECTION_SAMPLES:
            start = max(0, len(buffers.mouse) - CORRECTION_WINDOW)
            recent = list(itertools.islice(buffers.mouse, start, None))
            if direction_change_ratio(recent) < MIN_CORRECTION_RATIO:
                score += 30
                reasons.append("No micro-corrections")

        verdict = BotVerdict(
            is_bot=score >= BOT_THRESHOLD,
            confidence=min(MAX_CONFIDENCE, score),
            reasons=reasons,
        )
        if verdict.is_bot:
            logger.warning(f"Bot activity suspected (score={score}): {verdict.reason}")
        return verdict
