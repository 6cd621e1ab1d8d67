"""
Mouse Movement Feature Extractor

Reduces the buffered cursor trail and jitter series into movement features
used both for the baseline comparison and for bot heuristics.

Features extracted:
- avgVel, stdVel: instantaneous speed distribution (px/s)
- curvature: mean absolute turning angle, normalised by pi
- entropy: Shannon entropy of turning angles over 10 bins, normalised to [0, 1]
- jitterFreq: tremor frequency estimate (Hz) from acceleration zero crossings
- jitterAmp: tremor amplitude (stdev of jitter acceleration)
"""

import logging
import math
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np

from core.processors import stats
from core.processors.ingestor import MAX_MOUSE_SAMPLE_GAP_S, JitterSample, MouseSample
from core.schemas.outputs import MouseFeatures


logger = logging.getLogger(__name__)


# =============================================================================
# Thresholds
# =============================================================================

# Minimum buffered samples before features are available
MIN_MOUSE_SAMPLES = 30

# Entropy needs at least this many turning angles
MIN_ENTROPY_ANGLES = 10
ENTROPY_BINS = 10

# Jitter estimation requirements
MIN_JITTER_SAMPLES = 20
MIN_JITTER_ACCELERATIONS = 10


def heading(p1: MouseSample, p2: MouseSample) -> float:
    """Direction of travel from p1 to p2 (radians)."""
    return math.atan2(p2.y - p1.y, p2.x - p1.x)


class MouseFeatureExtractor:
    """Stateless mouse feature extraction over the cursor trail."""

    def extract(
        self,
        samples: Sequence[MouseSample],
        jitter: Sequence[JitterSample],
    ) -> Optional[MouseFeatures]:
        samples = list(samples)
        if len(samples) < MIN_MOUSE_SAMPLES:
            logger.debug(f"Mouse features unavailable: {len(samples)}/{MIN_MOUSE_SAMPLES} samples")
            return None

        velocities, angles = self._kinematics(samples)
        jitter_freq, jitter_amp = self._tremor(list(jitter))

        return MouseFeatures(
            avg_vel=stats.mean(velocities),
            std_vel=stats.std(velocities),
            curvature=stats.mean(angles) / math.pi if angles else 0.0,
            entropy=self._angle_entropy(angles),
            jitter_freq=jitter_freq,
            jitter_amp=jitter_amp,
            n=len(samples),
        )

    def _kinematics(self, samples: Sequence[MouseSample]) -> Tuple[List[float], List[float]]:
        """Speeds and absolute heading changes for segments inside the sample window."""
        velocities: List[float] = []
        angles: List[float] = []
        for i in range(1, len(samples)):
            a, b = samples[i - 1], samples[i]
            dt = (b.ts - a.ts) / 1000.0
            if not 0 < dt < MAX_MOUSE_SAMPLE_GAP_S:
                continue
            velocities.append(math.hypot(b.x - a.x, b.y - a.y) / dt)
            if i > 1:
                angles.append(abs(heading(a, b) - heading(samples[i - 2], a)))
        return velocities, angles

    def _angle_entropy(self, angles: Sequence[float]) -> float:
        if len(angles) < MIN_ENTROPY_ANGLES:
            return 0.0
        bin_size = math.pi / ENTROPY_BINS
        # Raw heading differences can exceed pi; the last bin absorbs them
        idx = np.minimum(ENTROPY_BINS - 1, np.floor(np.asarray(angles) / bin_size)).astype(int)
        counts = np.bincount(idx, minlength=ENTROPY_BINS)
        p = counts[counts > 0] / len(angles)
        entropy = float(-np.sum(p * np.log2(p)))
        return min(1.0, abs(entropy) / math.log2(ENTROPY_BINS))

    def _tremor(self, jitter: Sequence[JitterSample]) -> Tuple[float, float]:
        """Half the zero-crossing rate of acceleration about its mean, and its spread."""
        if len(jitter) < MIN_JITTER_SAMPLES:
            return 0.0, 0.0
        acc = [j.acceleration for j in jitter if j.acceleration is not None]
        if len(acc) < MIN_JITTER_ACCELERATIONS:
            return 0.0, 0.0

        centred = np.asarray(acc) - np.mean(acc)
        crossings = int(np.sum(centred[1:] * centred[:-1] < 0))
        duration = (jitter[-1].ts - jitter[0].ts) / 1000.0
        frequency = (crossings / 2) / duration if duration > 0 else 0.0
        return frequency, stats.std(acc)


def direction_change_ratio(samples: Iterable[MouseSample]) -> float:
    """
    Fraction of consecutive heading changes that look like micro-corrections.

    A change counts when |delta| lies strictly between 0.1 rad and pi - 0.1.
    """
    trail = list(samples)
    if len(trail) < 3:
        return 0.0
    changes = 0
    for i in range(2, len(trail)):
        delta = abs(heading(trail[i - 2], trail[i - 1]) - heading(trail[i - 1], trail[i]))
        if 0.1 < delta < math.pi - 0.1:
            changes += 1
    return changes / (len(trail) - 2)
