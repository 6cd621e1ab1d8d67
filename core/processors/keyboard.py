"""
BehaviorGuard Keyboard Feature Extractor

Reduces buffered keystroke history into robust keystroke-dynamics features:
dwell distribution, flight time, inter-keystroke interval, typing speed and
digraph rhythm stability.
"""

import logging
from typing import Iterable, List, Optional, Sequence

from core.processors import stats
from core.processors.buffers import SequenceTimingMap
from core.processors.ingestor import KeyEvent
from core.schemas.outputs import KeystrokeFeatures


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Minimum qualifying keystrokes before features are available
MIN_KEYSTROKES = 50

# Maximum flight / interval before considered a "pause" (coffee break rule)
MAX_FLIGHT_TIME_MS = 2000.0

# Upper dwell bound for a keystroke to qualify (exclusive)
MAX_QUALIFYING_DWELL_MS = 1000.0

# Keystrokes needed before a WPM estimate is made
MIN_WPM_KEYSTROKES = 10

# Average characters per word for WPM
CHARS_PER_WORD = 5

# Digraphs need this many intervals before their spread counts
MIN_DIGRAPH_SAMPLES = 3


class KeyboardFeatureExtractor:
    """
    Stateless keystroke feature extraction.

    Features extracted:
    - medDwell / madDwell / p25Dwell / p75Dwell / iqrDwell / avgDwell / stdDwell
    - medFlight / madFlight: release-to-press time, pauses excluded
    - medIv / madIv / iqrIv: press-to-press interval, pauses excluded
    - wpm: (keystrokes / 5) per elapsed minute
    - digVar: median stdev of per-digraph intervals
    """

    def extract(
        self,
        keystrokes: Iterable[KeyEvent],
        digraphs: SequenceTimingMap,
    ) -> Optional[KeystrokeFeatures]:
        events = [k for k in keystrokes if 0 < k.dwell < MAX_QUALIFYING_DWELL_MS]
        if len(events) < MIN_KEYSTROKES:
            logger.debug(f"Keystroke features unavailable: {len(events)}/{MIN_KEYSTROKES} events")
            return None

        dwells = [k.dwell for k in events]
        flights = self._valid_flights(events)
        intervals = self._press_intervals(events)

        return KeystrokeFeatures(
            med_dwell=stats.median(dwells),
            mad_dwell=stats.mad(dwells),
            p25_dwell=stats.percentile(dwells, 25),
            p75_dwell=stats.percentile(dwells, 75),
            iqr_dwell=stats.iqr(dwells),
            avg_dwell=stats.mean(dwells),
            std_dwell=stats.std(dwells),
            med_flight=stats.median(flights),
            mad_flight=stats.mad(flights),
            med_iv=stats.median(intervals),
            mad_iv=stats.mad(intervals),
            iqr_iv=stats.iqr(intervals),
            wpm=self._words_per_minute(events),
            dig_var=self._digraph_variability(digraphs),
            n=len(events),
        )

    def _valid_flights(self, events: Sequence[KeyEvent]) -> List[float]:
        return [
            k.flight for k in events
            if k.flight is not None and 0 < k.flight < MAX_FLIGHT_TIME_MS
        ]

    def _press_intervals(self, events: Sequence[KeyEvent]) -> List[float]:
        intervals: List[float] = []
        for prev, cur in zip(events, events[1:]):
            delta = cur.press_ts - prev.press_ts
            if 0 < delta < MAX_FLIGHT_TIME_MS:
                intervals.append(delta)
        return intervals

    def _words_per_minute(self, events: Sequence[KeyEvent]) -> float:
        if len(events) < MIN_WPM_KEYSTROKES:
            return 0.0
        minutes = (events[-1].press_ts - events[0].press_ts) / 60_000.0
        if minutes <= 0:
            return 0.0
        return (len(events) / CHARS_PER_WORD) / minutes

    def _digraph_variability(self, digraphs: SequenceTimingMap) -> float:
        spreads = [stats.std(t) for t in digraphs.values() if len(t) >= MIN_DIGRAPH_SAMPLES]
        return stats.median(spreads)
