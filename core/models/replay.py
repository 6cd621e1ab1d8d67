"""
Replay detection over the most recent keystrokes.

A fresh nonce is minted whenever raw state resets, so more than one nonce in
the recent window means recorded events were stitched into the stream.
Perfectly constant press-to-press intervals are the other replay signature.
"""

import itertools
import logging

from core.processors.ingestor import RawBuffers
from core.schemas.outputs import ReplayVerdict


logger = logging.getLogger(__name__)


REPLAY_WINDOW = 20
MIN_IDENTICAL_INTERVALS = 6


class ReplayDetector:

    def detect(self, buffers: RawBuffers) -> ReplayVerdict:
        keystrokes = buffers.keystrokes
        start = max(0, len(keystrokes) - REPLAY_WINDOW)
        recent = list(itertools.islice(keystrokes, start, None))

        nonces = {k.nonce for k in recent if k.nonce}
        if len(nonces) > 1:
            logger.warning(f"Replay suspected: {len(nonces)} session nonces in last {len(recent)} keystrokes")
            return ReplayVerdict(is_replay=True, reason="Multiple session nonces")

        intervals = [b.press_ts - a.press_ts for a, b in zip(recent, recent[1:])]
        if len(intervals) >= MIN_IDENTICAL_INTERVALS and len(set(intervals)) == 1:
            logger.warning(f"Replay suspected: {len(intervals)} identical intervals")
            return ReplayVerdict(is_replay=True, reason="Identical intervals")

        return ReplayVerdict(is_replay=False)
