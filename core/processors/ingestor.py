"""
BehaviorGuard Raw Event Ingestor

Stateful ingestion of raw input events into bounded timing structures.

For every accepted event the ingestor derives:
- keystrokes: dwell, flight, digraph and trigraph press-to-press intervals
- mouse: instantaneous speed, acceleration and the jitter series
- clicks / scrolls: bounded history only

Every handler is O(1) amortised: it touches a dict slot and appends to
fixed-capacity deques, so it never backpressures the capture source.
"""

import logging
import math
import secrets
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, Optional, TYPE_CHECKING

from core.processors.buffers import SequenceTimingMap

if TYPE_CHECKING:
    from core.state import AnalysisContext


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Dwell filter (ms), inclusive on both ends
MIN_DWELL_MS = 1.0
MAX_DWELL_MS = 1000.0

# Mouse samples further apart than this (seconds) do not yield a speed
MAX_MOUSE_SAMPLE_GAP_S = 0.5

# Gaps between activity signals at or above this (ms) count as idle
ACTIVITY_GAP_MS = 10_000.0

# Buffer capacities
MAX_KEYSTROKES = 3000
MAX_MOUSE_SAMPLES = 2000
MAX_CLICKS = 500
MAX_SCROLLS = 300
MAX_JITTER_SAMPLES = 200
MAX_DIGRAPH_KEYS = 8192
MAX_TRIGRAPH_KEYS = 32768


def new_nonce() -> str:
    """Per-capture-session random token."""
    return secrets.token_hex(16)


# =============================================================================
# Samples
# =============================================================================

@dataclass
class KeyEvent:
    """Resolved key press."""
    keycode: int
    press_ts: float
    dwell: float
    flight: Optional[float]
    nonce: str


@dataclass
class MouseSample:
    """Cursor position with derived kinematics."""
    x: float
    y: float
    ts: float
    speed: Optional[float] = None         # px/s
    acceleration: Optional[float] = None  # px/s^2


@dataclass
class JitterSample:
    ts: float
    acceleration: float
    speed: float


@dataclass
class ClickSample:
    x: float
    y: float
    ts: float
    button: Optional[str]


@dataclass
class ScrollSample:
    amount: float
    ts: float


@dataclass
class RawBuffers:
    """All raw history owned by one analysis context."""
    pending_presses: Dict[int, float] = field(default_factory=dict)
    keystrokes: Deque[KeyEvent] = field(default_factory=lambda: deque(maxlen=MAX_KEYSTROKES))
    mouse: Deque[MouseSample] = field(default_factory=lambda: deque(maxlen=MAX_MOUSE_SAMPLES))
    clicks: Deque[ClickSample] = field(default_factory=lambda: deque(maxlen=MAX_CLICKS))
    scrolls: Deque[ScrollSample] = field(default_factory=lambda: deque(maxlen=MAX_SCROLLS))
    jitter: Deque[JitterSample] = field(default_factory=lambda: deque(maxlen=MAX_JITTER_SAMPLES))
    digraphs: SequenceTimingMap = field(
        default_factory=lambda: SequenceTimingMap(max_keys=MAX_DIGRAPH_KEYS)
    )
    trigraphs: SequenceTimingMap = field(
        default_factory=lambda: SequenceTimingMap(max_keys=MAX_TRIGRAPH_KEYS)
    )
    last_release: Optional[float] = None
    nonce: str = field(default_factory=new_nonce)


# =============================================================================
# Ingestor
# =============================================================================

class RawEventIngestor:
    """
    Turns raw hook callbacks into buffered samples on an AnalysisContext.

    Handlers are no-ops unless monitoring is active and the ``enabled``
    setting is on. They must be called in the order the input events
    occurred.
    """

    def __init__(self, context: "AnalysisContext") -> None:
        self.context = context

    # -------------------------------------------------------------------------
    # Gating & activity
    # -------------------------------------------------------------------------

    def _accepting(self) -> bool:
        return self.context.monitoring and self.context.settings.enabled

    def mark_activity(self, now: float) -> None:
        """Accumulate active training time for gaps under ACTIVITY_GAP_MS."""
        session = self.context.session
        if not session.training:
            return
        if session.train_start is None:
            session.train_start = now
        if session.last_active is not None:
            gap = now - session.last_active
            if 0 <= gap < ACTIVITY_GAP_MS:
                session.active_time += gap
        session.last_active = now

    # -------------------------------------------------------------------------
    # Keyboard
    # -------------------------------------------------------------------------

    def on_key_down(self, keycode: int, ts: float) -> None:
        if not self._accepting():
            return
        self.mark_activity(ts)
        # Auto-repeat: keep the first press until release
        self.context.buffers.pending_presses.setdefault(keycode, ts)

    def on_key_up(self, keycode: int, ts: float) -> Optional[KeyEvent]:
        if not self._accepting():
            return None
        self.mark_activity(ts)
        buffers = self.context.buffers

        press_ts = buffers.pending_presses.pop(keycode, None)
        if press_ts is None:
            return None

        dwell = ts - press_ts
        flight = press_ts - buffers.last_release if buffers.last_release is not None else None
        buffers.last_release = ts

        if dwell < MIN_DWELL_MS or dwell > MAX_DWELL_MS:
            logger.debug(f"Discarding key {keycode}: dwell={dwell:.1f}ms out of range")
            return None

        event = KeyEvent(
            keycode=keycode,
            press_ts=press_ts,
            dwell=dwell,
            flight=flight,
            nonce=buffers.nonce,
        )
        buffers.keystrokes.append(event)
        self._record_sequences(event)
        return event

    def _record_sequences(self, event: KeyEvent) -> None:
        keystrokes = self.context.buffers.keystrokes
        count = len(keystrokes)
        if count >= 2:
            prev = keystrokes[-2]
            self.context.buffers.digraphs.record(
                (prev.keycode, event.keycode), event.press_ts - prev.press_ts
            )
        if count >= 3:
            first, second = keystrokes[-3], keystrokes[-2]
            self.context.buffers.trigraphs.record(
                (first.keycode, second.keycode, event.keycode), event.press_ts - first.press_ts
            )

    # -------------------------------------------------------------------------
    # Mouse
    # -------------------------------------------------------------------------

    def on_mouse_move(self, x: float, y: float, ts: float) -> None:
        if not self._accepting():
            return
        self.mark_activity(ts)
        buffers = self.context.buffers
        sample = MouseSample(x=x, y=y, ts=ts)

        if buffers.mouse:
            prev = buffers.mouse[-1]
            dt = (ts - prev.ts) / 1000.0
            if 0 < dt < MAX_MOUSE_SAMPLE_GAP_S:
                sample.speed = math.hypot(x - prev.x, y - prev.y) / dt
                if prev.speed is not None:
                    sample.acceleration = abs(sample.speed - prev.speed) / dt
                    buffers.jitter.append(
                        JitterSample(ts=ts, acceleration=sample.acceleration, speed=sample.speed)
                    )

        buffers.mouse.append(sample)

    def on_click(self, x: float, y: float, button: Optional[str], ts: float) -> None:
        if not self._accepting():
            return
        self.mark_activity(ts)
        self.context.buffers.clicks.append(ClickSample(x=x, y=y, ts=ts, button=button))

    def on_wheel(self, rotation: float, ts: float) -> None:
        if not self._accepting():
            return
        self.mark_activity(ts)
        self.context.buffers.scrolls.append(ScrollSample(amount=rotation, ts=ts))
