"""
BehaviorGuard UI Event Sink

The core publishes named events with JSON payloads; the UI layer is an
external collaborator. EventBuffer keeps recent events with a sequence
number so the operator API can poll them.
"""

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Protocol


logger = logging.getLogger(__name__)


# =============================================================================
# Event names
# =============================================================================

STATS_UPDATE = "stats-update"
RISK_UPDATE = "risk-update"
ALERT = "alert"
TRAINING_PHASE = "training-phase"
TRAINING_COMPLETE = "training-complete"
PROFILE_LOADED = "profile-loaded"
PROFILE_RESET = "profile-reset"
MONITORING_STATUS = "monitoring-status"
CAPTURE_ERROR = "capture-error"

MAX_BUFFERED_EVENTS = 500


class EventSink(Protocol):
    def emit(self, name: str, payload: Any) -> None: ...


class Notifier(Protocol):
    """OS notification surface."""

    def notify(self, title: str, body: str) -> None: ...


@dataclass
class UIEvent:
    seq: int
    name: str
    payload: Any
    ts: int

    def to_dict(self) -> Dict[str, Any]:
        return {"seq": self.seq, "name": self.name, "payload": self.payload, "ts": self.ts}


class EventBuffer:
    """Thread-safe bounded event history with monotonically increasing sequence numbers."""

    def __init__(self, maxlen: int = MAX_BUFFERED_EVENTS) -> None:
        self._events: Deque[UIEvent] = deque(maxlen=maxlen)
        self._seq = 0
        self._lock = threading.Lock()

    def emit(self, name: str, payload: Any) -> None:
        with self._lock:
            self._seq += 1
            self._events.append(UIEvent(self._seq, name, payload, int(time.time() * 1000)))

    def since(self, after: int = 0) -> List[UIEvent]:
        with self._lock:
            return [e for e in self._events if e.seq > after]

    def names(self) -> List[str]:
        with self._lock:
            return [e.name for e in self._events]

    @property
    def last_seq(self) -> int:
        return self._seq


class LoggingNotifier:
    """Default notifier: the host application swaps in a desktop notifier."""

    def notify(self, title: str, body: str) -> None:
        logger.info(f"[notify] {title}: {body}")
