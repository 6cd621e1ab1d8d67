"""
BehaviorGuard Test Suite - Shared Pytest Fixtures

This conftest.py provides fixtures for all test categories including:
- Analysis context, ingestor and a scripted input feeder
- Baseline feature vectors and profile builders
- In-memory persistence and a fully wired orchestrator with fake capture

Usage:
    pytest tests/ -v
"""

import math
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from core.capture import CaptureUnavailableError
from core.events import EventBuffer
from core.processors.ingestor import RawEventIngestor
from core.schemas.outputs import (
    BehaviorProfile,
    ClickFeatures,
    FeatureVector,
    KeystrokeFeatures,
    MouseFeatures,
    ProfileSize,
)
from core.state import AnalysisContext
from persistence.repository import GuardRepository
from persistence.store import MemoryDocumentStore


# =============================================================================
# Scripted Input
# =============================================================================

class EventFeeder:
    """
    Drives a RawEventIngestor with plausible human-looking input.

    Keeps its own clock (ms) so successive calls continue in time.
    """

    INTERVALS = (110.0, 145.0, 125.0, 170.0, 95.0, 135.0)
    DWELLS = (62.0, 75.0, 58.0, 90.0, 70.0)
    KEYCODES = (65, 83, 68, 70, 74, 75, 76)

    def __init__(self, ingestor: RawEventIngestor, start: float = 1_000.0) -> None:
        self.ingestor = ingestor
        self.ts = start

    def type(
        self,
        count: int,
        keycodes: Sequence[int] = KEYCODES,
        intervals: Sequence[float] = INTERVALS,
        dwells: Sequence[float] = DWELLS,
    ) -> float:
        for i in range(count):
            kc = keycodes[i % len(keycodes)]
            press = self.ts
            self.ingestor.on_key_down(kc, press)
            self.ingestor.on_key_up(kc, press + dwells[i % len(dwells)])
            self.ts = press + intervals[i % len(intervals)]
        return self.ts

    def move(self, points: Sequence[Tuple[float, float]], step: float = 16.0) -> float:
        for x, y in points:
            self.ingestor.on_mouse_move(x, y, self.ts)
            self.ts += step
        return self.ts

    def wander(self, count: int) -> float:
        """Curvy cursor path with small corrections."""
        points = [
            (i * 6.0, 40.0 * math.sin(i / 4.0) + 3.0 * ((i * 7) % 5))
            for i in range(count)
        ]
        return self.move(points)

    def line(self, count: int, step_px: float = 5.0) -> float:
        """Perfectly straight, constant-speed path."""
        return self.move([(i * step_px, 0.0) for i in range(count)], step=10.0)

    def click(self, count: int) -> float:
        for i in range(count):
            self.ingestor.on_click(100.0 + (i * 37) % 300, 200.0 + (i * 53) % 250, "left", self.ts)
            self.ts += 900.0 + (i % 3) * 150.0
        return self.ts


@pytest.fixture
def context() -> AnalysisContext:
    """Analysis context with monitoring on (ingestion accepted)."""
    return AnalysisContext(monitoring=True)


@pytest.fixture
def ingestor(context) -> RawEventIngestor:
    return RawEventIngestor(context)


@pytest.fixture
def feeder(ingestor) -> EventFeeder:
    return EventFeeder(ingestor)


# =============================================================================
# Feature & Profile Fixtures
# =============================================================================

@pytest.fixture
def ks_features() -> KeystrokeFeatures:
    return KeystrokeFeatures(
        med_dwell=70.0, mad_dwell=15.0, p25_dwell=60.0, p75_dwell=85.0,
        iqr_dwell=25.0, avg_dwell=72.0, std_dwell=14.0,
        med_flight=60.0, mad_flight=20.0,
        med_iv=130.0, mad_iv=25.0, iqr_iv=40.0,
        wpm=55.0, dig_var=18.0, n=200,
    )


@pytest.fixture
def mouse_features() -> MouseFeatures:
    return MouseFeatures(
        avg_vel=480.0, std_vel=210.0, curvature=0.22, entropy=0.55,
        jitter_freq=7.5, jitter_amp=900.0, n=400,
    )


@pytest.fixture
def click_features() -> ClickFeatures:
    return ClickFeatures(avg_iv=2400.0, std_iv=1100.0, avg_dist=310.0, cpm=18.0, n=40)


def build_profile(
    ks: Optional[KeystrokeFeatures] = None,
    mouse: Optional[MouseFeatures] = None,
    click: Optional[ClickFeatures] = None,
) -> BehaviorProfile:
    return BehaviorProfile(
        uid="user_0123456789ab",
        created_at=1_700_000_000_000,
        features=FeatureVector(ks=ks, mouse=mouse, click=click),
        digraphs={"65_83": [120.0, 130.0]},
        trigraphs={"65_83_68": [250.0]},
        size=ProfileSize(keystrokes=200, mouse=400, clicks=40, digraphs=1),
    )


@pytest.fixture
def make_profile() -> Callable[..., BehaviorProfile]:
    return build_profile


@pytest.fixture
def profile(ks_features, mouse_features, click_features) -> BehaviorProfile:
    return build_profile(ks_features, mouse_features, click_features)


# =============================================================================
# Persistence Fixtures
# =============================================================================

@pytest.fixture
def memory_store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture
def repository(memory_store) -> GuardRepository:
    """Synchronous repository so writes are visible immediately."""
    return GuardRepository(memory_store, background=False)


# =============================================================================
# Orchestrator Fixtures
# =============================================================================

class ManualClock:
    """Epoch-ms clock advanced explicitly by the test."""

    def __init__(self, start: float = 1_704_290_400_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> float:
        self.now += ms
        return self.now


class FakeCapture:
    """Stands in for the pynput listeners."""

    def __init__(self, on_event, fail: bool = False) -> None:
        self.on_event = on_event
        self.fail = fail
        self.starts = 0
        self.stops = 0

    def start(self) -> None:
        if self.fail:
            raise CaptureUnavailableError("accessibility permission denied")
        self.starts += 1

    def stop(self) -> None:
        self.stops += 1

    def emit(self, event) -> None:
        self.on_event(event)


class FakeCaptureFactory:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.instances: List[FakeCapture] = []

    def __call__(self, on_event) -> FakeCapture:
        capture = FakeCapture(on_event, fail=self.fail)
        self.instances.append(capture)
        return capture


class RecordingNotifier:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, str]] = []

    def notify(self, title: str, body: str) -> None:
        self.messages.append((title, body))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def capture_factory() -> FakeCaptureFactory:
    return FakeCaptureFactory()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def events() -> EventBuffer:
    return EventBuffer()


@pytest.fixture
def lock_requests() -> List[float]:
    return []


@pytest.fixture
def orchestrator(repository, events, notifier, lock_requests, clock, capture_factory):
    """Fully wired orchestrator; monitoring is started without the worker thread."""
    from core.orchestrator import GuardOrchestrator

    orch = GuardOrchestrator(
        repo=repository,
        sink=events,
        notifier=notifier,
        lock_handler=lock_requests.append,
        clock=clock,
        capture_factory=capture_factory,
    )
    yield orch
    orch.close()


@pytest.fixture
def make_feeder() -> Callable[..., EventFeeder]:
    return EventFeeder
