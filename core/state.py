"""
BehaviorGuard Analysis Context

The single mutable state shared by ingestion and the periodic evaluator.
There is no process-wide singleton: each orchestrator owns one context and
passes it explicitly to every component.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Optional

from core.processors.ingestor import RawBuffers
from core.schemas.inputs import MonitorSettings
from core.schemas.outputs import BehaviorProfile, TrainingPhase


def now_ms() -> float:
    """Wall clock in epoch milliseconds."""
    return time.time() * 1000.0


@dataclass
class SessionState:
    """Training and scoring state for the current user session."""

    training: bool = True
    """Whether the baseline is still being learned."""

    phase: TrainingPhase = TrainingPhase.QUICK
    """Training state machine phase."""

    active_time: float = 0.0
    """Accumulated engaged usage in the current phase (ms)."""

    last_active: Optional[float] = None
    """Timestamp of the previous activity signal (ms)."""

    train_start: Optional[float] = None
    """Timestamp of the first activity while training (ms)."""

    trust_score: Optional[float] = None
    """Latest trust score, None until first computed."""

    consecutive_low: int = 0
    """Consecutive evaluator ticks with a score under threshold."""

    started_at: float = field(default_factory=now_ms)
    """Session start (ms)."""


@dataclass
class AnalysisContext:
    """Everything the analysis pipeline reads and writes."""

    settings: MonitorSettings = field(default_factory=MonitorSettings)
    buffers: RawBuffers = field(default_factory=RawBuffers)
    session: SessionState = field(default_factory=SessionState)
    profile: Optional[BehaviorProfile] = None
    monitoring: bool = False
    locked: bool = False

    def reset(self) -> None:
        """Return buffers and session state to their cold-start values."""
        self.buffers = RawBuffers()
        self.session = SessionState()
        self.profile = None
        self.locked = False
