"""
BehaviorGuard Profile Trainer

Phased training state machine driven by accumulated active usage time:

    quick (30 min) -> intermediate (120 min) -> complete

Completion extracts the baseline features from the live buffers and freezes
them into a BehaviorProfile. If neither keystroke nor mouse features can be
extracted yet, completion is deferred to a later evaluation.
"""

import logging
import secrets
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from core.processors.features import FeatureExtractor
from core.schemas.outputs import (
    PROFILE_SCHEMA_VERSION,
    BehaviorProfile,
    ProfileSize,
    TrainingPhase,
)
from core.state import AnalysisContext


logger = logging.getLogger(__name__)


# Active-time targets (ms)
QUICK_TARGET_MS = 30 * 60 * 1000
FULL_TARGET_MS = 120 * 60 * 1000


class TrainingTransition(str, Enum):
    """Outcome of one training evaluation."""
    NONE = "none"
    ADVANCED = "advanced"
    COMPLETED = "completed"
    DEFERRED = "deferred"


@dataclass
class TrainingResult:
    transition: TrainingTransition
    progress: float
    profile: Optional[BehaviorProfile] = None


def phase_target(phase: TrainingPhase) -> int:
    return QUICK_TARGET_MS if phase == TrainingPhase.QUICK else FULL_TARGET_MS


def training_progress(context: AnalysisContext) -> float:
    """Percent of the current phase target reached (100 once trained)."""
    session = context.session
    if not session.training:
        return 100.0
    return min(100.0, session.active_time / phase_target(session.phase) * 100.0)


class ProfileTrainer:
    """
    Evaluates training progress and performs phase transitions.

    The trainer mutates only SessionState; persistence and UI notification
    of the transition are left to the caller.
    """

    def __init__(self, extractor: Optional[FeatureExtractor] = None) -> None:
        self.extractor = extractor or FeatureExtractor()

    def evaluate(self, context: AnalysisContext, now: float) -> TrainingResult:
        session = context.session
        if not session.training:
            return TrainingResult(TrainingTransition.NONE, 100.0)

        progress = training_progress(context)
        if progress < 100.0:
            return TrainingResult(TrainingTransition.NONE, progress)

        if session.phase == TrainingPhase.QUICK:
            session.phase = TrainingPhase.INTERMEDIATE
            session.active_time = 0.0
            session.last_active = now
            logger.info("Quick training complete, intermediate phase started")
            return TrainingResult(TrainingTransition.ADVANCED, 0.0)

        profile = self.build_profile(context, now)
        if profile is None:
            logger.info("Training target reached but no keystroke/mouse baseline yet, deferring")
            return TrainingResult(TrainingTransition.DEFERRED, progress)

        context.profile = profile
        session.training = False
        session.phase = TrainingPhase.COMPLETE
        logger.info(
            f"Training complete: profile {profile.uid} "
            f"({profile.size.keystrokes} keystrokes, {profile.size.mouse} mouse samples)"
        )
        return TrainingResult(TrainingTransition.COMPLETED, 100.0, profile)

    def build_profile(self, context: AnalysisContext, now: float) -> Optional[BehaviorProfile]:
        """Freeze the current buffers into a baseline, or None if data is insufficient."""
        features = self.extractor.extract(context.buffers)
        if not features.has_primary_channel:
            return None

        buffers = context.buffers
        return BehaviorProfile(
            uid=f"user_{secrets.token_hex(6)}",
            created_at=int(now),
            features=features,
            digraphs=buffers.digraphs.to_dict(),
            trigraphs=buffers.trigraphs.to_dict(),
            size=ProfileSize(
                keystrokes=len(buffers.keystrokes),
                mouse=len(buffers.mouse),
                clicks=len(buffers.clicks),
                digraphs=len(buffers.digraphs),
            ),
            v=PROFILE_SCHEMA_VERSION,
        )
