"""
BehaviorGuard Core Models

Training state machine, trust scoring, anomaly detection and alert policy.
"""

from core.models.alerts import AlertLog, AlertPolicy
from core.models.bot import BotDetector
from core.models.replay import ReplayDetector
from core.models.trainer import ProfileTrainer, TrainingTransition
from core.models.trust import TrustScorer

__all__ = [
    "ProfileTrainer",
    "TrainingTransition",
    "TrustScorer",
    "BotDetector",
    "ReplayDetector",
    "AlertPolicy",
    "AlertLog",
]
