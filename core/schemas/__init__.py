"""
BehaviorGuard Core Schemas

Public exports for input and output Pydantic models.
"""

# Input schemas - Raw capture events
from core.schemas.inputs import (
    KeyboardEvent,
    KeyEventType,
    MouseEvent,
    MouseEventType,
    WheelEvent,
)

# Input schemas - Settings
from core.schemas.inputs import (
    MonitorSettings,
    Sensitivity,
)

# Output schemas
from core.schemas.outputs import (
    PROFILE_SCHEMA_VERSION,
    Alert,
    AlertSeverity,
    AlertType,
    BehaviorProfile,
    BotVerdict,
    ClickFeatures,
    FeatureVector,
    KeystrokeFeatures,
    MouseFeatures,
    ProfileSize,
    ReplayVerdict,
    RiskUpdate,
    StatsPayload,
    StoredKeyEvent,
    TrainingPhase,
    TrainingSnapshot,
)

__all__ = [
    # Input - Events
    "KeyEventType",
    "MouseEventType",
    "KeyboardEvent",
    "MouseEvent",
    "WheelEvent",
    # Input - Settings
    "MonitorSettings",
    "Sensitivity",
    # Output - Features
    "KeystrokeFeatures",
    "MouseFeatures",
    "ClickFeatures",
    "FeatureVector",
    # Output - Profile
    "PROFILE_SCHEMA_VERSION",
    "ProfileSize",
    "BehaviorProfile",
    "TrainingPhase",
    "StoredKeyEvent",
    "TrainingSnapshot",
    # Output - Alerts & verdicts
    "AlertType",
    "AlertSeverity",
    "Alert",
    "BotVerdict",
    "ReplayVerdict",
    # Output - UI payloads
    "StatsPayload",
    "RiskUpdate",
]
