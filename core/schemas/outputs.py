"""
BehaviorGuard Core Output Schemas

This module defines Pydantic V2 models that strictly enforce the JSON
contracts produced by the analysis core:
- Per-channel feature vectors
- The versioned BehaviorProfile document (import/export format)
- Alerts, detector verdicts and UI event payloads
"""

from enum import Enum
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


PROFILE_SCHEMA_VERSION = "3.0"


# =============================================================================
# Enums
# =============================================================================

class TrainingPhase(str, Enum):
    """Training state machine phase."""
    QUICK = "quick"
    INTERMEDIATE = "intermediate"
    COMPLETE = "complete"


class AlertType(str, Enum):
    """Kind of detection that raised an alert."""
    BOT = "bot"
    REPLAY = "replay"
    ANOMALY = "anomaly"


class AlertSeverity(str, Enum):
    """Alert severity."""
    HIGH = "high"
    CRITICAL = "critical"


# =============================================================================
# Feature Vectors
# =============================================================================

class _FeatureModel(BaseModel):
    """Base for feature vectors: camelCase on the wire, snake_case in code."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class KeystrokeFeatures(_FeatureModel):
    """Keystroke dynamics statistics (all timings in milliseconds)."""
    med_dwell: float = Field(..., alias="medDwell")
    mad_dwell: float = Field(..., alias="madDwell")
    p25_dwell: float = Field(..., alias="p25Dwell")
    p75_dwell: float = Field(..., alias="p75Dwell")
    iqr_dwell: float = Field(..., alias="iqrDwell")
    avg_dwell: float = Field(..., alias="avgDwell")
    std_dwell: float = Field(..., alias="stdDwell")
    med_flight: float = Field(..., alias="medFlight")
    mad_flight: float = Field(..., alias="madFlight")
    med_iv: float = Field(..., alias="medIv", description="Median inter-keystroke interval")
    mad_iv: float = Field(..., alias="madIv")
    iqr_iv: float = Field(..., alias="iqrIv")
    wpm: float = Field(..., description="Estimated words per minute")
    dig_var: float = Field(..., alias="digVar", description="Median per-digraph interval stdev")
    n: int = Field(..., ge=0, description="Qualifying keystroke count")


class MouseFeatures(_FeatureModel):
    """Mouse movement statistics (speeds in px/s)."""
    avg_vel: float = Field(..., alias="avgVel")
    std_vel: float = Field(..., alias="stdVel")
    curvature: float = Field(..., description="Mean turning angle over pi")
    entropy: float = Field(..., ge=0.0, le=1.0, description="Normalized angle entropy")
    jitter_freq: float = Field(..., alias="jitterFreq", description="Tremor frequency (Hz)")
    jitter_amp: float = Field(..., alias="jitterAmp", description="Tremor amplitude")
    n: int = Field(..., ge=0)


class ClickFeatures(_FeatureModel):
    """Click cadence statistics."""
    avg_iv: float = Field(..., alias="avgIv")
    std_iv: float = Field(..., alias="stdIv")
    avg_dist: float = Field(..., alias="avgDist")
    cpm: float = Field(..., description="Clicks per minute")
    n: int = Field(..., ge=0)


class FeatureVector(_FeatureModel):
    """Per-channel snapshot. ``None`` means insufficient samples."""
    ks: Optional[KeystrokeFeatures] = None
    mouse: Optional[MouseFeatures] = None
    click: Optional[ClickFeatures] = None

    @property
    def has_primary_channel(self) -> bool:
        """Keystroke or mouse data is available."""
        return self.ks is not None or self.mouse is not None


# =============================================================================
# Behavior Profile (versioned document)
# =============================================================================

class ProfileSize(_FeatureModel):
    """Sample-count summary at training completion."""
    keystrokes: int = Field(..., ge=0)
    mouse: int = Field(..., ge=0)
    clicks: int = Field(..., ge=0)
    digraphs: int = Field(..., ge=0)


class BehaviorProfile(BaseModel):
    """
    Baseline interaction profile.

    Created once at training completion and only replaced wholesale
    (reset or import). The model is frozen so it cannot be partially
    mutated.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    uid: str = Field(..., min_length=1, description="Profile owner identifier")
    created_at: int = Field(..., alias="createdAt", ge=0, description="Epoch milliseconds")
    features: FeatureVector = Field(..., description="Baseline feature vectors")
    digraphs: Dict[str, List[float]] = Field(default_factory=dict)
    trigraphs: Dict[str, List[float]] = Field(default_factory=dict)
    size: ProfileSize = Field(..., description="Sample-count summary")
    v: Literal["3.0"] = Field(PROFILE_SCHEMA_VERSION, description="Schema version")

    @field_validator("digraphs", "trigraphs")
    @classmethod
    def _check_sequence_ids(cls, value: Dict[str, List[float]]) -> Dict[str, List[float]]:
        for key in value:
            parts = key.split("_")
            if len(parts) < 2 or not all(p.isascii() and p.isdigit() for p in parts):
                raise ValueError(f"invalid key sequence id {key!r}")
        return value

    @model_validator(mode="after")
    def _require_baseline(self) -> "BehaviorProfile":
        if not self.features.has_primary_channel:
            raise ValueError("profile features must include keystroke or mouse baseline")
        return self

    def to_document(self) -> Dict:
        """Serialize to the persisted/exported JSON document."""
        return self.model_dump(mode="json", by_alias=True)

    def summary(self) -> Dict:
        """Payload for ``training-complete`` / ``profile-loaded`` events."""
        return {"size": self.size.model_dump(), "createdAt": self.created_at}


# =============================================================================
# Alerts
# =============================================================================

class Alert(BaseModel):
    """A session alert raised by the alert policy."""
    model_config = ConfigDict(populate_by_name=True)

    type: AlertType = Field(..., description="bot, replay or anomaly")
    severity: AlertSeverity = Field(..., description="high or critical")
    msg: str = Field(..., description="Human readable message")
    ts: int = Field(..., description="Epoch milliseconds")
    id: str = Field(..., description="Unique alert identifier")


# =============================================================================
# Detector Verdicts
# =============================================================================

class BotVerdict(BaseModel):
    """Result of the additive bot scorer."""
    is_bot: bool = Field(..., alias="isBot")
    confidence: float = Field(..., ge=0.0, le=100.0)
    reasons: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)

    @property
    def reason(self) -> str:
        return "; ".join(self.reasons)


class ReplayVerdict(BaseModel):
    """Result of the replay detector."""
    is_replay: bool = Field(..., alias="isReplay")
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# UI Event Payloads
# =============================================================================

class StatsPayload(BaseModel):
    """``stats-update`` payload."""
    model_config = ConfigDict(populate_by_name=True)

    ks: int = Field(..., ge=0, description="Buffered keystroke events")
    mouse: int = Field(..., ge=0, description="Buffered mouse samples")
    clicks: int = Field(..., ge=0)
    digs: int = Field(..., ge=0, description="Distinct digraphs")
    is_training: bool = Field(..., alias="isTraining")
    phase: TrainingPhase
    active_time: int = Field(..., alias="activeTime", description="Active seconds")
    train_pct: int = Field(..., alias="trainPct", ge=0, le=100)
    trust_score: Optional[float] = Field(None, alias="trustScore")
    has_profile: bool = Field(..., alias="hasProfile")
    session_start: int = Field(..., alias="sessionStart")
    is_monitoring: bool = Field(..., alias="isMonitoring")


class RiskUpdate(BaseModel):
    """``risk-update`` payload."""
    model_config = ConfigDict(populate_by_name=True)

    trust_score: float = Field(..., alias="trustScore", ge=0.0, le=100.0)
    bot_score: float = Field(..., alias="botScore", ge=0.0, le=100.0)
    ks_feats: Optional[KeystrokeFeatures] = Field(None, alias="ksFeats")
    mouse_feats: Optional[MouseFeatures] = Field(None, alias="mouseFeats")
    click_feats: Optional[ClickFeatures] = Field(None, alias="clickFeats")


# =============================================================================
# Training Snapshot (ephemeral, persisted under "training")
# =============================================================================

class StoredKeyEvent(BaseModel):
    """Keystroke event as it is kept in the training snapshot."""
    kc: int = Field(..., description="Key code")
    dwell: float = Field(..., ge=1.0, le=1000.0)
    flight: Optional[float] = None
    ts: float = Field(..., description="Press timestamp (ms)")
    nonce: str = Field(..., min_length=1)


class TrainingSnapshot(BaseModel):
    """Training progress saved periodically so a restart resumes training."""
    model_config = ConfigDict(populate_by_name=True)

    ks_events: List[StoredKeyEvent] = Field(default_factory=list, alias="ksEvents")
    active_time: float = Field(0.0, alias="activeTime", ge=0.0, description="Active milliseconds")
    phase: TrainingPhase = TrainingPhase.QUICK
    digs: Dict[str, List[float]] = Field(default_factory=dict)
    saved: int = Field(0, description="Epoch milliseconds of the snapshot")
