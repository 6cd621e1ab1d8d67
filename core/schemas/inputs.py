"""
BehaviorGuard Core Input Schemas

This module defines Pydantic V2 models for:
- Raw input events handed from the capture layer to the analysis context
- Operator-controlled monitor settings (persisted under ``settings``)
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# Enums
# =============================================================================

class KeyEventType(str, Enum):
    """Keyboard event type for dwell/flight time calculation."""
    DOWN = "DOWN"
    UP = "UP"


class MouseEventType(str, Enum):
    """Mouse event type for movement/click tracking."""
    MOVE = "MOVE"
    CLICK = "CLICK"


class Sensitivity(str, Enum):
    """Alerting sensitivity, mapped to a trust-score threshold."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# =============================================================================
# Raw Input Events
# =============================================================================

class KeyboardEvent(BaseModel):
    """Single key transition captured by the global input hook."""
    keycode: int = Field(..., description="Platform key code")
    event_type: KeyEventType = Field(..., description="DOWN or UP event")
    timestamp: float = Field(..., description="Event timestamp in milliseconds")


class MouseEvent(BaseModel):
    """Single mouse movement or click captured by the global input hook."""
    x: float = Field(..., description="X coordinate on screen")
    y: float = Field(..., description="Y coordinate on screen")
    event_type: MouseEventType = Field(..., description="MOVE or CLICK event")
    button: Optional[str] = Field(None, description="Button name for CLICK events")
    timestamp: float = Field(..., description="Event timestamp in milliseconds")


class WheelEvent(BaseModel):
    """Single scroll-wheel rotation captured by the global input hook."""
    rotation: float = Field(..., description="Wheel rotation amount (signed)")
    timestamp: float = Field(..., description="Event timestamp in milliseconds")


# =============================================================================
# Monitor Settings
# =============================================================================

SENSITIVITY_THRESHOLDS = {
    Sensitivity.LOW: 15.0,
    Sensitivity.MEDIUM: 30.0,
    Sensitivity.HIGH: 50.0,
}

DEFAULT_THRESHOLD = 30.0


class MonitorSettings(BaseModel):
    """
    User settings document.

    Only ``enabled``, ``sensitivity``, ``notifications`` and ``auto_block``
    are consumed by the analysis core. The remaining fields are stored and
    handed back to the desktop shell untouched.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    enabled: bool = Field(True, description="Gates all ingestion")
    sensitivity: Sensitivity = Field(Sensitivity.MEDIUM, description="Alert sensitivity")
    privacy_mode: bool = Field(True, alias="privacyMode")
    notifications: bool = Field(True, description="Gates OS notifications for alerts")
    auto_block: bool = Field(False, alias="autoBlock", description="Gates auto-lock escalation")
    auto_start: bool = Field(True, alias="autoStart")
    launch_at_login: bool = Field(False, alias="launchAtLogin")

    @property
    def threshold(self) -> float:
        """Trust-score threshold below which a tick counts as low."""
        return SENSITIVITY_THRESHOLDS.get(self.sensitivity, DEFAULT_THRESHOLD)

    def merged(self, updates: dict) -> "MonitorSettings":
        """Return a copy with ``updates`` (alias or field names) applied."""
        data = self.model_dump(by_alias=True)
        for key, value in updates.items():
            field = MonitorSettings.model_fields.get(key)
            if field is not None and field.alias:
                key = field.alias
            data[key] = value
        return MonitorSettings.model_validate(data)
