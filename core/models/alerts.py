"""
BehaviorGuard Alert Policy

Turns detector verdicts and trust scores into alerts and escalation
decisions, and keeps the bounded session alert log.
"""

import logging
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Iterable, List, Optional

from core.processors.stats import round_half_up
from core.schemas.inputs import MonitorSettings
from core.schemas.outputs import (
    Alert,
    AlertSeverity,
    AlertType,
    BotVerdict,
    ReplayVerdict,
)
from core.state import SessionState


logger = logging.getLogger(__name__)


# Consecutive low-score ticks before an anomaly alert
LOW_SCORE_CYCLES = 3

# Below this score anomalies are critical and may lock the session
CRITICAL_SCORE = 20.0

# Alert log bounds
MAX_ALERTS = 200
MAX_PERSISTED_ALERTS = 100


def new_alert(alert_type: AlertType, severity: AlertSeverity, msg: str, ts: float) -> Alert:
    return Alert(type=alert_type, severity=severity, msg=msg, ts=int(ts), id=uuid.uuid4().hex)


@dataclass
class PolicyDecision:
    """Alerts raised by one evaluation and whether to lock the session."""
    alerts: List[Alert] = field(default_factory=list)
    lock: bool = False


class AlertPolicy:
    """
    Per-tick alerting rules (post-training only).

    The consecutive-low counter lives on SessionState so a profile reset
    clears it together with the rest of the session.
    """

    def evaluate(
        self,
        score: float,
        bot: BotVerdict,
        replay: ReplayVerdict,
        session: SessionState,
        settings: MonitorSettings,
        locked: bool,
        now: float,
    ) -> PolicyDecision:
        decision = PolicyDecision()

        if bot.is_bot:
            decision.alerts.append(
                new_alert(AlertType.BOT, AlertSeverity.CRITICAL, f"Bot activity: {bot.reason}", now)
            )
        if replay.is_replay:
            decision.alerts.append(
                new_alert(AlertType.REPLAY, AlertSeverity.HIGH, f"Replay attack: {replay.reason}", now)
            )

        if score < settings.threshold:
            session.consecutive_low += 1
            if session.consecutive_low >= LOW_SCORE_CYCLES:
                severity = AlertSeverity.CRITICAL if score < CRITICAL_SCORE else AlertSeverity.HIGH
                decision.alerts.append(
                    new_alert(
                        AlertType.ANOMALY,
                        severity,
                        f"Trust score at {round_half_up(score)}% for 3+ cycles",
                        now,
                    )
                )
                if settings.auto_block and score < CRITICAL_SCORE and not locked:
                    logger.warning(f"Trust score {score:.1f} below {CRITICAL_SCORE}, requesting lock")
                    decision.lock = True
                session.consecutive_low = 0
        else:
            session.consecutive_low = 0

        return decision


class AlertLog:
    """Session alerts, newest first."""

    def __init__(self, alerts: Optional[Iterable[Alert]] = None) -> None:
        self._alerts: Deque[Alert] = deque(alerts or (), maxlen=MAX_ALERTS)

    def add(self, alert: Alert) -> Alert:
        self._alerts.appendleft(alert)
        logger.info(f"Alert [{alert.severity.value}] {alert.type.value}: {alert.msg}")
        return alert

    def clear(self) -> None:
        self._alerts.clear()

    def items(self) -> List[Alert]:
        return list(self._alerts)

    def persisted(self) -> List[Alert]:
        """The slice written to the document store."""
        return list(self._alerts)[:MAX_PERSISTED_ALERTS]

    def __len__(self) -> int:
        return len(self._alerts)
