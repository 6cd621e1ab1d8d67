"""
BehaviorGuard Repository

Typed access to the guard's documents on top of a DocumentStore.

Reads fail open: a missing, unreachable or corrupt document yields the
default (fresh settings, no profile, no training progress, no alerts).
Writes are fire-and-forget on a single background worker so they keep
their submission order and never block ingestion or the evaluator.
"""

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from pydantic import ValidationError
from redis.exceptions import RedisError

from core.schemas.inputs import MonitorSettings
from core.schemas.outputs import Alert, BehaviorProfile, TrainingSnapshot
from .store import DocumentStore


logger = logging.getLogger(__name__)


# Document keys
SETTINGS_KEY = "settings"
PROFILE_KEY = "profile"
TRAINING_KEY = "training"
ALERTS_KEY = "alerts"

# Store failures that must never reach the analysis path
STORE_ERRORS = (RedisError, OSError, TypeError, ValueError)


class GuardRepository:
    """
    Data Access Object for settings, profile, training snapshot and alerts.

    Args:
        store: Backing document store.
        background: Run writes on a single worker thread. Set False to
            write synchronously (tests, shutdown).
    """

    def __init__(self, store: DocumentStore, background: bool = True) -> None:
        self.store = store
        self._executor: Optional[ThreadPoolExecutor] = (
            ThreadPoolExecutor(max_workers=1, thread_name_prefix="guard-store")
            if background else None
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _read(self, key: str) -> Any:
        try:
            return self.store.get(key, None)
        except (RedisError, json.JSONDecodeError) as e:
            logger.error(f"Failed to read '{key}': {e}")
            return None

    def _write(self, description: str, fn: Callable[[], None]) -> Optional[Future]:
        def run() -> None:
            try:
                fn()
            except STORE_ERRORS as e:
                logger.error(f"Failed to {description}: {e}")

        if self._executor is None:
            run()
            return None
        try:
            return self._executor.submit(run)
        except RuntimeError as e:
            # Executor already shut down
            logger.warning(f"Dropped write ({description}): {e}")
            return None

    def flush(self) -> None:
        """Block until every write submitted so far has completed."""
        if self._executor is not None:
            self._executor.submit(lambda: None).result()

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    def load_settings(self) -> MonitorSettings:
        data = self._read(SETTINGS_KEY)
        if not data:
            return MonitorSettings()
        try:
            return MonitorSettings.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Stored settings invalid, using defaults: {e.error_count()} errors")
            return MonitorSettings()

    def save_settings(self, settings: MonitorSettings) -> Optional[Future]:
        document = settings.model_dump(mode="json", by_alias=True)
        return self._write("save settings", lambda: self.store.set(SETTINGS_KEY, document))

    # -------------------------------------------------------------------------
    # Profile
    # -------------------------------------------------------------------------

    def load_profile(self) -> Optional[BehaviorProfile]:
        data = self._read(PROFILE_KEY)
        if data is None:
            return None
        try:
            return BehaviorProfile.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Stored profile invalid, ignoring: {e.error_count()} errors")
            return None

    def save_profile(self, profile: BehaviorProfile) -> Optional[Future]:
        document = profile.to_document()
        return self._write("save profile", lambda: self.store.set(PROFILE_KEY, document))

    def delete_profile(self) -> Optional[Future]:
        return self._write("delete profile", lambda: self.store.delete(PROFILE_KEY))

    # -------------------------------------------------------------------------
    # Training snapshot
    # -------------------------------------------------------------------------

    def load_training(self) -> Optional[TrainingSnapshot]:
        data = self._read(TRAINING_KEY)
        if data is None:
            return None
        try:
            return TrainingSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Training snapshot corrupt, starting fresh: {e.error_count()} errors")
            return None

    def save_training(self, snapshot: TrainingSnapshot) -> Optional[Future]:
        document = snapshot.model_dump(mode="json", by_alias=True)
        return self._write("save training snapshot", lambda: self.store.set(TRAINING_KEY, document))

    def delete_training(self) -> Optional[Future]:
        return self._write("delete training snapshot", lambda: self.store.delete(TRAINING_KEY))

    # -------------------------------------------------------------------------
    # Alerts
    # -------------------------------------------------------------------------

    def load_alerts(self) -> List[Alert]:
        data = self._read(ALERTS_KEY)
        if not isinstance(data, list):
            return []
        alerts: List[Alert] = []
        for item in data:
            try:
                alerts.append(Alert.model_validate(item))
            except ValidationError:
                logger.warning("Skipping malformed stored alert")
        return alerts

    def save_alerts(self, alerts: List[Alert]) -> Optional[Future]:
        document = [a.model_dump(mode="json") for a in alerts]
        return self._write("save alerts", lambda: self.store.set(ALERTS_KEY, document))
