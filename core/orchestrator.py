"""
BehaviorGuard Orchestrator

Owns the single AnalysisContext and wires the pipeline:

    capture → ordered queue → RawEventIngestor → FeatureExtractor
            → ProfileTrainer (training) | TrustScorer + detectors (trained)
            → AlertPolicy → UI sink / persistence

Threading model:
- pynput listener threads only enqueue input events (SimpleQueue).
- One analysis worker drains the queue in arrival order and runs the
  evaluator every TICK_INTERVAL_S.
- Operator calls (reset, import, settings) serialise with the worker
  through one re-entrant lock.
- Persistence is fire-and-forget through the repository.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from pydantic import ValidationError

from core.capture import CaptureUnavailableError, EventCallback, InputCapture, InputEvent
from core.events import (
    ALERT,
    CAPTURE_ERROR,
    MONITORING_STATUS,
    PROFILE_LOADED,
    PROFILE_RESET,
    RISK_UPDATE,
    STATS_UPDATE,
    TRAINING_COMPLETE,
    TRAINING_PHASE,
    EventBuffer,
    EventSink,
    LoggingNotifier,
    Notifier,
)
from core.models import (
    AlertLog,
    AlertPolicy,
    BotDetector,
    ProfileTrainer,
    ReplayDetector,
    TrainingTransition,
    TrustScorer,
)
from core.models.trainer import training_progress
from core.processors import FeatureExtractor, RawEventIngestor
from core.processors.ingestor import KeyEvent
from core.processors.stats import round_half_up
from core.schemas.inputs import (
    KeyboardEvent,
    KeyEventType,
    MouseEvent,
    MouseEventType,
    MonitorSettings,
    WheelEvent,
)
from core.schemas.outputs import (
    Alert,
    BehaviorProfile,
    RiskUpdate,
    StatsPayload,
    StoredKeyEvent,
    TrainingPhase,
    TrainingSnapshot,
)
from core.state import AnalysisContext, now_ms
from persistence.repository import GuardRepository
from persistence.store import RedisDocumentStore


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Evaluator cadence
TICK_INTERVAL_S = 3.0

# Training snapshot cadence while monitoring
SNAPSHOT_INTERVAL_S = 30.0

# Keystrokes kept in the training snapshot
SNAPSHOT_KEYSTROKES = 500

# Longest the worker blocks on an empty queue
QUEUE_POLL_S = 0.25

# Events handled per worker cycle before the tick deadline is rechecked
MAX_DRAIN_BATCH = 500


# =============================================================================
# Exceptions
# =============================================================================

class ProfileValidationError(ValueError):
    """Imported profile document does not match the profile schema."""

    def __init__(self, errors: List[Dict[str, Any]]) -> None:
        self.errors = errors
        super().__init__(f"Invalid profile document ({len(errors)} errors)")


# =============================================================================
# Orchestrator
# =============================================================================

class GuardOrchestrator:
    """
    Continuous re-authentication engine for one user session.

    Args:
        repo: Document repository (defaults to Redis-backed).
        sink: UI event sink (defaults to an in-memory EventBuffer).
        notifier: OS notification surface.
        lock_handler: Called when the policy escalates to a session lock.
        clock: Epoch milliseconds source.
        capture_factory: Builds the input capture from an event callback.
    """

    def __init__(
        self,
        repo: Optional[GuardRepository] = None,
        sink: Optional[EventSink] = None,
        notifier: Optional[Notifier] = None,
        lock_handler: Optional[Callable[[float], None]] = None,
        clock: Callable[[], float] = now_ms,
        capture_factory: Callable[[EventCallback], InputCapture] = InputCapture,
    ) -> None:
        self.repo = repo or GuardRepository(RedisDocumentStore())
        self.sink: EventSink = sink if sink is not None else EventBuffer()
        self.notifier: Notifier = notifier or LoggingNotifier()
        self.lock_handler = lock_handler
        self.clock = clock
        self.capture_factory = capture_factory

        self.context = AnalysisContext()
        self.ingestor = RawEventIngestor(self.context)
        self.extractor = FeatureExtractor()
        self.trainer = ProfileTrainer(self.extractor)
        self.scorer = TrustScorer()
        self.bot_detector = BotDetector()
        self.replay_detector = ReplayDetector()
        self.policy = AlertPolicy()
        self.alerts = AlertLog()

        self._lock = threading.RLock()
        self._queue: "queue.SimpleQueue[InputEvent]" = queue.SimpleQueue()
        self._capture: Optional[InputCapture] = None
        self._worker: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

        logger.info("GuardOrchestrator initialized")

    # -------------------------------------------------------------------------
    # Cold start
    # -------------------------------------------------------------------------

    def load(self) -> None:
        """Restore settings, alerts, profile and training progress from the store."""
        with self._lock:
            self.context.settings = self.repo.load_settings()
            self.alerts = AlertLog(self.repo.load_alerts())

            profile = self.repo.load_profile()
            if profile is not None:
                try:
                    self._restore_sequences(profile)
                except ValueError as e:
                    logger.warning(f"Stored profile has bad sequence keys, ignoring it: {e}")
                    self.context.buffers.digraphs.clear()
                    self.context.buffers.trigraphs.clear()
                else:
                    self._activate_profile(profile)
                    logger.info(f"Loaded profile {profile.uid}")
                    return

            snapshot = self.repo.load_training()
            if snapshot is not None:
                self._restore_training(snapshot)

    def _activate_profile(self, profile: BehaviorProfile) -> None:
        self.context.profile = profile
        self.context.session.training = False
        self.context.session.phase = TrainingPhase.COMPLETE

    def _restore_sequences(self, profile: BehaviorProfile) -> None:
        buffers = self.context.buffers
        buffers.digraphs.load(profile.digraphs)
        buffers.trigraphs.load(profile.trigraphs)

    def _restore_training(self, snapshot: TrainingSnapshot) -> None:
        session = self.context.session
        buffers = self.context.buffers
        try:
            buffers.digraphs.load(snapshot.digs)
        except ValueError as e:
            logger.warning(f"Training snapshot has bad digraph keys, starting fresh: {e}")
            buffers.digraphs.clear()
            return

        session.active_time = snapshot.active_time
        # Without a stored profile a "complete" snapshot still needs the full phase
        session.phase = (
            TrainingPhase.INTERMEDIATE if snapshot.phase == TrainingPhase.COMPLETE else snapshot.phase
        )
        for stored in snapshot.ks_events:
            buffers.keystrokes.append(
                KeyEvent(
                    keycode=stored.kc,
                    press_ts=stored.ts,
                    dwell=stored.dwell,
                    flight=stored.flight,
                    nonce=stored.nonce,
                )
            )
        session.last_active = self.clock()
        logger.info(
            f"Resumed training: phase={session.phase.value}, "
            f"active={session.active_time / 1000:.0f}s, keystrokes={len(buffers.keystrokes)}"
        )

    # -------------------------------------------------------------------------
    # Ingestion
    # -------------------------------------------------------------------------

    def submit(self, event: InputEvent) -> None:
        """Enqueue a raw input event (safe from any thread, never blocks)."""
        self._queue.put(event)

    def drain(self, limit: Optional[int] = None) -> int:
        """Process queued events in arrival order, at most ``limit``. Returns the count."""
        count = 0
        while limit is None or count < limit:
            try:
                event = self._queue.get_nowait()
            except queue.Empty:
                return count
            self.handle(event)
            count += 1
        return count

    def handle(self, event: InputEvent) -> None:
        """Apply one input event to the analysis context."""
        with self._lock:
            if isinstance(event, KeyboardEvent):
                if event.event_type == KeyEventType.DOWN:
                    self.ingestor.on_key_down(event.keycode, event.timestamp)
                else:
                    self.ingestor.on_key_up(event.keycode, event.timestamp)
            elif isinstance(event, MouseEvent):
                if event.event_type == MouseEventType.MOVE:
                    self.ingestor.on_mouse_move(event.x, event.y, event.timestamp)
                else:
                    self.ingestor.on_click(event.x, event.y, event.button, event.timestamp)
            elif isinstance(event, WheelEvent):
                self.ingestor.on_wheel(event.rotation, event.timestamp)
            else:
                logger.warning(f"Ignoring unknown input event {type(event).__name__}")

    # -------------------------------------------------------------------------
    # Periodic evaluation
    # -------------------------------------------------------------------------

    def tick(self, now: Optional[float] = None) -> Optional[float]:
        """
        Run one evaluator cycle.

        During training this only advances the training state machine.
        Afterwards it scores trust, runs the detectors and applies the
        alert policy. Returns the trust score computed this cycle, if any.
        """
        with self._lock:
            if not self.context.monitoring:
                return None
            now = self.clock() if now is None else now
            session = self.context.session

            if session.training:
                self._check_training(now)
                self._push_stats()
                return None

            buffers = self.context.buffers
            features = self.extractor.extract(buffers)
            score = self.scorer.score(
                features,
                self.context.profile,
                previous=session.trust_score,
                now=datetime.fromtimestamp(now / 1000.0),
            )
            if score is None:
                self._push_stats()
                return None

            session.trust_score = score
            bot = self.bot_detector.detect(features.ks, features.mouse, buffers)
            replay = self.replay_detector.detect(buffers)
            decision = self.policy.evaluate(
                score, bot, replay, session, self.context.settings, self.context.locked, now
            )
            for alert in decision.alerts:
                self._raise_alert(alert)
            if decision.lock:
                self._lock_session(score)

            risk = RiskUpdate(
                trust_score=score,
                bot_score=bot.confidence,
                ks_feats=features.ks,
                mouse_feats=features.mouse,
                click_feats=features.click,
            )
            self.sink.emit(RISK_UPDATE, risk.model_dump(mode="json", by_alias=True))
            self._push_stats()
            return score

    def _check_training(self, now: float) -> None:
        result = self.trainer.evaluate(self.context, now)

        if result.transition == TrainingTransition.ADVANCED:
            self.notifier.notify(
                "Quick training complete!",
                "Full training has started. Keep using your computer.",
            )
            self.sink.emit(TRAINING_PHASE, {"phase": TrainingPhase.INTERMEDIATE.value})

        elif result.transition == TrainingTransition.COMPLETED and result.profile is not None:
            self.repo.save_profile(result.profile)
            self.repo.delete_training()
            self.notifier.notify(
                "Training complete!",
                "BehaviorGuard is now actively protecting you.",
            )
            self.sink.emit(TRAINING_COMPLETE, result.profile.summary())

    def _raise_alert(self, alert: Alert) -> None:
        self.alerts.add(alert)
        self.repo.save_alerts(self.alerts.persisted())
        if self.context.settings.notifications:
            self.notifier.notify("BehaviorGuard Alert", alert.msg)
        self.sink.emit(ALERT, alert.model_dump(mode="json"))

    def _lock_session(self, score: float) -> None:
        self.context.locked = True
        logger.warning(f"Session locked at trust score {score:.1f}")
        if self.lock_handler is not None:
            self.lock_handler(score)

    def _push_stats(self) -> None:
        self.sink.emit(STATS_UPDATE, self.build_stats().model_dump(mode="json", by_alias=True))

    def build_stats(self) -> StatsPayload:
        with self._lock:
            context = self.context
            buffers = context.buffers
            session = context.session
            return StatsPayload(
                ks=len(buffers.keystrokes),
                mouse=len(buffers.mouse),
                clicks=len(buffers.clicks),
                digs=len(buffers.digraphs),
                is_training=session.training,
                phase=session.phase,
                active_time=int(session.active_time // 1000),
                train_pct=round_half_up(training_progress(context)),
                trust_score=session.trust_score,
                has_profile=context.profile is not None,
                session_start=int(session.started_at),
                is_monitoring=context.monitoring,
            )

    # -------------------------------------------------------------------------
    # Monitoring lifecycle
    # -------------------------------------------------------------------------

    @property
    def monitoring(self) -> bool:
        return self.context.monitoring

    def start_monitoring(self, run_worker: bool = True) -> bool:
        """Install the input hooks and start the analysis worker (idempotent)."""
        with self._lock:
            if self.context.monitoring:
                return True

            capture = self._capture or self.capture_factory(self.submit)
            try:
                capture.start()
            except CaptureUnavailableError as e:
                logger.error(f"Input capture unavailable, monitoring stays off: {e}")
                self.sink.emit(CAPTURE_ERROR, {"message": str(e)})
                self.sink.emit(MONITORING_STATUS, False)
                return False

            self._capture = capture
            self.context.monitoring = True
            if run_worker:
                self._start_worker()
            self.sink.emit(MONITORING_STATUS, True)
            logger.info("Monitoring started")
            return True

    def stop_monitoring(self) -> bool:
        """Release the input hooks, stop the worker and snapshot training (idempotent)."""
        with self._lock:
            if not self.context.monitoring:
                return False
            self.context.monitoring = False
            if self._capture is not None:
                self._capture.stop()
            worker = self._worker
            self._worker = None
            self._stop_event.set()

        # The worker takes the lock on every cycle; join outside it
        if worker is not None:
            worker.join(timeout=TICK_INTERVAL_S + 2.0)

        self.save_training_progress()
        self.sink.emit(MONITORING_STATUS, False)
        logger.info("Monitoring stopped")
        return False

    def toggle_monitoring(self) -> bool:
        with self._lock:
            running = self.context.monitoring
        # stop_monitoring joins the worker, which must not happen under the lock
        if running:
            return self.stop_monitoring()
        return self.start_monitoring()

    def _start_worker(self) -> None:
        self._stop_event = threading.Event()
        self._worker = threading.Thread(
            target=self._run,
            args=(self._stop_event,),
            name="guard-analysis",
            daemon=True,
        )
        self._worker.start()

    def _run(self, stop_event: threading.Event) -> None:
        next_tick = time.monotonic() + TICK_INTERVAL_S
        next_snapshot = time.monotonic() + SNAPSHOT_INTERVAL_S

        while not stop_event.is_set():
            wait = max(0.0, min(QUEUE_POLL_S, next_tick - time.monotonic()))
            try:
                event = self._queue.get(timeout=wait) if wait > 0 else self._queue.get_nowait()
            except queue.Empty:
                event = None

            try:
                if event is not None:
                    self.handle(event)
                    self.drain(MAX_DRAIN_BATCH)

                current = time.monotonic()
                if current >= next_tick:
                    next_tick = current + TICK_INTERVAL_S
                    self.tick()
                if current >= next_snapshot:
                    next_snapshot = current + SNAPSHOT_INTERVAL_S
                    self.save_training_progress()
            except Exception:
                # Keep the worker alive; a failed cycle must not stop monitoring
                logger.exception("Analysis cycle failed")

    # -------------------------------------------------------------------------
    # Training snapshot
    # -------------------------------------------------------------------------

    def save_training_progress(self) -> None:
        with self._lock:
            session = self.context.session
            if not session.training:
                return
            buffers = self.context.buffers
            recent = list(buffers.keystrokes)[-SNAPSHOT_KEYSTROKES:]
            snapshot = TrainingSnapshot(
                ks_events=[
                    StoredKeyEvent(kc=k.keycode, dwell=k.dwell, flight=k.flight, ts=k.press_ts, nonce=k.nonce)
                    for k in recent
                ],
                active_time=session.active_time,
                phase=session.phase,
                digs=buffers.digraphs.to_dict(),
                saved=int(self.clock()),
            )
        self.repo.save_training(snapshot)

    # -------------------------------------------------------------------------
    # Profile management
    # -------------------------------------------------------------------------

    def reset_profile(self) -> None:
        """Discard the profile and all learned state; training restarts from scratch."""
        with self._lock:
            self.context.reset()
            self.alerts.clear()
            self.repo.delete_profile()
            self.repo.delete_training()
            self.repo.save_alerts([])
            self.sink.emit(PROFILE_RESET, {})
            logger.info("Profile reset, training restarted")

    def export_profile(self) -> Optional[Dict[str, Any]]:
        with self._lock:
            if self.context.profile is None:
                return None
            return self.context.profile.to_document()

    def import_profile(self, document: Dict[str, Any]) -> BehaviorProfile:
        """
        Validate and activate a profile document.

        Raises:
            ProfileValidationError: the document does not match the schema;
                the active profile is left unchanged.
        """
        try:
            profile = BehaviorProfile.model_validate(document)
        except ValidationError as e:
            logger.warning(f"Rejected profile import: {e.error_count()} validation errors")
            raise ProfileValidationError(e.errors(include_url=False, include_context=False)) from e

        with self._lock:
            self._activate_profile(profile)
            self.repo.save_profile(profile)
            self.sink.emit(PROFILE_LOADED, profile.summary())
        logger.info(f"Imported profile {profile.uid}")
        return profile

    # -------------------------------------------------------------------------
    # Settings, alerts, lock
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> MonitorSettings:
        return self.context.settings

    def update_settings(self, updates: Dict[str, Any]) -> MonitorSettings:
        """Merge a partial settings document; raises ValidationError on bad values."""
        with self._lock:
            settings = self.context.settings.merged(updates)
            self.context.settings = settings
        self.repo.save_settings(settings)
        return settings

    def get_alerts(self) -> List[Alert]:
        with self._lock:
            return self.alerts.items()

    def clear_alerts(self) -> None:
        with self._lock:
            self.alerts.clear()
        self.repo.save_alerts([])

    @property
    def locked(self) -> bool:
        return self.context.locked

    def unlock(self) -> None:
        with self._lock:
            self.context.locked = False
        logger.info("Session unlocked")

    def close(self) -> None:
        self.stop_monitoring()
        self.repo.close()
