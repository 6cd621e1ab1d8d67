"""
Orchestrator Integration Tests

Tests the full flow of the GuardOrchestrator using:
- In-memory document store (synchronous writes)
- Fake input capture in place of the pynput listeners
- Scripted keyboard and mouse input from the EventFeeder

Test Flow:
1. Monitoring lifecycle and capture failure
2. Ingestion through the ordered queue
3. Training phases up to a frozen profile
4. Trust scoring, anomaly alerts and lock escalation
5. Profile reset / import / export and cold-start restore
"""

import time

import pytest

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
)
from core.models import trust as trust_module
from core.models.trainer import FULL_TARGET_MS, QUICK_TARGET_MS
from core.orchestrator import GuardOrchestrator, ProfileValidationError
from core.schemas.inputs import KeyboardEvent, KeyEventType, MouseEvent, MouseEventType
from core.schemas.outputs import AlertSeverity, AlertType, KeystrokeFeatures, TrainingPhase


# =============================================================================
# Helpers
# =============================================================================

def key_press(keycode: int, ts: float, dwell: float = 80.0):
    return [
        KeyboardEvent(keycode=keycode, event_type=KeyEventType.DOWN, timestamp=ts),
        KeyboardEvent(keycode=keycode, event_type=KeyEventType.UP, timestamp=ts + dwell),
    ]


def payloads(events, name):
    return [e.payload for e in events.since(0) if e.name == name]


@pytest.fixture
def monitored(orchestrator):
    """Orchestrator with monitoring on and no worker thread; ticks are driven by the test."""
    assert orchestrator.start_monitoring(run_worker=False) is True
    return orchestrator


@pytest.fixture
def feed(monitored, clock, make_feeder):
    """Feeder writing straight into the orchestrator's ingestor."""
    return make_feeder(monitored.ingestor, start=clock.now)


@pytest.fixture
def foreign_ks():
    """Keystroke baseline an order of magnitude slower than the scripted typist."""
    return KeystrokeFeatures(
        med_dwell=700.0, mad_dwell=150.0, p25_dwell=600.0, p75_dwell=850.0,
        iqr_dwell=250.0, avg_dwell=720.0, std_dwell=140.0,
        med_flight=600.0, mad_flight=200.0,
        med_iv=1300.0, mad_iv=250.0, iqr_iv=400.0,
        wpm=550.0, dig_var=180.0, n=200,
    )


# =============================================================================
# Monitoring Lifecycle
# =============================================================================

class TestMonitoringLifecycle:

    def test_start_and_stop_are_idempotent(self, orchestrator, capture_factory, events):
        assert orchestrator.start_monitoring(run_worker=False) is True
        assert orchestrator.start_monitoring(run_worker=False) is True

        capture = capture_factory.instances[0]
        assert len(capture_factory.instances) == 1
        assert capture.starts == 1
        assert orchestrator.monitoring is True

        assert orchestrator.stop_monitoring() is False
        assert orchestrator.stop_monitoring() is False
        assert capture.stops == 1
        assert payloads(events, MONITORING_STATUS) == [True, False]

    def test_toggle(self, orchestrator):
        assert orchestrator.toggle_monitoring() is True
        assert orchestrator.toggle_monitoring() is False
        assert orchestrator.monitoring is False

    def test_toggle_off_with_running_worker(self, orchestrator, monkeypatch):
        monkeypatch.setattr("core.orchestrator.TICK_INTERVAL_S", 0.01)
        orchestrator.start_monitoring()
        worker = orchestrator._worker
        time.sleep(0.1)

        started = time.monotonic()
        assert orchestrator.toggle_monitoring() is False
        assert time.monotonic() - started < 1.0
        assert not worker.is_alive()

    def test_worker_thread(self, orchestrator, capture_factory):
        orchestrator.start_monitoring()
        worker = orchestrator._worker
        assert worker is not None and worker.is_alive()

        for event in key_press(65, 1000.0):
            capture_factory.instances[0].emit(event)

        deadline = time.monotonic() + 3.0
        while not orchestrator.context.buffers.keystrokes and time.monotonic() < deadline:
            time.sleep(0.05)
        assert len(orchestrator.context.buffers.keystrokes) == 1

        orchestrator.stop_monitoring()
        assert not worker.is_alive()

    def test_stop_saves_training_progress(self, monitored, memory_store, clock):
        monitored.stop_monitoring()
        assert memory_store.get("training")["saved"] == int(clock.now)

    def test_capture_failure_keeps_monitoring_off(self, orchestrator, capture_factory, events):
        capture_factory.fail = True

        assert orchestrator.start_monitoring(run_worker=False) is False

        assert orchestrator.monitoring is False
        assert orchestrator._worker is None
        assert payloads(events, CAPTURE_ERROR) == [{"message": "accessibility permission denied"}]
        assert payloads(events, MONITORING_STATUS) == [False]

    def test_tick_is_noop_when_not_monitoring(self, orchestrator, events):
        assert orchestrator.tick() is None
        assert events.names() == []


# =============================================================================
# Ingestion
# =============================================================================

class TestIngestion:

    def test_submit_and_drain_in_order(self, monitored):
        for event in key_press(65, 1000.0) + key_press(83, 1150.0):
            monitored.submit(event)
        monitored.submit(MouseEvent(x=10, y=20, event_type=MouseEventType.CLICK, button="left", timestamp=1300.0))

        assert monitored.drain() == 5

        buffers = monitored.context.buffers
        assert [k.keycode for k in buffers.keystrokes] == [65, 83]
        assert len(buffers.digraphs) == 1
        assert len(buffers.clicks) == 1

    def test_drain_limit(self, monitored):
        for event in key_press(65, 1000.0) + key_press(83, 1150.0):
            monitored.submit(event)
        monitored.submit(MouseEvent(x=10, y=20, event_type=MouseEventType.MOVE, timestamp=1300.0))

        assert monitored.drain(limit=2) == 2
        assert len(monitored.context.buffers.keystrokes) == 1
        assert monitored.drain() == 3

    def test_capture_feeds_queue(self, monitored, capture_factory):
        for event in key_press(70, 5000.0):
            capture_factory.instances[0].emit(event)

        assert monitored.drain() == 2
        assert len(monitored.context.buffers.keystrokes) == 1

    def test_disabled_setting_gates_ingestion(self, monitored):
        monitored.update_settings({"enabled": False})
        for event in key_press(65, 1000.0):
            monitored.submit(event)

        assert monitored.drain() == 2
        assert len(monitored.context.buffers.keystrokes) == 0

    def test_events_ignored_when_not_monitoring(self, orchestrator):
        for event in key_press(65, 1000.0):
            orchestrator.handle(event)
        assert len(orchestrator.context.buffers.keystrokes) == 0


# =============================================================================
# Training
# =============================================================================

class TestTraining:

    def test_quick_phase_advances(self, monitored, events, notifier):
        monitored.context.session.active_time = QUICK_TARGET_MS

        assert monitored.tick() is None

        session = monitored.context.session
        assert session.phase == TrainingPhase.INTERMEDIATE
        assert session.active_time == 0.0
        assert payloads(events, TRAINING_PHASE) == [{"phase": "intermediate"}]
        assert notifier.messages[0][0] == "Quick training complete!"
        assert payloads(events, STATS_UPDATE)[-1]["phase"] == "intermediate"

    def test_stats_during_training(self, monitored):
        monitored.context.session.active_time = QUICK_TARGET_MS / 4

        stats = monitored.build_stats()

        assert stats.is_training is True
        assert stats.train_pct == 25
        assert stats.active_time == 450
        assert stats.has_profile is False
        assert stats.is_monitoring is True

    def test_completion_freezes_profile(self, monitored, feed, memory_store, events, notifier):
        feed.type(80)
        feed.wander(45)
        monitored.save_training_progress()
        assert "training" in memory_store

        session = monitored.context.session
        session.phase = TrainingPhase.INTERMEDIATE
        session.active_time = FULL_TARGET_MS
        monitored.tick()

        assert session.training is False
        assert session.phase == TrainingPhase.COMPLETE
        profile = monitored.context.profile
        assert profile is not None
        assert profile.size.keystrokes == 80
        assert memory_store.get("profile")["uid"] == profile.uid
        assert "training" not in memory_store
        assert payloads(events, TRAINING_COMPLETE) == [profile.summary()]
        assert notifier.messages[-1][0] == "Training complete!"

    def test_completion_deferred_without_data(self, monitored, memory_store):
        session = monitored.context.session
        session.phase = TrainingPhase.INTERMEDIATE
        session.active_time = FULL_TARGET_MS

        monitored.tick()

        assert session.training is True
        assert monitored.context.profile is None
        assert "profile" not in memory_store

    def test_snapshot_contents(self, monitored, feed, memory_store, clock):
        feed.type(12)
        monitored.save_training_progress()

        document = memory_store.get("training")
        assert len(document["ksEvents"]) == 12
        assert document["phase"] == "quick"
        assert document["saved"] == int(clock.now)
        assert len(document["digs"]) == len(monitored.context.buffers.digraphs)


# =============================================================================
# Scoring & Alerts
# =============================================================================

class TestScoring:

    def test_identical_behaviour_scores_100(self, monitored, feed, clock, events):
        feed.type(80)
        feed.wander(45)
        profile = monitored.trainer.build_profile(monitored.context, clock())
        monitored.import_profile(profile.to_document())

        assert monitored.tick() == 100.0

        risk = payloads(events, RISK_UPDATE)[-1]
        assert risk["trustScore"] == 100.0
        assert risk["ksFeats"]["medDwell"] == profile.features.ks.med_dwell
        assert monitored.build_stats().trust_score == 100.0

    def test_nothing_to_compare_skips_cycle(self, monitored, profile, events):
        monitored.import_profile(profile.to_document())

        assert monitored.tick() is None
        assert monitored.context.session.trust_score is None
        assert RISK_UPDATE not in events.names()

    def test_low_score_raises_anomaly_and_locks(
        self, monitored, feed, make_profile, foreign_ks, monkeypatch,
        memory_store, events, notifier, lock_requests,
    ):
        monkeypatch.setattr(trust_module, "time_adjustment", lambda now: 1.0)
        monitored.update_settings({"autoBlock": True})
        monitored.import_profile(make_profile(ks=foreign_ks).to_document())
        feed.type(80)

        assert monitored.tick() == 0.0
        assert monitored.tick() == 0.0
        assert payloads(events, ALERT) == []

        monitored.tick()

        alerts = monitored.get_alerts()
        assert len(alerts) == 1
        assert alerts[0].type == AlertType.ANOMALY
        assert alerts[0].severity == AlertSeverity.CRITICAL
        assert alerts[0].msg == "Trust score at 0% for 3+ cycles"
        assert payloads(events, ALERT)[0]["id"] == alerts[0].id
        assert memory_store.get("alerts")[0]["id"] == alerts[0].id
        assert notifier.messages[-1] == ("BehaviorGuard Alert", "Trust score at 0% for 3+ cycles")
        assert lock_requests == [0.0]
        assert monitored.locked is True

        monitored.unlock()
        assert monitored.locked is False

    def test_no_notification_when_disabled(
        self, monitored, feed, make_profile, foreign_ks, monkeypatch, notifier,
    ):
        monkeypatch.setattr(trust_module, "time_adjustment", lambda now: 1.0)
        monitored.update_settings({"notifications": False})
        monitored.import_profile(make_profile(ks=foreign_ks).to_document())
        feed.type(80)

        for _ in range(3):
            monitored.tick()

        assert len(monitored.get_alerts()) == 1
        assert notifier.messages == []
        assert monitored.locked is False

    def test_clear_alerts(self, monitored, feed, make_profile, foreign_ks, monkeypatch, memory_store):
        monkeypatch.setattr(trust_module, "time_adjustment", lambda now: 1.0)
        monitored.import_profile(make_profile(ks=foreign_ks).to_document())
        feed.type(80)
        for _ in range(3):
            monitored.tick()

        monitored.clear_alerts()

        assert monitored.get_alerts() == []
        assert memory_store.get("alerts") == []


# =============================================================================
# Profile Management
# =============================================================================

class TestProfileManagement:

    def test_reset_matches_cold_start(
        self, monitored, feed, make_profile, foreign_ks, monkeypatch, memory_store, events,
    ):
        monkeypatch.setattr(trust_module, "time_adjustment", lambda now: 1.0)
        monitored.import_profile(make_profile(ks=foreign_ks).to_document())
        feed.type(80)
        feed.wander(40)
        for _ in range(3):
            monitored.tick()
        old_nonce = monitored.context.buffers.nonce

        monitored.reset_profile()

        session = monitored.context.session
        assert session.training is True
        assert session.phase == TrainingPhase.QUICK
        assert session.active_time == 0.0
        assert session.last_active is None
        assert session.train_start is None
        assert session.trust_score is None
        assert session.consecutive_low == 0

        buffers = monitored.context.buffers
        assert len(buffers.keystrokes) == 0
        assert len(buffers.mouse) == 0
        assert len(buffers.digraphs) == 0
        assert len(buffers.trigraphs) == 0
        assert buffers.pending_presses == {}
        assert buffers.nonce != old_nonce

        assert monitored.context.profile is None
        assert monitored.get_alerts() == []
        assert "profile" not in memory_store
        assert "training" not in memory_store
        assert memory_store.get("alerts") == []
        assert events.names()[-1] == PROFILE_RESET
        assert monitored.monitoring is True

    def test_import_activates_profile(self, monitored, profile, memory_store, events):
        imported = monitored.import_profile(profile.to_document())

        assert imported == profile
        assert monitored.context.profile == profile
        assert monitored.context.session.training is False
        assert memory_store.get("profile") == profile.to_document()
        assert payloads(events, PROFILE_LOADED) == [profile.summary()]

    def test_invalid_import_leaves_profile_unchanged(self, monitored, profile, memory_store):
        monitored.import_profile(profile.to_document())
        document = profile.to_document()
        document["v"] = "2.0"
        del document["features"]

        with pytest.raises(ProfileValidationError) as excinfo:
            monitored.import_profile(document)

        assert len(excinfo.value.errors) >= 1
        assert monitored.context.profile == profile
        assert memory_store.get("profile") == profile.to_document()

    def test_import_rejects_non_ascii_sequence_keys(self, monitored, profile, memory_store):
        monitored.import_profile(profile.to_document())
        document = profile.to_document()
        document["digraphs"] = {"²_65": [100.0]}

        with pytest.raises(ProfileValidationError):
            monitored.import_profile(document)

        assert monitored.context.profile == profile
        assert memory_store.get("profile") == profile.to_document()

    def test_invalid_import_without_profile_keeps_training(self, monitored):
        with pytest.raises(ProfileValidationError):
            monitored.import_profile({"uid": "user_x"})

        assert monitored.context.profile is None
        assert monitored.context.session.training is True

    def test_export(self, monitored, profile):
        assert monitored.export_profile() is None

        monitored.import_profile(profile.to_document())

        assert monitored.export_profile() == profile.to_document()


# =============================================================================
# Cold Start
# =============================================================================

class TestColdStart:

    def test_loads_stored_profile_and_settings(self, orchestrator, memory_store, profile):
        memory_store.set("profile", profile.to_document())
        memory_store.set("settings", {"sensitivity": "high", "autoBlock": True})

        orchestrator.load()

        context = orchestrator.context
        assert context.profile == profile
        assert context.session.training is False
        assert context.session.phase == TrainingPhase.COMPLETE
        assert (65, 83) in context.buffers.digraphs
        assert (65, 83, 68) in context.buffers.trigraphs
        assert context.settings.threshold == 50.0
        assert context.settings.auto_block is True

    def test_resumes_training_snapshot(self, orchestrator, memory_store, clock):
        memory_store.set("training", {
            "ksEvents": [
                {"kc": 65, "dwell": 80.0, "flight": None, "ts": 1000.0, "nonce": "a" * 32},
                {"kc": 83, "dwell": 70.0, "flight": 40.0, "ts": 1120.0, "nonce": "a" * 32},
            ],
            "activeTime": 600_000,
            "phase": "intermediate",
            "digs": {"65_83": [120.0]},
            "saved": 1_700_000_000_000,
        })

        orchestrator.load()

        session = orchestrator.context.session
        buffers = orchestrator.context.buffers
        assert session.training is True
        assert session.phase == TrainingPhase.INTERMEDIATE
        assert session.active_time == 600_000.0
        assert session.last_active == clock.now
        assert [k.keycode for k in buffers.keystrokes] == [65, 83]
        assert buffers.digraphs.get((65, 83)) == [120.0]

    def test_corrupt_snapshot_starts_fresh(self, orchestrator, memory_store):
        memory_store.set_raw("training", "{not json")

        orchestrator.load()

        session = orchestrator.context.session
        assert session.training is True
        assert session.phase == TrainingPhase.QUICK
        assert session.active_time == 0.0

    def test_bad_digraph_keys_start_fresh(self, orchestrator, memory_store):
        memory_store.set("training", {"phase": "intermediate", "activeTime": 5000, "digs": {"a_b": [1.0]}})

        orchestrator.load()

        assert orchestrator.context.session.phase == TrainingPhase.QUICK
        assert len(orchestrator.context.buffers.digraphs) == 0

    def test_stored_profile_with_bad_sequence_keys_starts_fresh(self, orchestrator, memory_store, profile):
        document = profile.to_document()
        document["digraphs"] = {"²_65": [100.0]}
        memory_store.set("profile", document)

        orchestrator.load()

        context = orchestrator.context
        assert context.profile is None
        assert context.session.training is True
        assert context.session.phase == TrainingPhase.QUICK

    def test_unparseable_profile_sequences_fall_back_to_training(self, orchestrator, repository, profile, monkeypatch):
        bad = profile.model_copy(update={"trigraphs": {"65_٣_68": [200.0]}})
        monkeypatch.setattr(repository, "load_profile", lambda: bad)

        orchestrator.load()

        context = orchestrator.context
        assert context.profile is None
        assert context.session.training is True
        assert len(context.buffers.digraphs) == 0
        assert len(context.buffers.trigraphs) == 0

    def test_complete_snapshot_without_profile(self, orchestrator, memory_store):
        memory_store.set("training", {"phase": "complete", "activeTime": 1000})

        orchestrator.load()

        assert orchestrator.context.session.phase == TrainingPhase.INTERMEDIATE

    def test_stored_alerts_restored(self, memory_store, repository, events):
        memory_store.set("alerts", [
            {"type": "bot", "severity": "critical", "msg": "Bot activity: x", "ts": 1, "id": "abc"},
        ])
        orch = GuardOrchestrator(repo=repository, sink=events)
        try:
            orch.load()
            assert [a.id for a in orch.get_alerts()] == ["abc"]
        finally:
            orch.close()
