"""
Tests for the tickers and the scheduled alert job.
"""
import threading
from datetime import date, datetime, timezone

from trainwatch.models import Alert
from trainwatch.services.mailer import LogTransport
from trainwatch.worker.scheduler import (
    AlertScheduler,
    ExpiryAlertJob,
    IntervalTicker,
    ManualTicker,
)


class TestTickers:
    """Test tick delivery to subscribers."""

    def test_manual_tick_reaches_subscribers(self):
        ticker = ManualTicker()
        seen = []
        ticker.subscribe(seen.append)

        now = datetime(2024, 1, 6, 8, 0, tzinfo=timezone.utc)
        ticker.tick(now)

        assert seen == [now]

    def test_failing_subscriber_does_not_block_others(self):
        ticker = ManualTicker()
        seen = []

        def broken(now):
            raise RuntimeError("boom")

        ticker.subscribe(broken)
        ticker.subscribe(seen.append)
        ticker.tick()

        assert len(seen) == 1

    def test_interval_ticker_fires_after_warmup(self):
        ticker = IntervalTicker(interval_seconds=3600, warmup_seconds=0.01)
        fired = threading.Event()
        ticker.subscribe(lambda now: fired.set())

        assert ticker.start() is True
        assert ticker.start() is False  # already running
        try:
            assert fired.wait(2.0)
            assert ticker.running
        finally:
            assert ticker.stop() is True
        assert ticker.running is False
        assert ticker.stop() is False

    def test_stop_does_not_forget_a_busy_thread(self):
        ticker = IntervalTicker(interval_seconds=3600, warmup_seconds=0.01)
        entered = threading.Event()
        gate = threading.Event()

        def slow_run(now):
            entered.set()
            gate.wait(2.0)

        ticker.subscribe(slow_run)
        ticker.start()
        try:
            assert entered.wait(2.0)
            assert ticker.stop(timeout=0.05) is False
            assert ticker.running is True
            assert ticker.start() is False  # no second thread while the first is busy
        finally:
            gate.set()
        ticker._thread.join(2.0)
        assert ticker.running is False


class TestExpiryAlertJob:
    """Test one scheduled alert run per tick."""

    def test_tick_runs_alert_pass(self, db, session_factory, transport, settings, make_training):
        training = make_training()
        job = ExpiryAlertJob(session_factory, settings, transport, today=lambda: date(2024, 1, 6))
        scheduler = AlertScheduler(ManualTicker(), job)

        scheduler.ticker.tick()

        assert len(transport.sent) == 1
        assert job.last_summary.created == 1
        db.expire_all()
        alert = db.query(Alert).filter(Alert.training_id == training.id).one()
        assert alert.sent is True

        status = scheduler.get_status()
        assert status["running"] is False
        assert status["last_summary"]["sent"] == 1
        assert status["last_run_at"] is not None

    def test_repeated_ticks_do_not_resend(self, session_factory, transport, settings, make_training):
        make_training()
        job = ExpiryAlertJob(session_factory, settings, transport, today=lambda: date(2024, 1, 6))
        ticker = ManualTicker()
        ticker.subscribe(job)

        ticker.tick()
        ticker.tick()

        assert len(transport.sent) == 1
        assert job.last_summary.created == 0

    def test_overlapping_run_is_skipped(self, session_factory, transport, settings, make_training):
        make_training()
        job = ExpiryAlertJob(session_factory, settings, transport, today=lambda: date(2024, 1, 6))

        job._lock.acquire()
        try:
            assert job.run_once() is None
        finally:
            job._lock.release()

        assert transport.attempts == []
        assert job.run_once() is not None

    def test_failed_run_releases_lock(self, settings, transport):
        def broken_factory():
            raise RuntimeError("database unavailable")

        job = ExpiryAlertJob(broken_factory, settings, transport)

        assert job.run_once() is None
        assert job.run_once() is None
        assert job.last_summary is None
        assert job._lock.acquire(blocking=False)
        job._lock.release()

    def test_dry_run_persists_nothing(self, db, session_factory, transport, settings, make_training, make_transport):
        training = make_training()
        preview = make_transport()
        dry = ExpiryAlertJob(session_factory, settings, preview, today=lambda: date(2024, 1, 6), dry_run=True)

        summary = dry.run_once()

        assert summary.created == 1
        assert summary.sent == 1
        assert len(preview.sent) == 1
        assert dry.last_summary is None
        db.expire_all()
        assert db.query(Alert).count() == 0

        # A real run afterwards still sends the alert
        job = ExpiryAlertJob(session_factory, settings, transport, today=lambda: date(2024, 1, 6))
        assert job.run_once().created == 1
        assert len(transport.sent) == 1
        db.expire_all()
        alert = db.query(Alert).filter(Alert.training_id == training.id).one()
        assert alert.sent is True

    def test_dry_run_defaults_to_log_transport(self, session_factory, settings):
        job = ExpiryAlertJob(session_factory, settings, dry_run=True)
        assert isinstance(job.transport, LogTransport)
