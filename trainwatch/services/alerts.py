"""
Expiry alert recording and the daily alert run.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Callable, List, Optional

from ..config import Settings
from ..logging_config import alerts_logger, timed
from ..models import Alert, Training
from ..storage import Storage
from ..timeutils import as_utc, utcnow
from .expiry import AlertThreshold, ExpiryScanner, default_thresholds
from .notifications import FAILED, SENT, SKIPPED, NotificationDispatcher


class AlertRecorder:
    """Creates at most one alert per (training, type), across the whole alert history."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def record(self, training: Training, alert_type: str) -> Optional[Alert]:
        """Return a new pending alert, or None if one was ever created for this pair."""
        if self.storage.find_alert(training.id, alert_type):
            return None
        return self.storage.create_alert(training.user_id, training.id, alert_type)


@dataclass
class AlertRunSummary:
    run_date: date
    warnings_found: int = 0
    expiry_found: int = 0
    created: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0
    retried: int = 0
    abandoned: int = 0
    errors: List[str] = field(default_factory=list)

    def count(self, status: str):
        if status == SENT:
            self.sent += 1
        elif status == FAILED:
            self.failed += 1
        elif status == SKIPPED:
            self.skipped += 1

    def to_dict(self) -> dict:
        return {
            "run_date": self.run_date.isoformat(),
            "warnings_found": self.warnings_found,
            "expiry_found": self.expiry_found,
            "created": self.created,
            "sent": self.sent,
            "failed": self.failed,
            "skipped": self.skipped,
            "retried": self.retried,
            "abandoned": self.abandoned,
            "errors": list(self.errors),
        }


class ExpiryAlertService:
    """
    One alert run: retry earlier undelivered alerts, then scan each threshold,
    record new alerts and dispatch them.

    Each alert's record/dispatch sequence is isolated. An exception while
    handling one training is logged, the session is rolled back and the run
    moves on to the next.
    """

    def __init__(
        self,
        storage: Storage,
        dispatcher: NotificationDispatcher,
        settings: Settings,
        recorder: Optional[AlertRecorder] = None,
        scanner: Optional[ExpiryScanner] = None,
        thresholds: Optional[List[AlertThreshold]] = None,
        clock: Callable[[], datetime] = None,
    ):
        self.storage = storage
        self.dispatcher = dispatcher
        self.settings = settings
        self.recorder = recorder or AlertRecorder(storage)
        self.scanner = scanner or ExpiryScanner(storage)
        self.thresholds = thresholds or default_thresholds(settings.alert_warning_days)
        self.clock = clock or utcnow

    def _retry_due(self, alert: Alert, now: datetime) -> bool:
        if not alert.delivery_attempts or not alert.last_attempt_at:
            return True
        backoff = timedelta(minutes=self.settings.retry_base_minutes * 2 ** (alert.delivery_attempts - 1))
        return as_utc(alert.last_attempt_at) + backoff <= now

    def _stale_reason(self, alert: Alert, training: Training, today: date) -> Optional[str]:
        """Why a retry would now be wrong, or None while the alert still applies."""
        if training.status != "active":
            return f"training is {training.status}"
        threshold = next((t for t in self.thresholds if t.alert_type == alert.type), None)
        if threshold and (training.expiry_date - today).days < threshold.window_start:
            return "alert window has passed"
        return None

    def retry_undelivered(self, today: date, summary: AlertRunSummary):
        """
        Redispatch unsent alerts from earlier runs whose backoff has elapsed.

        An alert whose training is no longer active, or whose threshold
        window is behind ``today``, is abandoned instead: its email would
        describe an expiry that no longer holds.
        """
        now = self.clock()
        for alert in self.storage.list_retryable_alerts(self.settings.max_delivery_attempts):
            alert_id = alert.id
            try:
                training = self.storage.get_training_by_id(alert.training_id)
                if not training:
                    alerts_logger.error("Alert references a missing training", alert_id=alert_id)
                    self.storage.abandon_alert(alert_id, "training not found", abandoned_at=now)
                    summary.abandoned += 1
                    continue

                reason = self._stale_reason(alert, training, today)
                if reason:
                    alerts_logger.warning(
                        "Abandoning undelivered alert",
                        alert_id=alert_id,
                        alert_type=alert.type,
                        training_id=training.id,
                        reason=reason,
                    )
                    self.storage.abandon_alert(alert_id, reason, abandoned_at=now)
                    summary.abandoned += 1
                    continue

                if not self._retry_due(alert, now):
                    continue
                result = self.dispatcher.dispatch(alert, training, today)
                summary.retried += 1
                summary.count(result.status)
            except Exception as e:
                self.storage.db.rollback()
                alerts_logger.error("Error retrying alert", error=e, alert_id=alert_id)
                summary.errors.append(f"alert {alert_id}: {e}")

    def process_training(self, training: Training, threshold: AlertThreshold, today: date, summary: AlertRunSummary):
        training_id = training.id
        try:
            alert = self.recorder.record(training, threshold.alert_type)
            if alert is None:
                return
            summary.created += 1
            result = self.dispatcher.dispatch(alert, training, today)
            summary.count(result.status)
        except Exception as e:
            self.storage.db.rollback()
            alerts_logger.error(
                "Error processing alert for training",
                error=e,
                training_id=training_id,
                alert_type=threshold.alert_type,
            )
            summary.errors.append(f"training {training_id}: {e}")

    @timed(alerts_logger, describe=AlertRunSummary.to_dict)
    def run(self, today: Optional[date] = None) -> AlertRunSummary:
        today = today or date.today()
        summary = AlertRunSummary(run_date=today)
        mode = self.settings.alert_scan_mode

        self.retry_undelivered(today, summary)

        for threshold in self.thresholds:
            trainings = self.scanner.candidates(threshold, today, mode)
            if threshold.alert_type == Alert.EXPIRY_DAY:
                summary.expiry_found += len(trainings)
            else:
                summary.warnings_found += len(trainings)
            for training in trainings:
                self.process_training(training, threshold, today, summary)

        alerts_logger.info(
            f"Processed {summary.warnings_found} warnings and {summary.expiry_found} expiry alerts",
            run_date=today.isoformat(),
            mode=mode,
        )
        return summary
