"""
Tests for alert deduplication, delivery and the alert run.
"""
from datetime import date, datetime, timedelta, timezone

from trainwatch.models import Alert, Employee
from trainwatch.services.alerts import AlertRecorder, ExpiryAlertService
from trainwatch.services.mailer import LogTransport, MailTransport, render_expiry_email
from trainwatch.services.notifications import NotificationDispatcher


def build_service(storage, transport, settings, mode="exact", clock=None, **overrides):
    overrides["alert_scan_mode"] = mode
    run_settings = settings.model_copy(update=overrides)
    dispatcher = NotificationDispatcher(storage, transport, run_settings)
    return ExpiryAlertService(storage, dispatcher, run_settings, clock=clock)


def alerts_for(db, training_id):
    db.expire_all()
    return db.query(Alert).filter(Alert.training_id == training_id).order_by(Alert.id).all()


class TestAlertRecorder:
    """Test at-most-one alert per (training, type)."""

    def test_creates_pending_alert(self, storage, make_training):
        training = make_training()
        alert = AlertRecorder(storage).record(training, Alert.WARNING)

        assert alert is not None
        assert alert.sent is False
        assert alert.sent_at is None
        assert alert.user_id == training.user_id

    def test_second_record_is_noop(self, storage, make_training):
        training = make_training()
        recorder = AlertRecorder(storage)

        assert recorder.record(training, Alert.WARNING) is not None
        assert recorder.record(training, Alert.WARNING) is None
        assert len(storage.list_all_alerts_for_dedup()) == 1

    def test_sent_alert_is_never_recreated(self, storage, make_training):
        training = make_training()
        recorder = AlertRecorder(storage)
        alert = recorder.record(training, Alert.WARNING)
        storage.mark_alert_as_sent(alert.id)

        assert recorder.record(training, Alert.WARNING) is None

    def test_types_are_independent(self, storage, make_training):
        training = make_training()
        recorder = AlertRecorder(storage)

        assert recorder.record(training, Alert.WARNING) is not None
        assert recorder.record(training, Alert.EXPIRY_DAY) is not None

    def test_unique_constraint_reports_duplicate_insert(self, storage, make_training):
        training = make_training()

        first = storage.create_alert(training.user_id, training.id, Alert.WARNING)
        second = storage.create_alert(training.user_id, training.id, Alert.WARNING)

        assert first is not None
        assert second is None
        # Session is still usable after the rejected insert
        assert [a.id for a in storage.list_all_alerts_for_dedup()] == [first.id]


class TestAlertRun:
    """Test the alert run end to end."""

    def test_warning_sent_five_days_before(self, db, storage, transport, settings, make_training, test_user):
        training = make_training()
        summary = build_service(storage, transport, settings).run(date(2024, 1, 6))

        assert summary.warnings_found == 1
        assert summary.created == 1
        assert summary.sent == 1
        assert len(transport.sent) == 1
        assert transport.sent[0].to == test_user.email
        assert "5 days" in transport.sent[0].subject

        [alert] = alerts_for(db, training.id)
        assert alert.type == Alert.WARNING
        assert alert.sent is True
        assert alert.sent_at is not None

    def test_expiry_day_alert(self, db, storage, transport, settings, make_training):
        training = make_training()
        summary = build_service(storage, transport, settings).run(date(2024, 1, 11))

        assert summary.expiry_found == 1
        assert "expires today" in transport.sent[0].subject
        assert [a.type for a in alerts_for(db, training.id)] == [Alert.EXPIRY_DAY]

    def test_rerun_same_day_is_idempotent(self, db, storage, transport, settings, make_training):
        training = make_training()
        service = build_service(storage, transport, settings)

        service.run(date(2024, 1, 6))
        second = service.run(date(2024, 1, 6))

        assert second.created == 0
        assert len(transport.sent) == 1
        assert len(alerts_for(db, training.id)) == 1

    def test_one_alert_per_type_across_days(self, db, storage, transport, settings, make_training):
        training = make_training()
        service = build_service(storage, transport, settings, mode="window")

        for day in range(6, 12):
            service.run(date(2024, 1, day))

        alerts = alerts_for(db, training.id)
        assert sorted(a.type for a in alerts) == [Alert.WARNING, Alert.EXPIRY_DAY]
        assert len(transport.sent) == 2

    def test_exact_mode_misses_skipped_day(self, db, storage, transport, settings, make_training):
        training = make_training()
        summary = build_service(storage, transport, settings, mode="exact").run(date(2024, 1, 8))

        assert summary.warnings_found == 0
        assert alerts_for(db, training.id) == []

    def test_window_mode_catches_up_after_missed_day(self, db, storage, transport, settings, make_training):
        training = make_training()
        summary = build_service(storage, transport, settings, mode="window").run(date(2024, 1, 8))

        assert summary.warnings_found == 1
        assert "3 days" in transport.sent[0].subject
        assert [a.type for a in alerts_for(db, training.id)] == [Alert.WARNING]

    def test_failed_send_does_not_stop_the_run(self, db, storage, settings, make_training, make_transport):
        failing = make_training(title="First Aid")
        succeeding = make_training(title="Fire Safety")
        transport = make_transport("First Aid")

        summary = build_service(storage, transport, settings).run(date(2024, 1, 6))

        assert summary.failed == 1
        assert summary.sent == 1
        assert len(transport.attempts) == 2

        [failed_alert] = alerts_for(db, failing.id)
        assert failed_alert.sent is False
        assert failed_alert.sent_at is None
        assert failed_alert.delivery_attempts == 1
        assert failed_alert.last_error

        [sent_alert] = alerts_for(db, succeeding.id)
        assert sent_alert.sent is True

    def test_failed_send_not_retried_in_same_run(self, storage, settings, make_training, make_transport):
        make_training()
        transport = make_transport("NR-10")
        build_service(storage, transport, settings).run(date(2024, 1, 6))

        assert len(transport.attempts) == 1

    def test_missing_employee_leaves_unsent_stub(self, db, storage, transport, settings, make_training, employee, test_user):
        training = make_training()
        storage.delete_employee(employee.id, test_user.id)

        summary = build_service(storage, transport, settings).run(date(2024, 1, 6))

        assert summary.created == 1
        assert summary.skipped == 1
        assert transport.attempts == []
        [alert] = alerts_for(db, training.id)
        assert alert.sent is False
        assert alert.last_error == "missing user or employee"

    def test_transport_exception_counts_as_failure(self, db, storage, settings, make_training):
        class ExplodingTransport(MailTransport):
            def send_message(self, message):
                raise RuntimeError("smtp down")

        training = make_training()
        summary = build_service(storage, ExplodingTransport(), settings).run(date(2024, 1, 6))

        assert summary.failed == 1
        assert alerts_for(db, training.id)[0].sent is False

    def test_dispatch_uses_alert_owner_employee(self, db, storage, transport, settings, make_training, test_user):
        other = Employee(user_id=test_user.id, name="Bruno Lima", email="bruno@example.com", position="Operator")
        db.add(other)
        db.commit()
        make_training(employee_id=other.id)

        build_service(storage, transport, settings).run(date(2024, 1, 6))
        assert "Bruno Lima" in transport.sent[0].text


class TestRetrySweep:
    """Test redelivery of alerts that failed in earlier runs."""

    def fail_once(self, storage, settings, make_training, make_transport):
        training = make_training()
        build_service(storage, make_transport("NR-10"), settings).run(date(2024, 1, 6))
        return training

    def test_retries_after_backoff(self, db, storage, transport, settings, make_training, make_transport):
        training = self.fail_once(storage, settings, make_training, make_transport)
        later = datetime.now(timezone.utc) + timedelta(hours=2)

        summary = build_service(storage, transport, settings, clock=lambda: later).run(date(2024, 1, 7))

        assert summary.retried == 1
        assert summary.sent == 1
        [alert] = alerts_for(db, training.id)
        assert alert.sent is True
        assert alert.delivery_attempts == 2

    def test_waits_for_backoff(self, storage, transport, settings, make_training, make_transport):
        self.fail_once(storage, settings, make_training, make_transport)
        summary = build_service(storage, transport, settings).run(date(2024, 1, 7))

        assert summary.retried == 0
        assert transport.attempts == []

    def test_stops_at_attempt_cap(self, storage, transport, settings, make_training, make_transport):
        self.fail_once(storage, settings, make_training, make_transport)
        later = datetime.now(timezone.utc) + timedelta(days=1)

        summary = build_service(
            storage, transport, settings, clock=lambda: later, max_delivery_attempts=1
        ).run(date(2024, 1, 7))

        assert summary.retried == 0
        assert transport.attempts == []

    def test_expiry_day_alert_not_retried_after_expiry(self, db, storage, transport, settings, make_training, make_transport):
        training = make_training()
        build_service(storage, make_transport("NR-10"), settings).run(date(2024, 1, 11))
        later = datetime.now(timezone.utc) + timedelta(days=2)

        summary = build_service(storage, transport, settings, clock=lambda: later).run(date(2024, 1, 13))

        assert summary.abandoned == 1
        assert summary.retried == 0
        assert transport.attempts == []
        [alert] = alerts_for(db, training.id)
        assert alert.type == Alert.EXPIRY_DAY
        assert alert.sent is False
        assert alert.abandoned_at is not None
        assert alert.last_error == "alert window has passed"

        again = build_service(storage, transport, settings, clock=lambda: later).run(date(2024, 1, 14))
        assert again.abandoned == 0
        assert transport.attempts == []

    def test_warning_not_retried_on_expiry_day(self, db, storage, transport, settings, make_training, make_transport):
        training = self.fail_once(storage, settings, make_training, make_transport)
        later = datetime.now(timezone.utc) + timedelta(days=1)

        summary = build_service(storage, transport, settings, clock=lambda: later).run(date(2024, 1, 11))

        assert summary.abandoned == 1
        assert summary.retried == 0
        # Only the expiry-day alert goes out; the stale warning is not re-sent
        assert [m.subject for m in transport.attempts] == ["Training expires today - NR-10"]
        warning = [a for a in alerts_for(db, training.id) if a.type == Alert.WARNING][0]
        assert warning.sent is False
        assert warning.abandoned_at is not None

    def test_renewed_training_alert_is_abandoned(self, db, storage, transport, settings, make_training, make_transport, test_user):
        training = self.fail_once(storage, settings, make_training, make_transport)
        storage.update_training(training.id, test_user.id, {"status": "renewed"})
        later = datetime.now(timezone.utc) + timedelta(hours=2)

        summary = build_service(storage, transport, settings, clock=lambda: later).run(date(2024, 1, 7))

        assert summary.abandoned == 1
        assert transport.attempts == []
        [alert] = alerts_for(db, training.id)
        assert alert.last_error == "training is renewed"
        assert storage.list_retryable_alerts(settings.max_delivery_attempts) == []



class TestExpiryEmail:
    """Test the two alert email variants."""

    def test_warning_variant(self):
        email = render_expiry_email("Ana", "NR-10", date(2024, 1, 11), 5, "https://trainwatch.app")
        assert email.subject == "Training expires in 5 days - NR-10"
        assert "11/01/2024" in email.text
        assert "expires in 5 days" in email.text

    def test_expiry_day_variant(self):
        email = render_expiry_email("Ana", "NR-10", date(2024, 1, 11), 0, "https://trainwatch.app")
        assert email.subject == "Training expires today - NR-10"
        assert "immediate action" in email.text

    def test_html_escapes_user_data(self):
        email = render_expiry_email("<b>Ana</b>", "NR & 10", date(2024, 1, 11), 5, "https://trainwatch.app")
        assert "<b>Ana</b>" not in email.html
        assert "&lt;b&gt;Ana&lt;/b&gt;" in email.html
        assert "NR &amp; 10" in email.html

    def test_log_transport_reports_success(self):
        from trainwatch.services.mailer import MailMessage

        message = MailMessage("a@example.com", "alerts@trainwatch.app", "s", "<p>h</p>", "t")
        assert LogTransport().send_message(message) is True
