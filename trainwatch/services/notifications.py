"""
Expiry alert delivery.
"""
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, Optional

from ..config import Settings
from ..logging_config import alerts_logger
from ..models import Alert, Training
from ..storage import Storage
from ..timeutils import utcnow
from .mailer import MailMessage, MailTransport, render_expiry_email

SENT = "sent"
FAILED = "failed"
SKIPPED = "skipped"


@dataclass
class DispatchResult:
    alert_id: int
    status: str  # sent, failed, skipped
    error: Optional[str] = None


class NotificationDispatcher:
    """
    Renders an alert email and hands it to the mail transport.

    A successful send flips the alert to sent. Anything else leaves it
    unsent with the attempt recorded, so the retry sweep can pick it up
    until the attempt cap is reached.
    """

    def __init__(
        self,
        storage: Storage,
        transport: MailTransport,
        settings: Settings,
        clock: Callable[[], datetime] = None,
    ):
        self.storage = storage
        self.transport = transport
        self.settings = settings
        self.clock = clock or utcnow

    def _fail(self, alert: Alert, status: str, error: str) -> DispatchResult:
        self.storage.record_delivery_failure(alert.id, error, attempted_at=self.clock())
        return DispatchResult(alert_id=alert.id, status=status, error=error)

    def dispatch(self, alert: Alert, training: Training, today: date) -> DispatchResult:
        log = alerts_logger.bind(alert_id=alert.id, alert_type=alert.type, training_id=training.id)
        user = self.storage.get_user(training.user_id)
        employee = self.storage.get_employee(training.employee_id, training.user_id)

        if not user or not user.email or not employee:
            log.error(
                "Missing user or employee data for training",
                has_user=bool(user),
                has_employee=bool(employee),
            )
            return self._fail(alert, SKIPPED, "missing user or employee")

        days_until_expiry = max((training.expiry_date - today).days, 0)
        content = render_expiry_email(
            employee.name,
            training.title,
            training.expiry_date,
            days_until_expiry,
            self.settings.app_url,
        )
        message = MailMessage(
            to=user.email,
            from_email=self.settings.alert_from_email,
            subject=content.subject,
            html=content.html,
            text=content.text,
        )

        try:
            delivered = self.transport.send_message(message)
        except Exception as e:
            log.error("Mail transport raised", error=e)
            delivered = False

        if not delivered:
            log.error("Failed to send alert", to=user.email, attempt=(alert.delivery_attempts or 0) + 1)
            return self._fail(alert, FAILED, "mail transport reported failure")

        self.storage.mark_alert_as_sent(alert.id, sent_at=self.clock())
        log.info("Alert sent", to=user.email, days_until_expiry=days_until_expiry)
        return DispatchResult(alert_id=alert.id, status=SENT)
