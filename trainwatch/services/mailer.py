"""
Mail transport and expiry alert templates.

Transports never raise: delivery failures come back as ``False`` so one bad
message cannot stop the rest of an alert run.
"""
import html
from dataclasses import dataclass
from datetime import date
from typing import Dict

import requests

from ..config import Settings
from ..logging_config import mail_logger


@dataclass
class MailMessage:
    to: str
    from_email: str
    subject: str
    html: str
    text: str


class MailTransport:
    """Base class for outgoing mail transports"""

    def send_message(self, message: MailMessage) -> bool:
        raise NotImplementedError


class LogTransport(MailTransport):
    """Logs messages instead of sending them (no provider configured)."""

    def send_message(self, message: MailMessage) -> bool:
        mail_logger.info(
            "Email would be sent",
            to=message.to,
            subject=message.subject,
        )
        return True


class SendGridTransport(MailTransport):
    """Deliver mail through the SendGrid v3 HTTP API."""

    def __init__(self, api_key: str, api_url: str, timeout: float = 10.0):
        self.api_key = api_key
        self.api_url = api_url
        self.timeout = timeout

    def _payload(self, message: MailMessage) -> Dict:
        return {
            "personalizations": [{"to": [{"email": message.to}]}],
            "from": {"email": message.from_email},
            "subject": message.subject,
            "content": [
                {"type": "text/plain", "value": message.text},
                {"type": "text/html", "value": message.html},
            ],
        }

    def send_message(self, message: MailMessage) -> bool:
        try:
            response = requests.post(
                self.api_url,
                json=self._payload(message),
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            mail_logger.error("SendGrid request failed", error=e, to=message.to)
            return False

        if 200 <= response.status_code < 300:
            return True

        mail_logger.warning(
            "SendGrid rejected message",
            to=message.to,
            status_code=response.status_code,
            body=response.text[:500],
        )
        return False


def get_mail_transport(settings: Settings) -> MailTransport:
    """Pick the transport for the current configuration"""
    if not settings.sendgrid_api_key:
        mail_logger.warning("SENDGRID_API_KEY not set - expiry alerts will only be logged")
        return LogTransport()
    return SendGridTransport(
        settings.sendgrid_api_key,
        settings.sendgrid_api_url,
        timeout=settings.mail_timeout_seconds,
    )


# ============================================================
# TEMPLATES
# ============================================================

@dataclass
class RenderedEmail:
    subject: str
    html: str
    text: str


def render_expiry_email(
    employee_name: str,
    training_title: str,
    expiry_date: date,
    days_until_expiry: int,
    app_url: str,
) -> RenderedEmail:
    """Render the expiry alert; the only variant switch is expiring today vs. later."""
    expires_today = days_until_expiry == 0
    formatted_date = expiry_date.strftime("%d/%m/%Y")

    if expires_today:
        subject = f"Training expires today - {training_title}"
        heading = "Training Expired"
        summary_text = f"The training {training_title} for {employee_name} expires today."
        action_text = "The training expires today and requires immediate action."
        accent, background = "#dc2626", "#fef2f2"
    else:
        subject = f"Training expires in {days_until_expiry} days - {training_title}"
        heading = "Training Expiring"
        summary_text = f"The training {training_title} for {employee_name} expires in {days_until_expiry} days."
        action_text = f"The training expires in {days_until_expiry} days."
        accent, background = "#ea580c", "#fff7ed"

    name = html.escape(employee_name)
    title = html.escape(training_title)
    url = html.escape(app_url, quote=True)
    summary_html = html.escape(summary_text)

    body_html = f"""
    <div style="font-family: -apple-system, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 0 auto;">
      <div style="background: #2563eb; padding: 30px; text-align: center;">
        <h1 style="color: white; margin: 0; font-size: 24px;">TrainWatch</h1>
      </div>
      <div style="padding: 30px;">
        <div style="background: {background}; border-left: 4px solid {accent}; padding: 20px; margin-bottom: 30px;">
          <h2 style="color: {accent}; margin: 0 0 10px 0; font-size: 20px;">{heading}</h2>
          <p style="margin: 0; color: #374151; font-size: 16px;">{summary_html}</p>
        </div>
        <table style="width: 100%; border-collapse: collapse;">
          <tr><td style="padding: 8px 0; color: #6b7280;">Employee:</td><td style="padding: 8px 0;">{name}</td></tr>
          <tr><td style="padding: 8px 0; color: #6b7280;">Training:</td><td style="padding: 8px 0;">{title}</td></tr>
          <tr><td style="padding: 8px 0; color: #6b7280;">Expiry date:</td><td style="padding: 8px 0;">{formatted_date}</td></tr>
        </table>
        <p style="text-align: center; margin: 30px 0;">
          <a href="{url}" style="background: #2563eb; color: white; padding: 12px 24px; text-decoration: none; border-radius: 8px;">Open TrainWatch</a>
        </p>
        <p style="border-top: 1px solid #e5e7eb; padding-top: 20px; color: #6b7280; font-size: 14px;">
          This is an automatic alert from TrainWatch.
        </p>
      </div>
    </div>
    """

    body_text = (
        "TrainWatch - Training Alert\n\n"
        f"{heading.upper()}\n\n"
        f"Employee: {employee_name}\n"
        f"Training: {training_title}\n"
        f"Expiry date: {formatted_date}\n\n"
        f"{action_text}\n\n"
        f"Open TrainWatch for details: {app_url}\n"
    )

    return RenderedEmail(subject=subject, html=body_html, text=body_text)
