"""
Subscription gate and billing state transitions.

The gate runs ahead of every gated request. Its only time-driven transition
is trial -> expired, evaluated lazily when the user next makes a request.
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..logging_config import get_logger
from ..models import User
from ..storage import Storage
from ..timeutils import as_utc, utcnow

logger = get_logger("subscription")

TRIAL = "trial"
ACTIVE = "active"
CANCELED = "canceled"
EXPIRED = "expired"

# Provider subscription states mapped onto local statuses
PROVIDER_STATUS_MAP = {
    "trialing": TRIAL,
    "active": ACTIVE,
    "canceled": CANCELED,
    "past_due": EXPIRED,
    "unpaid": EXPIRED,
    "incomplete_expired": EXPIRED,
}


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    status: str
    reason: Optional[str] = None  # trial_expired, subscription_required


@dataclass(frozen=True)
class AuthContext:
    """The authenticated caller, as handed to gated handlers."""
    user_id: int
    user: User
    subscription_status: str


def start_trial(user: User, now: Optional[datetime] = None, trial_days: int = 7) -> User:
    now = now or utcnow()
    user.subscription_status = TRIAL
    user.trial_ends_at = now + timedelta(days=trial_days)
    return user


class SubscriptionGate:
    def __init__(self, storage: Storage):
        self.storage = storage

    def evaluate(self, user: User, now: Optional[datetime] = None) -> GateDecision:
        now = now or utcnow()
        status = user.subscription_status or TRIAL

        if status == TRIAL and user.trial_ends_at and now > as_utc(user.trial_ends_at):
            self.storage.update_subscription_status(user.id, EXPIRED, user.subscription_ends_at)
            logger.info("Trial expired", user_id=user.id)
            return GateDecision(allowed=False, status=EXPIRED, reason="trial_expired")

        if status in (EXPIRED, CANCELED):
            return GateDecision(allowed=False, status=status, reason="subscription_required")

        return GateDecision(allowed=True, status=status)


def apply_billing_event(
    storage: Storage,
    user_id: int,
    event_type: str,
    provider_status: Optional[str] = None,
    period_end: Optional[datetime] = None,
    customer_id: Optional[str] = None,
    subscription_id: Optional[str] = None,
) -> Optional[User]:
    """
    Apply a billing provider event to a user's subscription.

    Returns the updated user, or None when the event is not one we act on
    or the user does not exist.
    """
    if event_type in ("subscription.created", "subscription.updated"):
        storage.update_billing_ids(user_id, customer_id, subscription_id)
        status = PROVIDER_STATUS_MAP.get(provider_status or "", ACTIVE)
        user = storage.update_subscription_status(user_id, status, period_end)
    elif event_type == "subscription.deleted":
        user = storage.update_subscription_status(user_id, CANCELED)
    elif event_type == "invoice.payment_succeeded":
        user = storage.update_subscription_status(user_id, ACTIVE, period_end)
    elif event_type == "invoice.payment_failed":
        user = storage.update_subscription_status(user_id, EXPIRED)
    else:
        logger.info("Unhandled billing event", event_type=event_type)
        return None

    if user:
        logger.info(
            "Billing event applied",
            user_id=user_id,
            event_type=event_type,
            status=user.subscription_status,
        )
    return user
