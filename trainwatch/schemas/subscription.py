from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class SubscriptionStatusResponse(BaseModel):
    status: str
    allowed: bool
    reason: Optional[str] = None
    trial_ends_at: Optional[datetime] = None
    subscription_ends_at: Optional[datetime] = None


class BillingEvent(BaseModel):
    """Billing provider event, already reduced to what the gate needs."""
    type: str  # subscription.created|updated|deleted, invoice.payment_succeeded|failed
    user_id: int
    status: Optional[str] = None  # provider status: trialing, active, canceled, past_due, ...
    current_period_end: Optional[datetime] = None
    customer_id: Optional[str] = None
    subscription_id: Optional[str] = None
