"""
Subscription status and the billing webhook boundary.

Billing events arrive signed with HMAC-SHA256 over the raw body, using the
shared ``BILLING_WEBHOOK_SECRET``.
"""
import hashlib
import hmac
import json

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..auth import get_required_user
from ..config import get_settings
from ..database import get_db
from ..logging_config import get_logger
from ..models.user import User
from ..responses import ApiException, bad_request, not_found, unauthorized
from ..schemas.subscription import BillingEvent, SubscriptionStatusResponse
from ..services.subscription import SubscriptionGate, apply_billing_event
from ..storage import Storage

router = APIRouter(tags=["subscription"])
logger = get_logger("billing")

SIGNATURE_HEADER = "X-TrainWatch-Signature"


def sign_payload(body: bytes, secret: str) -> str:
    """Generate the HMAC-SHA256 signature header value for a webhook body"""
    signature = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={signature}"


@router.get("/api/subscription/status", response_model=SubscriptionStatusResponse)
def get_subscription_status(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_required_user),
):
    """Report the caller's subscription state as the gate sees it."""
    decision = SubscriptionGate(Storage(db)).evaluate(current_user)
    db.refresh(current_user)
    return SubscriptionStatusResponse(
        status=decision.status,
        allowed=decision.allowed,
        reason=decision.reason,
        trial_ends_at=current_user.trial_ends_at,
        subscription_ends_at=current_user.subscription_ends_at,
    )


@router.post("/api/billing/webhook")
async def billing_webhook(request: Request, db: Session = Depends(get_db)):
    """Apply a signed billing event to the user's subscription."""
    secret = get_settings().billing_webhook_secret
    if not secret:
        raise ApiException(503, "Billing webhook is not configured", "BILLING_NOT_CONFIGURED")

    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER, "")
    if not hmac.compare_digest(signature, sign_payload(body, secret)):
        logger.warning("Billing webhook signature mismatch")
        unauthorized("Invalid webhook signature")

    try:
        event = BillingEvent.model_validate(json.loads(body))
    except (ValueError, ValidationError) as e:
        bad_request("Invalid billing event", "INVALID_EVENT", {"error": str(e)})

    storage = Storage(db)
    if not storage.get_user(event.user_id):
        not_found("User", event.user_id)

    user = apply_billing_event(
        storage,
        event.user_id,
        event.type,
        provider_status=event.status,
        period_end=event.current_period_end,
        customer_id=event.customer_id,
        subscription_id=event.subscription_id,
    )
    return {
        "received": True,
        "applied": user is not None,
        "status": user.subscription_status if user else None,
    }
