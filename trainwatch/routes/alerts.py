"""
Read-only view of the caller's expiry alerts.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List, Optional

from ..auth import require_subscription
from ..database import get_db
from ..schemas.alert import AlertResponse
from ..services.subscription import AuthContext
from ..storage import Storage

router = APIRouter(prefix="/api/alerts", tags=["alerts"])


@router.get("", response_model=List[AlertResponse])
def list_alerts(
    sent: Optional[bool] = None,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    """List alerts, optionally filtered by delivery state."""
    return Storage(db).list_alerts(ctx.user_id, sent=sent)
