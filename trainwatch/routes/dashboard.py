"""
Dashboard routes for summary counts.
"""
from datetime import date

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import require_subscription
from ..config import get_settings
from ..database import get_db
from ..schemas.dashboard import DashboardStats
from ..services.subscription import AuthContext
from ..storage import Storage

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("/stats", response_model=DashboardStats)
def get_stats(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    """Get dashboard statistics for the current user."""
    stats = Storage(db).get_dashboard_stats(
        ctx.user_id,
        date.today(),
        window_days=get_settings().alert_warning_days,
    )
    return DashboardStats(**stats)
