"""
TrainWatch Health Check Routes
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import sys
import psutil
from typing import Dict, Any
from sqlalchemy import text
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db

router = APIRouter(prefix="/api/health", tags=["health"])

START_TIME = datetime.now(timezone.utc)


def get_uptime() -> str:
    """Get service uptime as human-readable string"""
    delta = datetime.now(timezone.utc) - START_TIME
    hours, remainder = divmod(delta.seconds, 3600)
    minutes, seconds = divmod(remainder, 60)

    if delta.days > 0:
        return f"{delta.days}d {hours}h {minutes}m"
    elif hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    else:
        return f"{minutes}m {seconds}s"


def check_database(db: Session) -> Dict[str, Any]:
    """Check database connectivity"""
    try:
        db.execute(text("SELECT 1"))
        return {"status": "healthy"}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


def check_system() -> Dict[str, Any]:
    """Check system resources"""
    try:
        memory = psutil.virtual_memory()
        return {
            "status": "healthy" if memory.percent < 90 else "warning",
            "cpu_percent": psutil.cpu_percent(interval=0.1),
            "memory_percent": memory.percent,
            "memory_available_gb": round(memory.available / (1024**3), 2),
            "python_version": sys.version.split()[0],
        }
    except Exception as e:
        return {"status": "unknown", "error": str(e)}


def check_scheduler() -> Dict[str, Any]:
    """Report the expiry alert scheduler state"""
    if not get_settings().alert_scheduler_enabled:
        return {"status": "disabled"}

    from ..worker.scheduler import get_alert_scheduler
    status = get_alert_scheduler().get_status()
    status["status"] = "healthy" if status["running"] else "stopped"
    return status


@router.get("")
def health_live():
    """Liveness check - is the service running?"""
    settings = get_settings()
    return {
        "ok": True,
        "status": "healthy",
        "environment": settings.environment,
        "uptime": get_uptime(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/full")
def health_full(db: Session = Depends(get_db)):
    """Detailed status of the database, host and alert scheduler."""
    database = check_database(db)
    system = check_system()
    scheduler = check_scheduler()

    statuses = [database["status"], system["status"], scheduler["status"]]
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "warning" in statuses or "stopped" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    return {
        "ok": overall == "healthy",
        "status": overall,
        "uptime": get_uptime(),
        "started_at": START_TIME.isoformat(),
        "checks": {
            "database": database,
            "system": system,
            "scheduler": scheduler,
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
