from .auth import router as auth_router
from .employees import router as employees_router
from .trainings import router as trainings_router
from .alerts import router as alerts_router
from .dashboard import router as dashboard_router
from .subscription import router as subscription_router
from .health import router as health_router

__all__ = [
    "auth_router",
    "employees_router",
    "trainings_router",
    "alerts_router",
    "dashboard_router",
    "subscription_router",
    "health_router",
]
