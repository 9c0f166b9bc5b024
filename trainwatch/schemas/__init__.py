from .auth import UserCreate, UserLogin, UserResponse, TokenResponse, RefreshRequest
from .employee import EmployeeCreate, EmployeeUpdate, EmployeeResponse
from .training import TrainingCreate, TrainingUpdate, TrainingResponse
from .alert import AlertResponse
from .dashboard import DashboardStats
from .subscription import SubscriptionStatusResponse, BillingEvent

__all__ = [
    "UserCreate", "UserLogin", "UserResponse", "TokenResponse", "RefreshRequest",
    "EmployeeCreate", "EmployeeUpdate", "EmployeeResponse",
    "TrainingCreate", "TrainingUpdate", "TrainingResponse",
    "AlertResponse",
    "DashboardStats",
    "SubscriptionStatusResponse", "BillingEvent",
]
