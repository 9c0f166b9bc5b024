from .user import User
from .employee import Employee
from .training import Training
from .alert import Alert

__all__ = [
    "User",
    "Employee",
    "Training",
    "Alert",
]
