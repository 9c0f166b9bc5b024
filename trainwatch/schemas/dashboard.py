from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_employees: int
    total_trainings: int
    expiring_soon: int
    overdue: int
    pending_alerts: int
