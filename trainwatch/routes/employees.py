"""
Employee routes, scoped to the subscribed caller.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ..auth import require_subscription
from ..database import get_db
from ..responses import not_found
from ..schemas.employee import EmployeeCreate, EmployeeUpdate, EmployeeResponse
from ..schemas.training import TrainingResponse
from ..services.subscription import AuthContext
from ..storage import Storage

router = APIRouter(prefix="/api/employees", tags=["employees"])


@router.get("", response_model=List[EmployeeResponse])
def list_employees(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    return Storage(db).list_employees(ctx.user_id)


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    employee = Storage(db).get_employee(employee_id, ctx.user_id)
    if not employee:
        not_found("Employee", employee_id)
    return employee


@router.get("/{employee_id}/trainings", response_model=List[TrainingResponse])
def list_employee_trainings(
    employee_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    """All trainings recorded for one employee."""
    return Storage(db).list_trainings_by_employee(employee_id, ctx.user_id)


@router.post("", response_model=EmployeeResponse, status_code=201)
def create_employee(
    employee_data: EmployeeCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    return Storage(db).create_employee(ctx.user_id, employee_data.model_dump())


@router.put("/{employee_id}", response_model=EmployeeResponse)
def update_employee(
    employee_id: int,
    employee_update: EmployeeUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    update_data = {k: v for k, v in employee_update.model_dump(exclude_unset=True).items() if v is not None}
    employee = Storage(db).update_employee(employee_id, ctx.user_id, update_data)
    if not employee:
        not_found("Employee", employee_id)
    return employee


@router.delete("/{employee_id}")
def delete_employee(
    employee_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    if not Storage(db).delete_employee(employee_id, ctx.user_id):
        not_found("Employee", employee_id)
    return {"message": "Employee deleted"}
