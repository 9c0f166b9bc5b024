"""
Training routes. The expiry date is always derived from the completion
date and validity window; callers cannot set it.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from ..auth import require_subscription
from ..database import get_db
from ..responses import not_found
from ..schemas.training import TrainingCreate, TrainingUpdate, TrainingResponse
from ..services.subscription import AuthContext
from ..storage import Storage

router = APIRouter(prefix="/api/trainings", tags=["trainings"])


@router.get("", response_model=List[TrainingResponse])
def list_trainings(
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    return Storage(db).list_trainings(ctx.user_id)


@router.get("/{training_id}", response_model=TrainingResponse)
def get_training(
    training_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    training = Storage(db).get_training(training_id, ctx.user_id)
    if not training:
        not_found("Training", training_id)
    return training


@router.post("", response_model=TrainingResponse, status_code=201)
def create_training(
    training_data: TrainingCreate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    storage = Storage(db)
    if not storage.get_employee(training_data.employee_id, ctx.user_id):
        not_found("Employee", training_data.employee_id)
    return storage.create_training(ctx.user_id, training_data.model_dump())


@router.put("/{training_id}", response_model=TrainingResponse)
def update_training(
    training_id: int,
    training_update: TrainingUpdate,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    storage = Storage(db)
    update_data = {k: v for k, v in training_update.model_dump(exclude_unset=True).items() if v is not None}

    if "employee_id" in update_data and not storage.get_employee(update_data["employee_id"], ctx.user_id):
        not_found("Employee", update_data["employee_id"])

    training = storage.update_training(training_id, ctx.user_id, update_data)
    if not training:
        not_found("Training", training_id)
    return training


@router.delete("/{training_id}")
def delete_training(
    training_id: int,
    db: Session = Depends(get_db),
    ctx: AuthContext = Depends(require_subscription),
):
    if not Storage(db).delete_training(training_id, ctx.user_id):
        not_found("Training", training_id)
    return {"message": "Training deleted"}
