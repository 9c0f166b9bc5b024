from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Literal, Optional


class TrainingCreate(BaseModel):
    """expiry_date is derived server-side and not accepted here."""
    employee_id: int
    title: str = Field(min_length=1, max_length=200)
    completion_date: date
    validity_days: int = Field(ge=1)


class TrainingUpdate(BaseModel):
    employee_id: Optional[int] = None
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    completion_date: Optional[date] = None
    validity_days: Optional[int] = Field(default=None, ge=1)
    status: Optional[Literal["active", "expired", "renewed"]] = None


class TrainingResponse(BaseModel):
    id: int
    employee_id: int
    title: str
    completion_date: date
    validity_days: int
    expiry_date: date
    status: str
    created_at: datetime

    class Config:
        from_attributes = True
