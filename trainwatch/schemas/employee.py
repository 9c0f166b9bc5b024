from pydantic import BaseModel, EmailStr, Field
from datetime import datetime
from typing import Optional


class EmployeeBase(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    position: str = Field(min_length=1, max_length=200)


class EmployeeCreate(EmployeeBase):
    pass


class EmployeeUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    position: Optional[str] = Field(default=None, min_length=1, max_length=200)


class EmployeeResponse(EmployeeBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True
