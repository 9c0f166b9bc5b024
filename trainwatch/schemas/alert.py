from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class AlertResponse(BaseModel):
    id: int
    training_id: int
    type: str
    sent: bool
    sent_at: Optional[datetime] = None
    delivery_attempts: int
    last_error: Optional[str] = None
    abandoned_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True
