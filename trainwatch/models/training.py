"""
Training model - a completed training with a validity window.
"""
from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from ..database import Base


class Training(Base):
    __tablename__ = "trainings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    employee_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    title = Column(String(200), nullable=False)
    completion_date = Column(Date, nullable=False)
    validity_days = Column(Integer, nullable=False)
    expiry_date = Column(Date, nullable=False, index=True)  # completion_date + validity_days
    status = Column(String(20), nullable=False, default="active", index=True)  # active, expired, renewed
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Relationships
    user = relationship("User", back_populates="trainings")
    employee = relationship("Employee", back_populates="trainings")
    alerts = relationship("Alert", back_populates="training")
