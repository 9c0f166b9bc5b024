"""
Alert model - one expiry notification per (training, type).
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from ..database import Base


class Alert(Base):
    __tablename__ = "alerts"
    __table_args__ = (
        UniqueConstraint("training_id", "type", name="uq_alerts_training_type"),
    )

    WARNING = "5_days_warning"
    EXPIRY_DAY = "expiry_day"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    training_id = Column(Integer, ForeignKey("trainings.id"), nullable=False, index=True)
    type = Column(String(30), nullable=False)
    sent = Column(Boolean, nullable=False, default=False, index=True)
    sent_at = Column(DateTime, nullable=True)
    delivery_attempts = Column(Integer, nullable=False, default=0)
    last_attempt_at = Column(DateTime, nullable=True)
    last_error = Column(Text, nullable=True)
    abandoned_at = Column(DateTime, nullable=True)  # set when retries stop for good
    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))

    # Relationships
    user = relationship("User", back_populates="alerts")
    training = relationship("Training", back_populates="alerts")
