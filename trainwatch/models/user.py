"""
User model for authentication, ownership and subscription state.
"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from ..database import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    first_name = Column(String(100))
    last_name = Column(String(100))
    company_name = Column(String(200))
    is_active = Column(Boolean, default=True)

    # Subscription
    subscription_status = Column(String(20), nullable=False, default="trial")  # trial, active, canceled, expired
    trial_ends_at = Column(DateTime, nullable=True)
    subscription_ends_at = Column(DateTime, nullable=True)
    billing_customer_id = Column(String(255), nullable=True)
    billing_subscription_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))

    # Deletions are scoped by owner id in the store, not cascaded
    employees = relationship("Employee", back_populates="user")
    trainings = relationship("Training", back_populates="user")
    alerts = relationship("Alert", back_populates="user")

    @property
    def display_name(self) -> str:
        full_name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return full_name or self.email.split("@")[0]
