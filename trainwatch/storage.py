"""
Entity store for users, employees, trainings and alerts.

Every write commits on its own, so each operation is durable by the time it
returns. A store opened with ``commit_writes=False`` only flushes, leaving the
caller to roll the whole session back (dry runs). Reads and writes on owned entities are always scoped by owner id.
"""
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .logging_config import db_logger
from .models import Alert, Employee, Training, User
from .services.expiry import calculate_expiry_date, recompute_expiry
from .timeutils import utcnow


class Storage:
    """Durable keyed store backed by a SQLAlchemy session."""

    def __init__(self, db: Session, commit_writes: bool = True):
        self.db = db
        self.commit_writes = commit_writes

    def _commit(self):
        if self.commit_writes:
            self.db.commit()
        else:
            self.db.flush()

    def _save(self, obj):
        self.db.add(obj)
        self._commit()
        self.db.refresh(obj)
        return obj

    # ============================================================
    # USERS
    # ============================================================

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, **fields) -> User:
        return self._save(User(**fields))

    def update_subscription_status(
        self,
        user_id: int,
        status: str,
        ends_at: Optional[datetime] = None,
    ) -> Optional[User]:
        """Set a user's subscription status and end date. Repeating a write is harmless."""
        user = self.get_user(user_id)
        if not user:
            return None
        user.subscription_status = status
        user.subscription_ends_at = ends_at
        return self._save(user)

    def update_billing_ids(self, user_id: int, customer_id: Optional[str], subscription_id: Optional[str]) -> Optional[User]:
        user = self.get_user(user_id)
        if not user:
            return None
        if customer_id:
            user.billing_customer_id = customer_id
        if subscription_id:
            user.billing_subscription_id = subscription_id
        return self._save(user)

    # ============================================================
    # EMPLOYEES
    # ============================================================

    def list_employees(self, owner_id: int) -> List[Employee]:
        return (
            self.db.query(Employee)
            .filter(Employee.user_id == owner_id)
            .order_by(Employee.created_at.desc(), Employee.id.desc())
            .all()
        )

    def get_employee(self, employee_id: int, owner_id: int) -> Optional[Employee]:
        return self.db.query(Employee).filter(
            Employee.id == employee_id,
            Employee.user_id == owner_id,
        ).first()

    def create_employee(self, owner_id: int, data: Dict[str, Any]) -> Employee:
        return self._save(Employee(user_id=owner_id, **data))

    def update_employee(self, employee_id: int, owner_id: int, data: Dict[str, Any]) -> Optional[Employee]:
        employee = self.get_employee(employee_id, owner_id)
        if not employee:
            return None
        for key, value in data.items():
            setattr(employee, key, value)
        return self._save(employee)

    def delete_employee(self, employee_id: int, owner_id: int) -> bool:
        deleted = self.db.query(Employee).filter(
            Employee.id == employee_id,
            Employee.user_id == owner_id,
        ).delete(synchronize_session=False)
        self._commit()
        return deleted > 0

    # ============================================================
    # TRAININGS
    # ============================================================

    def list_trainings(self, owner_id: int) -> List[Training]:
        return (
            self.db.query(Training)
            .filter(Training.user_id == owner_id)
            .order_by(Training.created_at.desc(), Training.id.desc())
            .all()
        )

    def list_trainings_by_employee(self, employee_id: int, owner_id: int) -> List[Training]:
        return (
            self.db.query(Training)
            .filter(Training.employee_id == employee_id, Training.user_id == owner_id)
            .order_by(Training.created_at.desc(), Training.id.desc())
            .all()
        )

    def get_training(self, training_id: int, owner_id: int) -> Optional[Training]:
        return self.db.query(Training).filter(
            Training.id == training_id,
            Training.user_id == owner_id,
        ).first()

    def get_training_by_id(self, training_id: int) -> Optional[Training]:
        return self.db.query(Training).filter(Training.id == training_id).first()

    def create_training(self, owner_id: int, data: Dict[str, Any]) -> Training:
        """Insert a training; the expiry date is always derived, never taken from ``data``."""
        data = {k: v for k, v in data.items() if k != "expiry_date"}
        training = Training(
            user_id=owner_id,
            expiry_date=calculate_expiry_date(data["completion_date"], data["validity_days"]),
            **data,
        )
        return self._save(training)

    def update_training(self, training_id: int, owner_id: int, partial: Dict[str, Any]) -> Optional[Training]:
        """Apply a partial update, re-deriving expiry when its inputs change."""
        training = self.get_training(training_id, owner_id)
        if not training:
            return None

        partial = {k: v for k, v in partial.items() if k != "expiry_date"}
        if "completion_date" in partial or "validity_days" in partial:
            training.expiry_date = recompute_expiry(
                training,
                completion_date=partial.get("completion_date"),
                validity_days=partial.get("validity_days"),
            )
        for key, value in partial.items():
            setattr(training, key, value)
        return self._save(training)

    def delete_training(self, training_id: int, owner_id: int) -> bool:
        deleted = self.db.query(Training).filter(
            Training.id == training_id,
            Training.user_id == owner_id,
        ).delete(synchronize_session=False)
        self._commit()
        return deleted > 0

    def get_expiring_trainings(self, days_ahead: int, today: date) -> List[Training]:
        """Active trainings whose expiry date is exactly ``today + days_ahead``."""
        target = today + timedelta(days=days_ahead)
        return (
            self.db.query(Training)
            .filter(Training.status == "active", Training.expiry_date == target)
            .order_by(Training.id)
            .all()
        )

    def get_trainings_expiring_between(self, start: date, end: date) -> List[Training]:
        return (
            self.db.query(Training)
            .filter(
                Training.status == "active",
                Training.expiry_date >= start,
                Training.expiry_date <= end,
            )
            .order_by(Training.expiry_date, Training.id)
            .all()
        )

    # ============================================================
    # ALERTS
    # ============================================================

    def find_alert(self, training_id: int, alert_type: str) -> Optional[Alert]:
        """Look up an alert of any delivery state for (training, type)."""
        return self.db.query(Alert).filter(
            Alert.training_id == training_id,
            Alert.type == alert_type,
        ).first()

    def create_alert(self, user_id: int, training_id: int, alert_type: str) -> Optional[Alert]:
        """
        Insert a pending alert.

        Returns None when an alert for (training, type) already exists; the
        unique constraint reports it as an integrity error on commit.
        """
        alert = Alert(user_id=user_id, training_id=training_id, type=alert_type, sent=False)
        self.db.add(alert)
        try:
            self._commit()
        except IntegrityError:
            self.db.rollback()
            db_logger.info(
                "Alert already recorded",
                training_id=training_id,
                alert_type=alert_type,
            )
            return None
        self.db.refresh(alert)
        return alert

    def list_all_alerts_for_dedup(self) -> List[Alert]:
        """Every alert, sent and unsent."""
        return self.db.query(Alert).order_by(Alert.id).all()

    def list_alerts(self, owner_id: int, sent: Optional[bool] = None) -> List[Alert]:
        query = self.db.query(Alert).filter(Alert.user_id == owner_id)
        if sent is not None:
            query = query.filter(Alert.sent.is_(sent))
        return query.order_by(Alert.created_at.desc(), Alert.id.desc()).all()

    def list_retryable_alerts(self, max_attempts: int) -> List[Alert]:
        """Unsent, unabandoned alerts of any age still under the delivery attempt cap."""
        return (
            self.db.query(Alert)
            .filter(
                Alert.sent.is_(False),
                Alert.abandoned_at.is_(None),
                Alert.delivery_attempts < max_attempts,
            )
            .order_by(Alert.id)
            .all()
        )

    def mark_alert_as_sent(self, alert_id: int, sent_at: Optional[datetime] = None) -> Optional[Alert]:
        alert = self.db.query(Alert).filter(Alert.id == alert_id).first()
        if not alert:
            return None
        sent_at = sent_at or utcnow()
        alert.sent = True
        alert.sent_at = sent_at
        alert.delivery_attempts = (alert.delivery_attempts or 0) + 1
        alert.last_attempt_at = sent_at
        alert.last_error = None
        return self._save(alert)

    def record_delivery_failure(self, alert_id: int, error: str, attempted_at: Optional[datetime] = None) -> Optional[Alert]:
        alert = self.db.query(Alert).filter(Alert.id == alert_id).first()
        if not alert:
            return None
        alert.delivery_attempts = (alert.delivery_attempts or 0) + 1
        alert.last_attempt_at = attempted_at or utcnow()
        alert.last_error = error
        return self._save(alert)

    def abandon_alert(self, alert_id: int, reason: str, abandoned_at: Optional[datetime] = None) -> Optional[Alert]:
        """Stop retrying an unsent alert for good; it stays unsent with ``reason`` as its last error."""
        alert = self.db.query(Alert).filter(Alert.id == alert_id).first()
        if not alert:
            return None
        alert.abandoned_at = abandoned_at or utcnow()
        alert.last_error = reason
        return self._save(alert)

    # ============================================================
    # DASHBOARD
    # ============================================================

    def get_dashboard_stats(self, owner_id: int, today: date, window_days: int = 5) -> Dict[str, int]:
        total_employees = self.db.query(func.count(Employee.id)).filter(
            Employee.user_id == owner_id
        ).scalar() or 0

        active = self.db.query(Training).filter(
            Training.user_id == owner_id,
            Training.status == "active",
        )
        total_trainings = active.count()
        expiring_soon = active.filter(
            Training.expiry_date >= today,
            Training.expiry_date <= today + timedelta(days=window_days),
        ).count()
        overdue = active.filter(Training.expiry_date < today).count()

        pending_alerts = self.db.query(func.count(Alert.id)).filter(
            Alert.user_id == owner_id,
            Alert.sent.is_(False),
        ).scalar() or 0

        return {
            "total_employees": total_employees,
            "total_trainings": total_trainings,
            "expiring_soon": expiring_soon,
            "overdue": overdue,
            "pending_alerts": pending_alerts,
        }
