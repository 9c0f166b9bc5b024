"""
Training expiry calculation and threshold scanning.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from typing import List, Optional, TYPE_CHECKING

from ..models.alert import Alert
from ..models.training import Training

if TYPE_CHECKING:
    from ..storage import Storage


def calculate_expiry_date(completion_date: date, validity_days: int) -> date:
    """
    Derive a training's expiry date.

    Plain calendar-day addition on naive dates; no timezone or business-day
    handling. Callers validate ``validity_days`` upstream, this only guards.
    """
    if validity_days is None or validity_days < 1:
        raise ValueError(f"validity_days must be >= 1, got {validity_days!r}")
    return completion_date + timedelta(days=validity_days)


def recompute_expiry(
    training: Training,
    completion_date: Optional[date] = None,
    validity_days: Optional[int] = None,
) -> date:
    """Recompute expiry for an update; omitted fields fall back to stored values."""
    return calculate_expiry_date(
        completion_date if completion_date is not None else training.completion_date,
        validity_days if validity_days is not None else training.validity_days,
    )


@dataclass(frozen=True)
class AlertThreshold:
    """An alert type and the days-before-expiry at which it fires"""
    alert_type: str
    days_ahead: int
    window_start: int  # lowest days-to-expiry still covered when scanning a window


def default_thresholds(warning_days: int = 5) -> List[AlertThreshold]:
    return [
        AlertThreshold(Alert.WARNING, warning_days, 1),
        AlertThreshold(Alert.EXPIRY_DAY, 0, 0),
    ]


class ExpiryScanner:
    """Finds active trainings that reach an alert threshold on a given day."""

    def __init__(self, storage: "Storage"):
        self.storage = storage

    def scan(self, days_ahead: int, today: Optional[date] = None) -> List[Training]:
        """Trainings expiring exactly ``days_ahead`` days after ``today``."""
        today = today or date.today()
        return self.storage.get_expiring_trainings(days_ahead, today)

    def scan_window(self, min_days: int, max_days: int, today: Optional[date] = None) -> List[Training]:
        """Trainings expiring between ``today + min_days`` and ``today + max_days`` inclusive."""
        today = today or date.today()
        return self.storage.get_trainings_expiring_between(
            today + timedelta(days=min_days),
            today + timedelta(days=max_days),
        )

    def candidates(self, threshold: AlertThreshold, today: date, mode: str = "window") -> List[Training]:
        """Trainings due for ``threshold`` under the configured scan mode."""
        if mode == "exact":
            return self.scan(threshold.days_ahead, today)
        return self.scan_window(threshold.window_start, threshold.days_ahead, today)
