"""
Expiry Alert Scheduler

Drives the daily expiry alert run from a ticking source:
- IntervalTicker: background thread, one warm-up tick shortly after start,
  then one tick per interval
- ManualTicker: ticks only when told to (tests, one-off runs)

The alert job subscribes to a ticker; nothing here holds process-wide
timer state apart from the lazily created default scheduler.
"""

import threading
from datetime import date, datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from ..config import Settings, get_settings
from ..logging_config import scheduler_logger
from ..services.alerts import AlertRunSummary, ExpiryAlertService
from ..services.mailer import LogTransport, MailTransport, get_mail_transport
from ..services.notifications import NotificationDispatcher
from ..storage import Storage
from ..timeutils import utcnow

TickCallback = Callable[[datetime], None]


class Ticker:
    """A source of ticks that subscribers are called on"""

    def __init__(self):
        self._subscribers: List[TickCallback] = []

    def subscribe(self, callback: TickCallback):
        self._subscribers.append(callback)

    def _fire(self, now: datetime):
        for callback in list(self._subscribers):
            try:
                callback(now)
            except Exception as e:
                scheduler_logger.error("Tick subscriber failed", error=e)

    def start(self) -> bool:
        return True

    def stop(self) -> bool:
        return True

    @property
    def running(self) -> bool:
        return False


class ManualTicker(Ticker):
    """Ticks synchronously on demand."""

    def tick(self, now: Optional[datetime] = None):
        self._fire(now or utcnow())


class IntervalTicker(Ticker):
    """Ticks on a background daemon thread at a fixed cadence."""

    def __init__(self, interval_seconds: float, warmup_seconds: float = 60.0):
        super().__init__()
        self.interval_seconds = interval_seconds
        self.warmup_seconds = warmup_seconds
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _loop(self):
        delay = self.warmup_seconds
        while not self._stop_event.wait(delay):
            self._fire(utcnow())
            delay = self.interval_seconds

    def start(self) -> bool:
        """Start ticking in the background (non-blocking for FastAPI)"""
        if self.running:
            return False  # Already running

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="expiry-alert-ticker")
        self._thread.start()
        scheduler_logger.info(
            "Alert ticker started",
            interval_seconds=self.interval_seconds,
            warmup_seconds=self.warmup_seconds,
        )
        return True

    def stop(self, timeout: float = 5.0) -> bool:
        if not self.running:
            return False

        self._stop_event.set()
        self._thread.join(timeout)
        if self._thread.is_alive():
            # Still inside a tick; the loop exits once it returns
            scheduler_logger.warning("Alert ticker still finishing a run", timeout_seconds=timeout)
            return False

        self._thread = None
        scheduler_logger.info("Alert ticker stopped")
        return True


class ExpiryAlertJob:
    """
    Tick subscriber that performs one alert run per tick.

    Runs never overlap within a process: a tick that arrives while a run is
    still in progress is skipped.

    A dry-run job logs emails instead of sending them and rolls its session
    back, so nothing it records survives the run.
    """

    def __init__(
        self,
        session_factory: Callable[[], Session],
        settings: Optional[Settings] = None,
        transport: Optional[MailTransport] = None,
        today: Optional[Callable[[], date]] = None,
        dry_run: bool = False,
    ):
        self.session_factory = session_factory
        self.settings = settings or get_settings()
        self.dry_run = dry_run
        if transport is None:
            transport = LogTransport() if dry_run else get_mail_transport(self.settings)
        self.transport = transport
        self.today = today or date.today
        self._lock = threading.Lock()
        self.last_summary: Optional[AlertRunSummary] = None
        self.last_run_at: Optional[datetime] = None

    def __call__(self, now: datetime):
        self.run_once()

    def run_once(self) -> Optional[AlertRunSummary]:
        if not self._lock.acquire(blocking=False):
            scheduler_logger.warning("Previous alert run still in progress; skipping tick")
            return None

        log = scheduler_logger
        db = None
        try:
            run_date = self.today()
            log = scheduler_logger.bind(run_date=run_date.isoformat(), dry_run=self.dry_run)
            db = self.session_factory()
            log.info("Checking training expiry", mode=self.settings.alert_scan_mode)
            storage = Storage(db, commit_writes=not self.dry_run)
            dispatcher = NotificationDispatcher(storage, self.transport, self.settings)
            service = ExpiryAlertService(storage, dispatcher, self.settings)
            summary = service.run(run_date)
            if self.dry_run:
                db.rollback()
                return summary
            self.last_summary = summary
            self.last_run_at = utcnow()
            return summary
        except Exception as e:
            if db is not None:
                db.rollback()
            log.error("Error checking training expiry", error=e)
            return None
        finally:
            if db is not None:
                db.close()
            self._lock.release()

    def get_status(self) -> dict:
        return {
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
        }


class AlertScheduler:
    """Couples a ticker with the alert job."""

    def __init__(self, ticker: Ticker, job: ExpiryAlertJob):
        self.ticker = ticker
        self.job = job
        ticker.subscribe(job)

    def start(self) -> bool:
        return self.ticker.start()

    def stop(self) -> bool:
        return self.ticker.stop()

    def get_status(self) -> dict:
        status = {"running": self.ticker.running}
        status.update(self.job.get_status())
        return status


# Default scheduler instance (initialized lazily)
_alert_scheduler: Optional[AlertScheduler] = None


def get_alert_scheduler() -> AlertScheduler:
    """Get or create the default alert scheduler"""
    global _alert_scheduler
    if _alert_scheduler is None:
        from ..database import SessionLocal

        settings = get_settings()
        ticker = IntervalTicker(
            interval_seconds=settings.alert_scan_interval_hours * 3600,
            warmup_seconds=settings.alert_warmup_seconds,
        )
        _alert_scheduler = AlertScheduler(ticker, ExpiryAlertJob(SessionLocal, settings))
    return _alert_scheduler
