from __future__ import annotations

import logging
import signal
import threading
from collections.abc import Callable, Iterable

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.orm import Session

from hirebit.config import Settings, get_settings
from hirebit.core.deadlines import sweep_deadlines
from hirebit.core.ingestion import IngestionEngine, score_pending_applications
from hirebit.core.reports import sweep_reports
from hirebit.db.base import utcnow
from hirebit.db.session import SessionLocal

logger = logging.getLogger(__name__)

SWEEP_NAMES = ("mailbox-poll", "deadline-sweep", "report-sweep", "pending-scoring")

SessionFactory = Callable[[], Session]


def run_mailbox_poll(session_factory: SessionFactory, settings: Settings) -> None:
    with session_factory() as session:
        IngestionEngine(session, settings=settings).poll()


def run_deadline_sweep(session_factory: SessionFactory, settings: Settings) -> None:
    with session_factory() as session:
        sweep_deadlines(session, settings=settings)


def run_report_sweep(session_factory: SessionFactory, settings: Settings) -> None:
    sweep_reports(session_factory, settings=settings)


def run_pending_scoring(session_factory: SessionFactory, settings: Settings) -> None:
    with session_factory() as session:
        score_pending_applications(session, settings=settings)


_SWEEPS: dict[str, tuple[Callable[[SessionFactory, Settings], None], str]] = {
    "mailbox-poll": (run_mailbox_poll, "imap_poll_interval_sec"),
    "deadline-sweep": (run_deadline_sweep, "deadline_sweep_interval_sec"),
    "report-sweep": (run_report_sweep, "report_sweep_interval_sec"),
    "pending-scoring": (run_pending_scoring, "pending_scoring_interval_sec"),
}


def _guarded(
    name: str,
    func: Callable[[SessionFactory, Settings], None],
    session_factory: SessionFactory,
    settings: Settings,
) -> Callable[[], None]:
    def tick() -> None:
        try:
            func(session_factory, settings)
        except Exception:
            logger.exception("Scheduled job %s failed", name)

    return tick


def build_scheduler(
    sweeps: Iterable[str] | None = None,
    *,
    settings: Settings | None = None,
    session_factory: SessionFactory | None = None,
) -> BackgroundScheduler:
    """Register one interval job per sweep; a tick never overlaps the previous one."""
    settings = settings or get_settings()
    session_factory = session_factory or SessionLocal
    selected = list(sweeps) if sweeps else list(SWEEP_NAMES)
    unknown = [name for name in selected if name not in _SWEEPS]
    if unknown:
        raise ValueError(f"unknown sweeps: {', '.join(unknown)}; expected any of {', '.join(SWEEP_NAMES)}")

    scheduler = BackgroundScheduler(timezone="UTC")
    for name in selected:
        func, interval_setting = _SWEEPS[name]
        seconds = max(1, int(getattr(settings, interval_setting)))
        scheduler.add_job(
            _guarded(name, func, session_factory, settings),
            trigger=IntervalTrigger(seconds=seconds),
            id=name,
            name=name,
            max_instances=1,
            coalesce=True,
            next_run_time=utcnow(),
            replace_existing=True,
        )
        logger.info("Scheduled %s every %ds", name, seconds)
    return scheduler


def run_forever(scheduler: BackgroundScheduler) -> None:
    stop = threading.Event()

    def _stop(signum, _frame) -> None:
        logger.info("Received signal %s; stopping worker", signum)
        stop.set()

    signal.signal(signal.SIGINT, _stop)
    signal.signal(signal.SIGTERM, _stop)
    scheduler.start()
    try:
        stop.wait()
    finally:
        scheduler.shutdown(wait=True)
