from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from hirebit.config import Settings, get_settings
from hirebit.db.base import utcnow
from hirebit.db.repositories import Repository
from hirebit.types import SweepResult

logger = logging.getLogger(__name__)

DEADLINE_REASON = "application_deadline_passed"


def run_due_schedules(session: Session, *, now: datetime | None = None, limit: int = 100) -> SweepResult:
    """Consume due deadline schedules: close the job, then mark the schedule executed."""
    repo = Repository(session)
    now = now or utcnow()
    result = SweepResult()

    for schedule in repo.due_schedules(now, limit):
        result.examined += 1
        schedule_id, job_id = schedule.id, schedule.job_posting_id
        try:
            if repo.close_job(job_id, reason=DEADLINE_REASON, source="job_schedule", schedule_id=schedule_id):
                result.changed += 1
                logger.info("Closed job %s from schedule %s", job_id, schedule_id)
            repo.mark_schedule_executed(schedule_id)
        except Exception:
            session.rollback()
            result.failed += 1
            logger.exception("Failed executing schedule %s for job %s", schedule_id, job_id)
    return result


def close_overdue_jobs(session: Session, *, now: datetime | None = None, limit: int = 100) -> SweepResult:
    """Close open postings past their deadline whether or not a schedule row exists."""
    repo = Repository(session)
    now = now or utcnow()
    result = SweepResult()

    for job_id in repo.overdue_open_job_ids(now, limit):
        result.examined += 1
        try:
            if repo.close_job(job_id, reason=DEADLINE_REASON, source="deadline_sweep"):
                result.changed += 1
                logger.info("Closed overdue job %s", job_id)
        except Exception:
            session.rollback()
            result.failed += 1
            logger.exception("Failed closing overdue job %s", job_id)
    return result


def sweep_deadlines(
    session: Session,
    *,
    settings: Settings | None = None,
    now: datetime | None = None,
) -> SweepResult:
    settings = settings or get_settings()
    now = now or utcnow()
    scheduled = run_due_schedules(session, now=now, limit=settings.schedule_batch_size)
    overdue = close_overdue_jobs(session, now=now, limit=settings.schedule_batch_size)
    total = SweepResult(
        examined=scheduled.examined + overdue.examined,
        changed=scheduled.changed + overdue.changed,
        failed=scheduled.failed + overdue.failed,
    )
    logger.info(
        "Deadline sweep examined=%d closed=%d failed=%d", total.examined, total.changed, total.failed
    )
    return total
