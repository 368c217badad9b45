from datetime import UTC, datetime, timedelta

from sqlalchemy import select

from hirebit.core.deadlines import DEADLINE_REASON, close_overdue_jobs, run_due_schedules, sweep_deadlines
from hirebit.db.base import utcnow
from hirebit.db.models import JobSchedule
from hirebit.db.repositories import Repository
from hirebit.types import JobStatus

PAST_DEADLINE = datetime(2024, 1, 1, tzinfo=UTC)


def test_past_deadline_job_is_closed_once_with_one_audit(db, make_job, settings) -> None:
    job = make_job(deadline=PAST_DEADLINE)

    first = sweep_deadlines(db, settings=settings)
    second = sweep_deadlines(db, settings=settings)

    repo = Repository(db)
    assert repo.get_job(job.id).status == JobStatus.CLOSED
    assert repo.get_job(job.id).closed_at is not None
    audits = repo.list_audit(job_posting_id=job.id, action="job_closed")
    assert len(audits) == 1
    assert audits[0].metadata_json["reason"] == DEADLINE_REASON
    assert audits[0].metadata_json["source"] == "job_schedule"
    assert first.changed == 1
    assert second.changed == 0


def test_schedule_sweep_marks_schedule_executed(db, make_job) -> None:
    job = make_job(deadline=PAST_DEADLINE)

    result = run_due_schedules(db, now=utcnow())

    schedule = db.scalar(select(JobSchedule).where(JobSchedule.job_posting_id == job.id))
    assert result.examined == 1
    assert schedule.executed is True
    assert schedule.executed_at is not None
    assert run_due_schedules(db, now=utcnow()).examined == 0


def test_catch_all_sweep_closes_jobs_without_schedule_rows(db, make_job) -> None:
    job = make_job(deadline=PAST_DEADLINE)
    db.query(JobSchedule).delete()
    db.commit()

    result = close_overdue_jobs(db, now=utcnow())

    repo = Repository(db)
    assert result.changed == 1
    assert repo.get_job(job.id).status == JobStatus.CLOSED
    audits = repo.list_audit(job_posting_id=job.id, action="job_closed")
    assert [audit.metadata_json["source"] for audit in audits] == ["deadline_sweep"]


def test_schedule_for_already_closed_job_is_consumed_without_audit(db, make_job) -> None:
    job = make_job(deadline=PAST_DEADLINE)
    repo = Repository(db)
    repo.close_job(job.id, reason="manual", source="test")

    result = run_due_schedules(db, now=utcnow())

    assert result.examined == 1
    assert result.changed == 0
    assert len(repo.list_audit(job_posting_id=job.id, action="job_closed")) == 1
    assert repo.due_schedules(utcnow(), 10) == []


def test_future_and_undated_jobs_stay_open(db, make_job, settings) -> None:
    future = make_job(deadline=utcnow() + timedelta(days=3))
    undated = Repository(db).create_job_posting(company_name="Acme", title="Evergreen role")

    result = sweep_deadlines(db, settings=settings)

    repo = Repository(db)
    assert result.examined == 0
    assert repo.get_job(future.id).status == JobStatus.ACTIVE
    assert repo.get_job(undated.id).status == JobStatus.ACTIVE


def test_closed_jobs_never_reopen(db, make_job, settings) -> None:
    job = make_job(deadline=PAST_DEADLINE, status=JobStatus.DRAFT)

    for _ in range(3):
        sweep_deadlines(db, settings=settings)

    assert Repository(db).get_job(job.id).status == JobStatus.CLOSED
    assert len(Repository(db).list_audit(job_posting_id=job.id, action="job_closed")) == 1
