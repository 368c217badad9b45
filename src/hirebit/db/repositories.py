from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from hirebit.db.base import utcnow
from hirebit.db.models import Application, AuditLog, Company, JobPosting, JobSchedule, Report
from hirebit.types import (
    OPEN_JOB_STATUSES,
    InterviewStatus,
    JobStatus,
    ScheduleType,
    ScoringResult,
)

logger = logging.getLogger(__name__)


def normalize_email(value: str) -> str:
    return value.strip().lower()


def normalize_skills(values: list[str] | None) -> list[str]:
    skills: list[str] = []
    for value in values or []:
        cleaned = " ".join(str(value).strip().lower().split())
        if cleaned and cleaned not in skills:
            skills.append(cleaned)
    return skills


class Repository:
    def __init__(self, session: Session):
        self.session = session

    def _insert(self, model: type):
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return postgresql.insert(model)
        if dialect == "sqlite":
            return sqlite.insert(model)
        raise RuntimeError(f"unsupported database dialect {dialect!r}")

    # companies and postings

    def get_company(self, company_id: str | None) -> Company | None:
        if not company_id:
            return None
        return self.session.get(Company, company_id)

    def find_company(self, *, name: str = "", email: str = "") -> Company | None:
        if name:
            company = self.session.scalar(select(Company).where(Company.name == name))
            if company:
                return company
        if email:
            return self.session.scalar(select(Company).where(Company.email == normalize_email(email)))
        return None

    def create_job_posting(
        self,
        *,
        company_name: str,
        title: str,
        company_email: str = "",
        hr_email: str = "",
        description: str = "",
        responsibilities: str = "",
        required_skills: list[str] | None = None,
        application_deadline: datetime | None = None,
        meeting_link: str = "",
        webhook_secret: str = "",
        status: JobStatus = JobStatus.ACTIVE,
    ) -> JobPosting:
        try:
            company = self.find_company(name=company_name, email=company_email)
            if company is None:
                company = Company(
                    name=company_name,
                    email=normalize_email(company_email),
                    hr_email=normalize_email(hr_email),
                )
                self.session.add(company)
                self.session.flush()
                logger.info("Created company %s (%s)", company.id, company.name)
            elif hr_email and company.hr_email != normalize_email(hr_email):
                company.hr_email = normalize_email(hr_email)

            job = JobPosting(
                company_id=company.id,
                title=title.strip(),
                description=description,
                responsibilities=responsibilities,
                required_skills_json=normalize_skills(required_skills),
                application_deadline=application_deadline,
                meeting_link=meeting_link,
                webhook_secret=webhook_secret,
                status=status,
            )
            self.session.add(job)
            self.session.flush()

            if application_deadline is not None:
                self.session.add(
                    JobSchedule(
                        job_posting_id=job.id,
                        type=ScheduleType.DEADLINE,
                        run_at=application_deadline,
                        payload_json={"job_title": job.title},
                    )
                )
            self.add_audit(
                "job_created",
                company_id=company.id,
                job_posting_id=job.id,
                metadata={"job_title": job.title, "company_name": company.name},
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.session.refresh(job)
        logger.info("Job posting created %s (%s)", job.id, job.title)
        return job

    def get_job(self, job_id: str) -> JobPosting | None:
        return self.session.get(JobPosting, job_id)

    def list_jobs(self, limit: int = 50) -> list[JobPosting]:
        statement = select(JobPosting).order_by(JobPosting.created_at.desc()).limit(limit)
        return list(self.session.scalars(statement).all())

    def list_open_jobs(self) -> list[JobPosting]:
        statement = select(JobPosting).where(JobPosting.status.in_(OPEN_JOB_STATUSES))
        return list(self.session.scalars(statement).all())

    def close_job(
        self,
        job_id: str,
        *,
        reason: str,
        source: str,
        schedule_id: str | None = None,
    ) -> bool:
        now = utcnow()
        result = self.session.execute(
            update(JobPosting)
            .where(JobPosting.id == job_id, JobPosting.status != JobStatus.CLOSED)
            .values(status=JobStatus.CLOSED, closed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        closed = result.rowcount == 1
        if closed:
            job = self.session.get(JobPosting, job_id)
            metadata: dict[str, Any] = {"reason": reason, "source": source}
            if schedule_id:
                metadata["schedule_id"] = schedule_id
            self.add_audit(
                "job_closed",
                company_id=job.company_id if job else None,
                job_posting_id=job_id,
                metadata=metadata,
            )
        self.session.commit()
        return closed

    def overdue_open_job_ids(self, now: datetime, limit: int) -> list[str]:
        statement = (
            select(JobPosting.id)
            .where(
                JobPosting.status.in_(OPEN_JOB_STATUSES),
                JobPosting.application_deadline.is_not(None),
                JobPosting.application_deadline <= now,
            )
            .order_by(JobPosting.application_deadline)
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

    # schedules

    def due_schedules(self, now: datetime, limit: int) -> list[JobSchedule]:
        statement = (
            select(JobSchedule)
            .where(
                JobSchedule.executed.is_(False),
                JobSchedule.type == ScheduleType.DEADLINE,
                JobSchedule.run_at <= now,
            )
            .order_by(JobSchedule.run_at)
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

    def mark_schedule_executed(self, schedule_id: str) -> bool:
        result = self.session.execute(
            update(JobSchedule)
            .where(JobSchedule.id == schedule_id, JobSchedule.executed.is_(False))
            .values(executed=True, executed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    # applications

    def insert_application_if_absent(self, values: dict[str, Any]) -> tuple[Application, bool]:
        """Insert-or-fetch on the (job, email) and external_id unique keys.

        Returns the row that holds the key and whether this call created it.
        """
        payload = dict(values)
        payload["email"] = normalize_email(payload["email"])
        statement = (
            self._insert(Application)
            .values(**payload)
            .on_conflict_do_nothing()
            .returning(Application.id)
        )
        inserted_id = self.session.execute(statement).scalar_one_or_none()
        self.session.commit()

        if inserted_id is not None:
            application = self.session.get(Application, inserted_id)
            return application, True

        existing = None
        if payload.get("external_id"):
            existing = self.find_application_by_external_id(payload["external_id"])
        if existing is None:
            existing = self.find_application(payload["job_posting_id"], payload["email"])
        if existing is None:
            raise RuntimeError("application insert was skipped but no conflicting row was found")
        return existing, False

    def get_application(self, application_id: str) -> Application | None:
        return self.session.get(Application, application_id)

    def find_application(self, job_id: str, email: str) -> Application | None:
        statement = select(Application).where(
            Application.job_posting_id == job_id,
            Application.email == normalize_email(email),
        )
        return self.session.scalar(statement)

    def find_application_by_external_id(self, external_id: str) -> Application | None:
        return self.session.scalar(select(Application).where(Application.external_id == external_id))

    def list_applications(self, job_id: str) -> list[Application]:
        statement = (
            select(Application)
            .where(Application.job_posting_id == job_id)
            .order_by(Application.created_at)
        )
        return list(self.session.scalars(statement).all())

    def list_unscored_applications(self, limit: int) -> list[tuple[Application, JobPosting]]:
        statement = (
            select(Application, JobPosting)
            .join(JobPosting, JobPosting.id == Application.job_posting_id)
            .where(Application.ai_status.is_(None))
            .order_by(Application.created_at)
            .limit(limit)
        )
        return [(row[0], row[1]) for row in self.session.execute(statement).all()]

    def update_parsed_resume(self, application_id: str, parsed: dict[str, Any]) -> None:
        self.session.execute(
            update(Application)
            .where(Application.id == application_id)
            .values(parsed_resume_json=parsed, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

    def record_decision(self, application_id: str, result: ScoringResult) -> bool:
        """Write a decision only while the application is unscored.

        Returns True for the single caller whose write transitioned ai_status.
        """
        now = utcnow()
        outcome = self.session.execute(
            update(Application)
            .where(Application.id == application_id, Application.ai_status.is_(None))
            .values(
                ai_score=result.score,
                ai_status=result.status,
                reasoning=result.reasoning,
                scored_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return outcome.rowcount == 1

    def schedule_interview(self, application_id: str, *, interview_time: datetime, interview_link: str) -> bool:
        result = self.session.execute(
            update(Application)
            .where(
                Application.id == application_id,
                Application.interview_status == InterviewStatus.NONE,
            )
            .values(
                interview_time=interview_time,
                interview_link=interview_link,
                interview_status=InterviewStatus.SCHEDULED,
                updated_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        return result.rowcount == 1

    # reports

    def get_report_for_job(self, job_id: str) -> Report | None:
        return self.session.scalar(select(Report).where(Report.job_posting_id == job_id))

    def jobs_due_for_report(
        self,
        now: datetime,
        limit: int,
        *,
        retry_after: timedelta = timedelta(0),
    ) -> list[JobPosting]:
        """Closed or past-deadline jobs without a report, never-attempted jobs first.

        Jobs whose last attempt is more recent than ``retry_after`` wait for a later sweep.
        """
        statement = (
            select(JobPosting)
            .outerjoin(Report, Report.job_posting_id == JobPosting.id)
            .where(
                Report.id.is_(None),
                or_(
                    JobPosting.status == JobStatus.CLOSED,
                    JobPosting.application_deadline <= now,
                ),
                or_(
                    JobPosting.report_attempted_at.is_(None),
                    JobPosting.report_attempted_at <= now - retry_after,
                ),
            )
            .order_by(
                JobPosting.report_attempted_at.asc().nulls_first(),
                JobPosting.application_deadline,
            )
            .limit(limit)
        )
        return list(self.session.scalars(statement).all())

    def mark_report_attempt(self, job_id: str) -> None:
        self.session.execute(
            update(JobPosting)
            .where(JobPosting.id == job_id)
            .values(report_attempted_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.session.commit()

    def discard_report(self, report_id: str, *, audit_id: str | None = None) -> None:
        """Remove a committed report and its audit entry after a failed delivery."""
        self.session.rollback()
        self.session.execute(delete(Report).where(Report.id == report_id))
        if audit_id:
            self.session.execute(delete(AuditLog).where(AuditLog.id == audit_id))
        self.session.commit()
        logger.info("Discarded report %s", report_id)

    def insert_report_if_absent(
        self,
        *,
        job_id: str,
        company_id: str | None,
        report_url: str,
    ) -> tuple[Report, bool]:
        """Insert-or-fetch keyed by job. Leaves the transaction open for the caller."""
        statement = (
            self._insert(Report)
            .values(job_posting_id=job_id, company_id=company_id, report_url=report_url)
            .on_conflict_do_nothing(index_elements=[Report.job_posting_id])
            .returning(Report.id)
        )
        inserted_id = self.session.execute(statement).scalar_one_or_none()
        if inserted_id is not None:
            return self.session.get(Report, inserted_id), True

        existing = self.get_report_for_job(job_id)
        if existing is None:
            raise RuntimeError(f"report insert for job {job_id} was skipped but no row exists")
        return existing, False

    # audit

    def add_audit(
        self,
        action: str,
        *,
        company_id: str | None = None,
        job_posting_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLog:
        entry = AuditLog(
            action=action,
            company_id=company_id,
            job_posting_id=job_posting_id,
            metadata_json=metadata or {},
        )
        self.session.add(entry)
        return entry

    def list_audit(self, *, job_posting_id: str | None = None, action: str | None = None) -> list[AuditLog]:
        statement = select(AuditLog).order_by(AuditLog.created_at)
        if job_posting_id:
            statement = statement.where(AuditLog.job_posting_id == job_posting_id)
        if action:
            statement = statement.where(AuditLog.action == action)
        return list(self.session.scalars(statement).all())
