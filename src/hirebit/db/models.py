from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from hirebit.db.base import Base, TimestampMixin, new_id, utcnow
from hirebit.types import Decision, InterviewStatus, JobContext, JobStatus, ScheduleType


def _enum(enum_cls: type, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class Company(TimestampMixin, Base):
    __tablename__ = "companies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    hr_email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    domain: Mapped[str] = mapped_column(String(255), default="", nullable=False)


class JobPosting(TimestampMixin, Base):
    __tablename__ = "job_postings"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str | None] = mapped_column(
        ForeignKey("companies.id", ondelete="SET NULL"), index=True, nullable=True
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    responsibilities: Mapped[str] = mapped_column(Text, default="", nullable=False)
    required_skills_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    application_deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[JobStatus] = mapped_column(
        _enum(JobStatus, "job_status"), default=JobStatus.ACTIVE, nullable=False, index=True
    )
    webhook_secret: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    meeting_link: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    report_attempted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def to_context(self) -> JobContext:
        return JobContext(
            job_id=self.id,
            title=self.title,
            description=self.description or "",
            responsibilities=self.responsibilities or "",
            required_skills=list(self.required_skills_json or []),
        )


class Application(TimestampMixin, Base):
    __tablename__ = "applications"
    __table_args__ = (
        UniqueConstraint("job_posting_id", "email", name="uq_applications_job_email"),
        UniqueConstraint("external_id", name="uq_applications_external_id"),
        Index("ix_applications_job_status", "job_posting_id", "ai_status"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    job_posting_id: Mapped[str] = mapped_column(
        ForeignKey("job_postings.id", ondelete="CASCADE"), index=True, nullable=False
    )
    company_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    candidate_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    phone: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    resume_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    parsed_resume_json: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    ai_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    ai_status: Mapped[Decision | None] = mapped_column(_enum(Decision, "ai_status"), nullable=True)
    reasoning: Mapped[str | None] = mapped_column(Text, nullable=True)
    scored_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    interview_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    interview_link: Mapped[str | None] = mapped_column(String(500), nullable=True)
    interview_status: Mapped[InterviewStatus] = mapped_column(
        _enum(InterviewStatus, "interview_status"), default=InterviewStatus.NONE, nullable=False
    )
    external_id: Mapped[str | None] = mapped_column(String(255), nullable=True)


class Report(Base):
    __tablename__ = "reports"
    __table_args__ = (UniqueConstraint("job_posting_id", name="uq_reports_job_posting"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    job_posting_id: Mapped[str] = mapped_column(
        ForeignKey("job_postings.id", ondelete="CASCADE"), nullable=False
    )
    company_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    report_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class JobSchedule(Base):
    __tablename__ = "job_schedules"
    __table_args__ = (Index("ix_job_schedules_due", "executed", "run_at"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    job_posting_id: Mapped[str] = mapped_column(
        ForeignKey("job_postings.id", ondelete="CASCADE"), index=True, nullable=False
    )
    type: Mapped[ScheduleType] = mapped_column(
        _enum(ScheduleType, "schedule_type"), default=ScheduleType.DEADLINE, nullable=False
    )
    run_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    executed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    executed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    payload_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    action: Mapped[str] = mapped_column(String(80), nullable=False, index=True)
    company_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    job_posting_id: Mapped[str | None] = mapped_column(String(36), index=True, nullable=True)
    metadata_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
