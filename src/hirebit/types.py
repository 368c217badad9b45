from __future__ import annotations

import re
from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class JobStatus(StrEnum):
    DRAFT = "DRAFT"
    ACTIVE = "ACTIVE"
    CLOSED = "CLOSED"


class Decision(StrEnum):
    SHORTLIST = "SHORTLIST"
    FLAG = "FLAG"
    REJECT = "REJECT"


class InterviewStatus(StrEnum):
    NONE = "NONE"
    SCHEDULED = "SCHEDULED"


class ScheduleType(StrEnum):
    DEADLINE = "deadline"


class ScoringSource(StrEnum):
    MODEL = "model"
    HEURISTIC = "heuristic"


OPEN_JOB_STATUSES = (JobStatus.DRAFT, JobStatus.ACTIVE)

_EMAIL_SHAPE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class JobContext(BaseModel):
    job_id: str = ""
    title: str = ""
    description: str = ""
    responsibilities: str = ""
    required_skills: list[str] = Field(default_factory=list)


class CandidateProfile(BaseModel):
    name: str = ""
    email: str = ""
    text: str = ""
    skills: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)


class ScoringResult(BaseModel):
    score: float
    status: Decision
    reasoning: str
    source: ScoringSource = ScoringSource.MODEL

    @field_validator("score")
    @classmethod
    def validate_score(cls, value: float) -> float:
        if value < 0 or value > 100:
            raise ValueError("score must be between 0 and 100")
        return value


class ApplicantSummary(BaseModel):
    id: str
    candidate_name: str | None = None
    email: str
    ai_score: float | None = None
    ai_status: Decision | None = None
    reasoning: str | None = None
    skills: list[str] = Field(default_factory=list)
    links: list[str] = Field(default_factory=list)


class TopCandidate(BaseModel):
    name: str = "Unknown"
    email: str = ""
    score: float = 0.0
    key_strengths: list[str] = Field(default_factory=list)
    reasoning: str = ""


class ReportAnalysis(BaseModel):
    executive_summary: str
    top_candidates: list[TopCandidate] = Field(default_factory=list)
    role_fit_analysis: str = ""
    gaps_in_pool: str = ""
    recommendations: list[str] = Field(default_factory=list)
    source: ScoringSource = ScoringSource.MODEL

    @field_validator("top_candidates")
    @classmethod
    def limit_top_candidates(cls, value: list[TopCandidate]) -> list[TopCandidate]:
        return value[:3]


class ReportStatistics(BaseModel):
    total: int = 0
    shortlisted: int = 0
    flagged: int = 0
    rejected: int = 0
    unscored: int = 0
    average_score: float = 0.0


class ReportResult(BaseModel):
    report_id: str
    report_url: str
    job_id: str
    company_id: str | None = None
    created: bool = True


class DecisionNotice(BaseModel):
    to: str
    candidate_name: str = ""
    status: Decision
    interview_link: str | None = None
    job_posting_id: str | None = None


class EmailAttachment(BaseModel):
    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


class OutboundEmail(BaseModel):
    to: str
    subject: str
    text: str
    html: str | None = None
    reply_to: str | None = None
    attachments: list[EmailAttachment] = Field(default_factory=list)


class ModelResponse(BaseModel):
    content: str
    raw: dict[str, Any] = Field(default_factory=dict)


class SweepResult(BaseModel):
    examined: int = 0
    changed: int = 0
    failed: int = 0


class IngestionSummary(BaseModel):
    fetched: int = 0
    created: int = 0
    duplicates: int = 0
    scored: int = 0
    skipped: int = 0
    failed: int = 0
    finished_at: datetime | None = None


class InboundApplication(BaseModel):
    candidate_name: str | None = None
    email: str
    phone: str | None = None
    resume_url: str | None = None
    parsed_resume: dict[str, Any] | None = None
    score: float | None = None
    status: Decision | None = None
    reasoning: str | None = None
    external_id: str | None = None
    message_id: str | None = None
    subject: str | None = None
    received_at: str | None = None

    @field_validator("email")
    @classmethod
    def validate_email(cls, value: str) -> str:
        cleaned = value.strip().lower()
        if not _EMAIL_SHAPE.match(cleaned):
            raise ValueError("email is not a valid address")
        return cleaned

    @field_validator("score", mode="before")
    @classmethod
    def validate_score(cls, value: Any) -> Any:
        if value is None:
            return value
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError("score must be a number")
        if not 0 <= float(value) <= 100:
            raise ValueError("score must be between 0 and 100")
        return value

    @field_validator("status", mode="before")
    @classmethod
    def normalize_status(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().upper() or None
        return value


class InboundResult(BaseModel):
    application_id: str
    created: bool
