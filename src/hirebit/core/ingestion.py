from __future__ import annotations

import logging
import re
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from hirebit.config import Settings, get_settings
from hirebit.core.cv_parser import (
    ExtractedResume,
    ResumeExtractionError,
    extract_links,
    extract_resume,
    skills_found,
)
from hirebit.core.notifier import DecisionNotifier
from hirebit.core.runtime import get_ingestion_status
from hirebit.db.base import as_utc, utcnow
from hirebit.db.models import Application, JobPosting
from hirebit.db.repositories import Repository
from hirebit.llm.router import LLMRouter
from hirebit.mail.mailbox import ImapMailbox, InboundMessage, Mailbox
from hirebit.mail.transport import MailTransport
from hirebit.storage import BlobStore
from hirebit.types import (
    CandidateProfile,
    Decision,
    DecisionNotice,
    IngestionSummary,
    JobStatus,
    ScoringResult,
    ScoringSource,
    SweepResult,
)

logger = logging.getLogger(__name__)

JOB_TOKEN_PATTERN = re.compile(r"\[JOB:\s*([A-Za-z0-9-]+)\s*\]", re.IGNORECASE)
_REPLY_PREFIX = re.compile(r"^\s*((re|fw|fwd|aw)\s*:\s*)+", re.IGNORECASE)

UNREADABLE_RESUME_REASONING = (
    "Automatic analysis failed: the attached resume could not be read. Manual review required."
)
MISSING_RESUME_REASONING = "Automatic analysis skipped: no resume content was available. Manual review required."

MailboxFactory = Callable[[], AbstractContextManager[Mailbox]]


@dataclass(slots=True)
class MessageOutcome:
    kind: str  # created | duplicate | skipped | unreadable | failed
    mark_seen: bool
    application_id: str | None = None
    scored: bool = False


def extract_job_token(subject: str) -> str | None:
    match = JOB_TOKEN_PATTERN.search(subject or "")
    return match.group(1).lower() if match else None


def normalize_subject(subject: str) -> str:
    value = JOB_TOKEN_PATTERN.sub(" ", subject or "")
    value = _REPLY_PREFIX.sub("", value)
    return " ".join(value.lower().split())


def match_job_by_title(subject: str, jobs: list[JobPosting]) -> JobPosting | None:
    """Exact title, then longest title prefix, then longest title substring, then subject inside a title."""
    normalized = normalize_subject(subject)
    if not normalized:
        return None

    best: JobPosting | None = None
    best_rank = (0, 0)
    for job in jobs:
        title = " ".join((job.title or "").lower().split())
        if not title:
            continue
        if normalized == title:
            return job
        if normalized.startswith(title):
            rank = (3, len(title))
        elif title in normalized:
            rank = (2, len(title))
        elif len(normalized) >= 5 and normalized in title:
            rank = (1, len(normalized))
        else:
            continue
        if rank > best_rank:
            best, best_rank = job, rank
    return best


def accepts_applications(job: JobPosting) -> bool:
    if job.status == JobStatus.CLOSED:
        return False
    deadline = as_utc(job.application_deadline)
    return deadline is None or deadline > utcnow()


class ApplicationScorer:
    """Scores one application and notifies the candidate when this caller's write wins."""

    def __init__(self, session: Session, router: LLMRouter, notifier: DecisionNotifier):
        self.repo = Repository(session)
        self.router = router
        self.notifier = notifier

    def score(self, application: Application, job: JobPosting, resume: ExtractedResume) -> bool:
        context = job.to_context()
        skills = skills_found(resume.text, context.required_skills)
        if application.parsed_resume_json is None:
            self.repo.update_parsed_resume(application.id, resume.to_resume_json(skills))

        candidate = CandidateProfile(
            name=application.candidate_name,
            email=application.email,
            text=resume.text,
            skills=skills,
            links=resume.links,
        )
        result = self.router.score_candidate(candidate=candidate, job=context)
        return self.record(application, result, notify=True)

    def record(self, application: Application, result: ScoringResult, *, notify: bool) -> bool:
        won = self.repo.record_decision(application.id, result)
        if not won:
            logger.info("Application %s was already decided by another run; skipping email", application.id)
            return False

        logger.info(
            "Application %s decided %s score=%.1f source=%s",
            application.id,
            result.status,
            result.score,
            result.source,
        )
        if notify:
            self.notifier.notify(
                DecisionNotice(
                    to=application.email,
                    candidate_name=application.candidate_name,
                    status=result.status,
                    job_posting_id=application.job_posting_id,
                )
            )
        return True

    def mark_unreadable(self, application: Application, *, reasoning: str = UNREADABLE_RESUME_REASONING) -> bool:
        result = ScoringResult(
            score=0,
            status=Decision.FLAG,
            reasoning=reasoning,
            source=ScoringSource.HEURISTIC,
        )
        return self.record(application, result, notify=False)


class IngestionEngine:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        mailbox_factory: MailboxFactory | None = None,
        router: LLMRouter | None = None,
        transport: MailTransport | None = None,
        store: BlobStore | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.mailbox_factory = mailbox_factory or (lambda: ImapMailbox(self.settings))
        self.store = store or BlobStore(self.settings)
        self.scorer = ApplicationScorer(
            session,
            router or LLMRouter(self.settings),
            DecisionNotifier(session, transport=transport, settings=self.settings),
        )

    def poll(self) -> IngestionSummary:
        status = get_ingestion_status()
        summary = IngestionSummary()
        if not self.settings.mailbox_configured:
            reason = "missing mailbox settings: " + ", ".join(self.settings.missing_mailbox_settings)
            logger.warning("Mailbox ingestion disabled (%s)", reason)
            status.disabled(reason)
            return summary

        status.started()
        error: str | None = None
        try:
            with self.mailbox_factory() as mailbox:
                messages = mailbox.fetch_unseen(self.settings.imap_max_messages_per_poll)
                summary.fetched = len(messages)
                # Sequential: scoring hits a rate-limited service and dedup relies on insert-then-score.
                for message in messages:
                    outcome = self.process_message(message)
                    self._count(summary, outcome)
                    if outcome.mark_seen:
                        mailbox.mark_seen(message.uid)
        except Exception as exc:
            error = str(exc)
            logger.exception("Mailbox poll failed")
        finally:
            summary.finished_at = utcnow()
            status.finished(summary.model_dump(mode="json"), error=error)

        logger.info(
            "Mailbox poll fetched=%d created=%d duplicates=%d scored=%d skipped=%d failed=%d",
            summary.fetched,
            summary.created,
            summary.duplicates,
            summary.scored,
            summary.skipped,
            summary.failed,
        )
        return summary

    @staticmethod
    def _count(summary: IngestionSummary, outcome: MessageOutcome) -> None:
        if outcome.kind == "created":
            summary.created += 1
        elif outcome.kind == "duplicate":
            summary.duplicates += 1
        elif outcome.kind == "skipped":
            summary.skipped += 1
        else:
            summary.failed += 1
        if outcome.scored:
            summary.scored += 1

    def process_message(self, message: InboundMessage) -> MessageOutcome:
        try:
            return self._process(message)
        except Exception:
            self.session.rollback()
            logger.exception("Failed to process message uid=%s from=%s", message.uid, message.sender_email)
            return MessageOutcome(kind="failed", mark_seen=False)

    def resolve_job(self, subject: str) -> JobPosting | None:
        token = extract_job_token(subject)
        if token:
            job = self.repo.get_job(token)
            if job is not None:
                return job
            logger.warning("Subject token %s does not match any job posting", token)
        return match_job_by_title(subject, self.repo.list_open_jobs())

    def _process(self, message: InboundMessage) -> MessageOutcome:
        if not message.sender_email:
            logger.warning("Skipping message uid=%s without a sender address", message.uid)
            return MessageOutcome(kind="skipped", mark_seen=True)

        job = self.resolve_job(message.subject)
        if job is None:
            logger.warning("No job posting matches subject %r (uid=%s)", message.subject, message.uid)
            return MessageOutcome(kind="skipped", mark_seen=True)
        if not accepts_applications(job):
            logger.info("Job %s no longer accepts applications; skipping uid=%s", job.id, message.uid)
            return MessageOutcome(kind="skipped", mark_seen=True)

        attachment = message.first_attachment
        resume_url: str | None = None
        if attachment is not None:
            resume_url = self.store.put(self.store.resume_key(job.id, attachment.filename), attachment.data)

        values: dict[str, Any] = {
            "job_posting_id": job.id,
            "company_id": job.company_id,
            "email": message.sender_email,
            "candidate_name": message.sender_name or message.sender_email.split("@")[0],
            "resume_url": resume_url,
        }
        try:
            application, created = self.repo.insert_application_if_absent(values)
        except Exception:
            if resume_url:
                self.store.delete(resume_url)
            raise
        if not created and resume_url and application.resume_url != resume_url:
            self.store.delete(resume_url)

        if application.ai_status is not None:
            logger.info("Duplicate application %s for job %s already decided", application.id, job.id)
            return MessageOutcome(kind="duplicate", mark_seen=True, application_id=application.id)

        kind = "created" if created else "duplicate"
        try:
            if attachment is not None:
                resume = extract_resume(
                    attachment.data,
                    content_type=attachment.content_type,
                    filename=attachment.filename,
                )
            else:
                resume = extract_links(message.body_text)
        except ResumeExtractionError:
            logger.warning("Unreadable resume for application %s (uid=%s)", application.id, message.uid)
            self.scorer.mark_unreadable(application)
            return MessageOutcome(kind="unreadable", mark_seen=True, application_id=application.id)

        scored = self.scorer.score(application, job, resume)
        return MessageOutcome(kind=kind, mark_seen=True, application_id=application.id, scored=scored)


def score_pending_applications(
    session: Session,
    *,
    settings: Settings | None = None,
    router: LLMRouter | None = None,
    transport: MailTransport | None = None,
    store: BlobStore | None = None,
) -> SweepResult:
    settings = settings or get_settings()
    store = store or BlobStore(settings)
    repo = Repository(session)
    scorer = ApplicationScorer(
        session,
        router or LLMRouter(settings),
        DecisionNotifier(session, transport=transport, settings=settings),
    )

    result = SweepResult()
    for application, job in repo.list_unscored_applications(settings.pending_scoring_batch_size):
        result.examined += 1
        try:
            resume = _stored_resume(application, store)
            if resume is None:
                logger.warning("Application %s has no resume content to score", application.id)
                if scorer.mark_unreadable(application, reasoning=MISSING_RESUME_REASONING):
                    result.changed += 1
                continue
            if scorer.score(application, job, resume):
                result.changed += 1
        except ResumeExtractionError:
            if scorer.mark_unreadable(application):
                result.changed += 1
        except Exception:
            session.rollback()
            result.failed += 1
            logger.exception("Pending scoring failed for application %s", application.id)
    logger.info("Pending scoring examined=%d scored=%d failed=%d", result.examined, result.changed, result.failed)
    return result


_LINK_KEYS = frozenset({"linkedin", "github", "emails", "other_links"})


def parsed_resume_text(parsed: dict[str, Any]) -> str:
    """Flatten a stored resume document into scoring text, raw ``text`` first."""
    parts: list[str] = []

    def collect(value: Any) -> None:
        if isinstance(value, str):
            if value.strip():
                parts.append(value.strip())
        elif isinstance(value, dict):
            for item in value.values():
                collect(item)
        elif isinstance(value, (list, tuple)):
            for item in value:
                collect(item)

    collect(parsed.get("text"))
    for key, value in parsed.items():
        if key == "text" or key in _LINK_KEYS:
            continue
        # {"python": 5} style skill maps carry the skill in the key
        if key == "skills" and isinstance(value, dict):
            value = list(value)
        collect(value)
    return "\n".join(parts)


def _stored_resume(application: Application, store: BlobStore) -> ExtractedResume | None:
    parsed = application.parsed_resume_json if isinstance(application.parsed_resume_json, dict) else {}
    text = parsed_resume_text(parsed)
    if text:
        return ExtractedResume(
            text=text,
            linkedin_url=parsed.get("linkedin"),
            github_url=parsed.get("github"),
            embedded_emails=list(parsed.get("emails") or []),
            other_links=list(parsed.get("other_links") or []),
        )
    if application.resume_url:
        try:
            data = store.read(application.resume_url)
        except (OSError, ValueError):
            logger.warning(
                "Resume %s for application %s is not in local storage", application.resume_url, application.id
            )
        else:
            return extract_resume(data, filename=application.resume_url)
    return None
