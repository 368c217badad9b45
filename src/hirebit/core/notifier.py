from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from hirebit.config import Settings, get_settings
from hirebit.db.repositories import Repository
from hirebit.mail.templates import render_decision_email
from hirebit.mail.transport import MailTransport, SMTPTransport
from hirebit.types import Decision, DecisionNotice, OutboundEmail

logger = logging.getLogger(__name__)

FALLBACK_COMPANY_NAME = "our hiring team"
FALLBACK_JOB_TITLE = "the position"


@dataclass(slots=True)
class NoticeContext:
    company_name: str
    hr_email: str
    job_title: str
    meeting_link: str | None = None


class DecisionNotifier:
    def __init__(
        self,
        session: Session,
        transport: MailTransport | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.transport = transport or SMTPTransport(self.settings)

    def notify(self, notice: DecisionNotice) -> bool:
        """Send exactly one decision email. Failures are logged, never raised."""
        context = self.resolve_context(notice.job_posting_id)
        interview_link = notice.interview_link or context.meeting_link
        if notice.status != Decision.SHORTLIST:
            interview_link = None

        try:
            subject, html, text = render_decision_email(
                notice.status,
                {
                    "candidate_name": notice.candidate_name.strip() or "there",
                    "company_name": context.company_name,
                    "job_title": context.job_title,
                    "hr_email": context.hr_email,
                    "interview_link": interview_link,
                },
            )
            message = OutboundEmail(
                to=notice.to,
                subject=subject,
                text=text,
                html=html,
                reply_to=context.hr_email,
            )
            return self.transport.send(message)
        except Exception:
            logger.exception(
                "Failed to send %s email to=%s job=%s", notice.status, notice.to, notice.job_posting_id
            )
            return False

    def resolve_context(self, job_posting_id: str | None) -> NoticeContext:
        context = NoticeContext(
            company_name=FALLBACK_COMPANY_NAME,
            hr_email=self.settings.default_hr_email,
            job_title=FALLBACK_JOB_TITLE,
        )
        if not job_posting_id:
            return context

        try:
            repo = Repository(self.session)
            job = repo.get_job(job_posting_id)
            if job is None:
                logger.warning("Job %s not found for decision email; using placeholders", job_posting_id)
                return context
            context.job_title = job.title or FALLBACK_JOB_TITLE
            context.meeting_link = job.meeting_link or None
            company = repo.get_company(job.company_id)
            if company is not None:
                context.company_name = company.name or FALLBACK_COMPANY_NAME
                context.hr_email = company.hr_email or company.email or self.settings.default_hr_email
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.warning("Company lookup failed for job %s: %s", job_posting_id, exc)
        return context
