from __future__ import annotations

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from hirebit.config import Settings, get_settings
from hirebit.core.pdf import html_to_pdf, render_report_html
from hirebit.db.base import as_utc, utcnow
from hirebit.db.models import Application, Company, JobPosting, Report
from hirebit.db.repositories import Repository
from hirebit.llm.router import LLMRouter
from hirebit.mail.templates import render_email
from hirebit.mail.transport import MailTransport, SMTPTransport
from hirebit.storage import BlobStore, safe_filename
from hirebit.types import (
    ApplicantSummary,
    Decision,
    EmailAttachment,
    OutboundEmail,
    ReportAnalysis,
    ReportResult,
    ReportStatistics,
    SweepResult,
)

logger = logging.getLogger(__name__)


class ReportGenerationError(RuntimeError):
    pass


def compute_statistics(applications: list[Application]) -> ReportStatistics:
    stats = ReportStatistics(total=len(applications))
    scores: list[float] = []
    for application in applications:
        if application.ai_status == Decision.SHORTLIST:
            stats.shortlisted += 1
        elif application.ai_status == Decision.FLAG:
            stats.flagged += 1
        elif application.ai_status == Decision.REJECT:
            stats.rejected += 1
        else:
            stats.unscored += 1
        if application.ai_score is not None:
            scores.append(float(application.ai_score))
    stats.average_score = round(sum(scores) / len(scores), 2) if scores else 0.0
    return stats


def applicant_summaries(applications: list[Application]) -> list[ApplicantSummary]:
    summaries: list[ApplicantSummary] = []
    for application in applications:
        parsed = application.parsed_resume_json if isinstance(application.parsed_resume_json, dict) else {}
        skills = parsed.get("skills") or []
        if isinstance(skills, dict):
            skills = list(skills)
        links = [parsed.get("linkedin"), parsed.get("github"), *(parsed.get("other_links") or [])]
        summaries.append(
            ApplicantSummary(
                id=application.id,
                candidate_name=application.candidate_name or None,
                email=application.email,
                ai_score=application.ai_score,
                ai_status=application.ai_status,
                reasoning=application.reasoning,
                skills=[str(skill) for skill in skills],
                links=[str(link) for link in links if link],
            )
        )
    return summaries


def _result(report: Report, job: JobPosting, *, created: bool) -> ReportResult:
    return ReportResult(
        report_id=report.id,
        report_url=report.report_url,
        job_id=job.id,
        company_id=report.company_id or job.company_id,
        created=created,
    )


class ReportGenerator:
    def __init__(
        self,
        session: Session,
        *,
        settings: Settings | None = None,
        router: LLMRouter | None = None,
        transport: MailTransport | None = None,
        store: BlobStore | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.repo = Repository(session)
        self.router = router or LLMRouter(self.settings)
        self.transport = transport or SMTPTransport(self.settings)
        self.store = store or BlobStore(self.settings)

    def generate(self, job_id: str) -> ReportResult:
        job = self.repo.get_job(job_id)
        if job is None:
            raise ReportGenerationError(f"job {job_id} not found")

        existing = self.repo.get_report_for_job(job_id)
        if existing is not None:
            logger.info("Report %s already exists for job %s", existing.id, job_id)
            return _result(existing, job, created=False)

        company = self.repo.get_company(job.company_id)
        applications = self.repo.list_applications(job_id)
        statistics = compute_statistics(applications)
        summaries = applicant_summaries(applications)
        analysis = self.router.analyze_report(job=job.to_context(), applicants=summaries, statistics=statistics)

        try:
            html = render_report_html(
                job=job.to_context(),
                company_name=company.name if company else "Unknown company",
                deadline=as_utc(job.application_deadline),
                generated_at=utcnow(),
                statistics=statistics,
                analysis=analysis,
                applicants=summaries,
            )
            pdf = html_to_pdf(html)
        except Exception as exc:
            raise ReportGenerationError(f"could not render report for job {job_id}: {exc}") from exc

        report_url = self.store.put(self.store.report_key(job_id), pdf)
        try:
            return self._persist(job, company, report_url, pdf, statistics, analysis)
        except Exception as exc:
            self.session.rollback()
            self.store.delete(report_url)
            if isinstance(exc, ReportGenerationError):
                raise
            raise ReportGenerationError(f"could not persist report for job {job_id}: {exc}") from exc

    def _persist(
        self,
        job: JobPosting,
        company: Company | None,
        report_url: str,
        pdf: bytes,
        statistics: ReportStatistics,
        analysis: ReportAnalysis,
    ) -> ReportResult:
        report, created = self.repo.insert_report_if_absent(
            job_id=job.id,
            company_id=job.company_id,
            report_url=report_url,
        )
        if not created:
            self.session.rollback()
            self.store.delete(report_url)
            logger.info("Report for job %s was generated concurrently; returning %s", job.id, report.id)
            return _result(report, job, created=False)

        audit = self.repo.add_audit(
            "report_generated",
            company_id=job.company_id,
            job_posting_id=job.id,
            metadata={
                "reportId": report.id,
                "totalApplicants": statistics.total,
                "reportUrl": report_url,
            },
        )
        self.session.commit()
        result = _result(report, job, created=True)
        audit_id = audit.id

        # The send runs with no open transaction; a failed send removes the row so a later sweep retries.
        try:
            self._email_hr(job, company, report_url, pdf, statistics, analysis)
        except Exception as exc:
            self.repo.discard_report(result.report_id, audit_id=audit_id)
            raise ReportGenerationError(f"could not email report for job {job.id}: {exc}") from exc

        logger.info("Report %s generated for job %s (%d applicants)", result.report_id, job.id, statistics.total)
        return result

    def _email_hr(
        self,
        job: JobPosting,
        company: Company | None,
        report_url: str,
        pdf: bytes,
        statistics: ReportStatistics,
        analysis: ReportAnalysis,
    ) -> None:
        company_name = company.name if company else "your company"
        recipient = (company.hr_email or company.email) if company else ""
        recipient = recipient or self.settings.default_hr_email

        html, text = render_email(
            "report",
            {
                "job_title": job.title,
                "company_name": company_name,
                "statistics": statistics,
                "summary": analysis.executive_summary,
                "report_url": report_url if self.settings.storage_public_url else None,
            },
        )
        message = OutboundEmail(
            to=recipient,
            subject=f"Final Hiring Report - {job.title} - {company_name}",
            text=text,
            html=html,
            attachments=[
                EmailAttachment(
                    filename=f"{safe_filename(job.title, default='job')}_report.pdf",
                    content=pdf,
                    content_type="application/pdf",
                )
            ],
        )
        self.transport.send(message)


GeneratorFactory = Callable[[Session], ReportGenerator]


def sweep_reports(
    session_factory: Callable[[], Session],
    *,
    settings: Settings | None = None,
    generator_factory: GeneratorFactory | None = None,
    now: datetime | None = None,
) -> SweepResult:
    settings = settings or get_settings()
    factory = generator_factory or (lambda session: ReportGenerator(session, settings=settings))
    now = now or utcnow()

    with session_factory() as session:
        due = Repository(session).jobs_due_for_report(
            now,
            settings.report_batch_size,
            retry_after=timedelta(seconds=settings.report_retry_backoff_sec),
        )
        job_ids = [job.id for job in due]

    result = SweepResult(examined=len(job_ids))
    if not job_ids:
        return result

    def run(job_id: str) -> ReportResult:
        with session_factory() as session:
            Repository(session).mark_report_attempt(job_id)
            return factory(session).generate(job_id)

    with ThreadPoolExecutor(max_workers=settings.report_workers, thread_name_prefix="report") as pool:
        futures = {pool.submit(run, job_id): job_id for job_id in job_ids}
        for future in as_completed(futures):
            job_id = futures[future]
            try:
                report = future.result()
            except Exception:
                result.failed += 1
                logger.exception("Report generation failed for job %s", job_id)
                continue
            if report.created:
                result.changed += 1

    logger.info(
        "Report sweep examined=%d generated=%d failed=%d", result.examined, result.changed, result.failed
    )
    return result
