from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Any

from xhtml2pdf import pisa

from hirebit.mail.templates import render
from hirebit.types import ApplicantSummary, Decision, JobContext, ReportAnalysis, ReportStatistics

logger = logging.getLogger(__name__)


class PDFRenderError(RuntimeError):
    pass


def _format_timestamp(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M UTC") if value else ""


def report_sections(applicants: list[ApplicantSummary]) -> list[dict[str, Any]]:
    def ranked(status: Decision) -> list[ApplicantSummary]:
        rows = [applicant for applicant in applicants if applicant.ai_status == status]
        return sorted(rows, key=lambda applicant: applicant.ai_score or 0.0, reverse=True)

    return [
        {"title": "Shortlisted", "rows": ranked(Decision.SHORTLIST)},
        {"title": "Needs Review", "rows": ranked(Decision.FLAG)},
        {"title": "Rejected", "rows": ranked(Decision.REJECT)},
    ]


def render_report_html(
    *,
    job: JobContext,
    company_name: str,
    deadline: datetime | None,
    generated_at: datetime,
    statistics: ReportStatistics,
    analysis: ReportAnalysis,
    applicants: list[ApplicantSummary],
) -> str:
    return render(
        "report.html",
        {
            "job": job,
            "company_name": company_name,
            "deadline": _format_timestamp(deadline),
            "generated_at": _format_timestamp(generated_at),
            "statistics": statistics,
            "analysis": analysis,
            "sections": report_sections(applicants),
        },
    )


def html_to_pdf(html: str) -> bytes:
    buffer = io.BytesIO()
    status = pisa.CreatePDF(io.StringIO(html), dest=buffer)
    if status.err:
        raise PDFRenderError(f"PDF rendering failed with {status.err} error(s)")
    data = buffer.getvalue()
    if not data:
        raise PDFRenderError("PDF rendering produced an empty document")
    logger.debug("Rendered report PDF (%d bytes)", len(data))
    return data
