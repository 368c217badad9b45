from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from hirebit.config import Settings, get_settings
from hirebit.core.cv_parser import skills_found
from hirebit.llm.prompts import (
    CANDIDATE_SCORING_PROMPT,
    REPORT_ANALYSIS_PROMPT,
    REPORT_SYSTEM_PROMPT,
    SCORING_SYSTEM_PROMPT,
)
from hirebit.llm.providers import ProviderPool
from hirebit.types import (
    ApplicantSummary,
    CandidateProfile,
    Decision,
    JobContext,
    ReportAnalysis,
    ReportStatistics,
    ScoringResult,
    ScoringSource,
    TopCandidate,
)

logger = logging.getLogger(__name__)

HEURISTIC_PREFIX = "[Heuristic fallback]"

_EXPERIENCE_KEYWORDS = ("experience", "worked", "years", "developed", "implemented", "managed")
_EDUCATION_KEYWORDS = ("degree", "bachelor", "master", "phd", "university", "college")


class LLMRouter:
    def __init__(self, settings: Settings | None = None, pool: ProviderPool | None = None):
        self.settings = settings or get_settings()
        self.pool = pool or ProviderPool(self.settings)

    def score_candidate(self, *, candidate: CandidateProfile, job: JobContext) -> ScoringResult:
        limit = self.settings.scoring_cv_char_limit
        prompt = CANDIDATE_SCORING_PROMPT.format(
            shortlist_threshold=self.settings.shortlist_threshold,
            flag_threshold=self.settings.flag_threshold,
            flag_upper=max(self.settings.shortlist_threshold - 1, 0),
            reject_upper=max(self.settings.flag_threshold - 1, 0),
            job_title=job.title or "Unknown",
            job_description=job.description or "Not provided",
            responsibilities=job.responsibilities or "Not provided",
            required_skills=", ".join(job.required_skills) or "Not specified",
            candidate_name=candidate.name or "Unknown",
            candidate_skills=", ".join(candidate.skills) or "None detected",
            candidate_text=candidate.text[:limit] if candidate.text else "(no resume text)",
        )

        data = self._call_json(prompt=prompt, system=SCORING_SYSTEM_PROMPT, model=self.settings.openai_model_scoring)
        if data:
            result = validate_scoring_payload(data)
            if result is not None:
                return result
            logger.warning("Invalid scoring payload for job=%s; falling back to heuristic", job.job_id)

        return heuristic_score(
            candidate=candidate,
            job=job,
            shortlist_threshold=self.settings.shortlist_threshold,
            flag_threshold=self.settings.flag_threshold,
        )

    def analyze_report(
        self,
        *,
        job: JobContext,
        applicants: list[ApplicantSummary],
        statistics: ReportStatistics,
    ) -> ReportAnalysis:
        prompt = REPORT_ANALYSIS_PROMPT.format(
            job_title=job.title,
            job_description=job.description or "Not provided",
            responsibilities=job.responsibilities or "Not provided",
            required_skills=", ".join(job.required_skills) or "Not specified",
            total=statistics.total,
            shortlisted=statistics.shortlisted,
            flagged=statistics.flagged,
            rejected=statistics.rejected,
            unscored=statistics.unscored,
            shortlisted_block=_applicant_block(applicants, Decision.SHORTLIST, detailed=True),
            flagged_block=_applicant_block(applicants, Decision.FLAG, detailed=True),
            rejected_block=_applicant_block(applicants, Decision.REJECT, detailed=False, limit=10),
        )

        data = self._call_json(prompt=prompt, system=REPORT_SYSTEM_PROMPT, model=self.settings.openai_model_report)
        if data:
            try:
                analysis = ReportAnalysis.model_validate(data)
                if analysis.executive_summary.strip():
                    return analysis
            except ValidationError:
                pass
            logger.warning("Invalid report analysis payload for job=%s; falling back to heuristic", job.job_id)

        return heuristic_report_analysis(job=job, applicants=applicants, statistics=statistics)

    def _model_for(self, provider_name: str, model: str) -> str:
        if provider_name == "local":
            return self.settings.local_llm_model
        return model

    def _call_json(self, *, prompt: str, system: str, model: str) -> dict[str, Any]:
        providers = self.pool.ordered()
        if not providers:
            logger.info("No model provider configured; using deterministic fallback")
            return {}

        for provider in providers:
            try:
                data = provider.complete_json(
                    model=self._model_for(provider.config.name, model),
                    prompt=prompt,
                    system=system,
                )
            except Exception as exc:
                logger.warning("LLM JSON call failed provider=%s error=%s", provider.config.name, exc)
                continue
            if data:
                return data
        return {}


def decision_for_score(score: float, *, shortlist_threshold: int = 80, flag_threshold: int = 50) -> Decision:
    if score >= shortlist_threshold:
        return Decision.SHORTLIST
    if score >= flag_threshold:
        return Decision.FLAG
    return Decision.REJECT


def validate_scoring_payload(data: dict[str, Any]) -> ScoringResult | None:
    raw_score = data.get("score")
    if isinstance(raw_score, bool):
        return None
    try:
        score = float(raw_score)
    except (TypeError, ValueError):
        return None
    if score != score:
        return None

    raw_status = data.get("status")
    if not isinstance(raw_status, str):
        return None
    try:
        status = Decision(raw_status.strip().upper())
    except ValueError:
        return None

    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        return None

    return ScoringResult(
        score=round(max(0.0, min(100.0, score)), 2),
        status=status,
        reasoning=reasoning.strip(),
        source=ScoringSource.MODEL,
    )


def heuristic_score(
    *,
    candidate: CandidateProfile,
    job: JobContext,
    shortlist_threshold: int = 80,
    flag_threshold: int = 50,
) -> ScoringResult:
    text = candidate.text.lower()
    required = [skill for skill in job.required_skills if skill.strip()]
    required_lower = {skill.lower() for skill in required}
    matched = {skill.lower() for skill in skills_found(candidate.text, required)}
    matched.update(skill.lower() for skill in candidate.skills if skill.lower() in required_lower)
    ratio = len(matched) / len(required_lower) if required_lower else 0.0

    score = round(ratio * 70)
    if any(keyword in text for keyword in _EXPERIENCE_KEYWORDS):
        score += 15
    if any(keyword in text for keyword in _EDUCATION_KEYWORDS):
        score += 10
    score = min(100, score)

    status = decision_for_score(score, shortlist_threshold=shortlist_threshold, flag_threshold=flag_threshold)
    summary = {
        Decision.SHORTLIST: "Strong match; experience and qualifications present.",
        Decision.FLAG: "Partial match; needs additional review.",
        Decision.REJECT: "Weak match; does not meet minimum requirements.",
    }[status]
    reasoning = f"{HEURISTIC_PREFIX} Matched {len(matched)}/{len(required_lower)} required skills. {summary}"
    return ScoringResult(score=float(score), status=status, reasoning=reasoning, source=ScoringSource.HEURISTIC)


def _applicant_block(
    applicants: list[ApplicantSummary],
    status: Decision,
    *,
    detailed: bool,
    limit: int | None = None,
) -> str:
    rows = [applicant for applicant in applicants if applicant.ai_status == status]
    if limit is not None:
        rows = rows[:limit]
    if not rows:
        return "(none)"

    lines: list[str] = []
    for index, applicant in enumerate(rows, start=1):
        name = applicant.candidate_name or "Unknown"
        if not detailed:
            lines.append(f"{index}. {name} - {applicant.reasoning or 'No reasoning'}")
            continue
        score = "N/A" if applicant.ai_score is None else f"{applicant.ai_score:g}"
        lines.append(f"{index}. {name} ({applicant.email})")
        lines.append(f"   Score: {score}")
        lines.append(f"   Reasoning: {applicant.reasoning or 'No reasoning provided'}")
        if applicant.skills:
            lines.append(f"   Skills: {', '.join(applicant.skills)}")
        if applicant.links:
            lines.append(f"   Links: {', '.join(applicant.links)}")
    return "\n".join(lines)


def heuristic_report_analysis(
    *,
    job: JobContext,
    applicants: list[ApplicantSummary],
    statistics: ReportStatistics,
) -> ReportAnalysis:
    shortlisted = [applicant for applicant in applicants if applicant.ai_status == Decision.SHORTLIST]
    ranked = sorted(shortlisted, key=lambda applicant: applicant.ai_score or 0.0, reverse=True)[:3]
    title = job.title or "the position"

    return ReportAnalysis(
        executive_summary=(
            f"Received {statistics.total} applications for {title}. "
            f"{statistics.shortlisted} candidates were shortlisted based on AI scoring."
        ),
        top_candidates=[
            TopCandidate(
                name=applicant.candidate_name or "Unknown",
                email=applicant.email,
                score=applicant.ai_score or 0.0,
                key_strengths=applicant.skills[:3],
                reasoning=applicant.reasoning or "No reasoning provided",
            )
            for applicant in ranked
        ],
        role_fit_analysis=(
            f"Average score: {statistics.average_score:.1f}/100. "
            f"{statistics.shortlisted} candidates meet the minimum requirements."
        ),
        gaps_in_pool="AI analysis not available. Manual review recommended.",
        recommendations=[
            "Review shortlisted candidates for final interview selection",
            "Consider flagged candidates for alternative roles",
            "Schedule interviews with top candidates",
        ],
        source=ScoringSource.HEURISTIC,
    )
