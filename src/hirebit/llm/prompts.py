from __future__ import annotations

SCORING_SYSTEM_PROMPT = (
    "You are an expert HR recruiter. Score candidates against a job and always return valid JSON only."
)

CANDIDATE_SCORING_PROMPT = """
Analyze this candidate for the job position.
Return strict JSON with keys:
- score: number (0..100)
- status: one of [SHORTLIST, FLAG, REJECT]
- reasoning: string explaining the score and status

Scoring guidelines:
- {shortlist_threshold}-100: SHORTLIST (strong match, meets most requirements)
- {flag_threshold}-{flag_upper}: FLAG (partial match, needs review)
- 0-{reject_upper}: REJECT (poor match, does not meet requirements)
Consider skill match, experience relevance, education and overall fit.

Job title: {job_title}
Job description:
{job_description}

Responsibilities:
{responsibilities}

Required skills: {required_skills}

Candidate name: {candidate_name}
Skills found in resume: {candidate_skills}
Candidate resume text:
{candidate_text}
""".strip()

REPORT_SYSTEM_PROMPT = "You are an expert HR analyst. Always return valid JSON only, no markdown or code blocks."

REPORT_ANALYSIS_PROMPT = """
Generate a hiring report analysis for a closed job posting.
Return strict JSON with keys:
- executive_summary: string (2-3 sentences on the process and outcome)
- top_candidates: array (at most 3) of objects with keys:
  - name: string
  - email: string
  - score: number
  - key_strengths: string[]
  - reasoning: string
- role_fit_analysis: string
- gaps_in_pool: string (skills or qualities missing from the applicant pool)
- recommendations: string[]

Job title: {job_title}
Description: {job_description}
Responsibilities: {responsibilities}
Required skills: {required_skills}

Applicant pool:
Total: {total}
Shortlisted: {shortlisted}
Flagged for review: {flagged}
Rejected: {rejected}
Unscored: {unscored}

Shortlisted candidates:
{shortlisted_block}

Candidates needing review:
{flagged_block}

Rejected candidates (first 10):
{rejected_block}
""".strip()
