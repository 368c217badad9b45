from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any

from pydantic import ValidationError
from sqlalchemy.orm import Session

from hirebit.config import Settings, get_settings
from hirebit.db.base import utcnow
from hirebit.db.schema import SchemaFeatures
from hirebit.db.repositories import Repository
from hirebit.llm.router import decision_for_score
from hirebit.types import InboundApplication, InboundResult

logger = logging.getLogger(__name__)


class InboundApplicationError(ValueError):
    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def dedup_key(payload: InboundApplication, *, company_id: str | None, job_id: str) -> str:
    if payload.external_id:
        return payload.external_id
    if payload.message_id:
        return payload.message_id
    material = "|".join(
        [company_id or "", job_id, payload.email, payload.subject or "", payload.received_at or ""]
    )
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "body"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


class InboundApplicationService:
    """Push-based intake for applications already scored by an upstream system."""

    def __init__(self, session: Session, features: SchemaFeatures, settings: Settings | None = None):
        self.session = session
        self.repo = Repository(session)
        self.features = features
        self.settings = settings or get_settings()

    def receive(self, job_id: str, secret: str | None, body: Any) -> InboundResult:
        if not self.features.webhook_supported:
            raise InboundApplicationError(503, "inbound applications are not supported by this database schema")
        if not job_id:
            raise InboundApplicationError(400, "job id is required")
        if not secret:
            raise InboundApplicationError(401, "missing webhook secret")

        job = self.repo.get_job(job_id)
        if job is None:
            raise InboundApplicationError(404, "job not found")
        if not job.webhook_secret or not hmac.compare_digest(
            secret.encode("utf-8"), job.webhook_secret.encode("utf-8")
        ):
            raise InboundApplicationError(401, "invalid webhook secret")

        if not isinstance(body, dict):
            raise InboundApplicationError(400, "request body must be a JSON object")
        if not body.get("email"):
            raise InboundApplicationError(400, "email is required")
        try:
            payload = InboundApplication.model_validate(body)
        except ValidationError as exc:
            raise InboundApplicationError(400, _validation_message(exc)) from exc

        status = payload.status
        if status is None and payload.score is not None:
            status = decision_for_score(
                payload.score,
                shortlist_threshold=self.settings.shortlist_threshold,
                flag_threshold=self.settings.flag_threshold,
            )

        values: dict[str, Any] = {
            "job_posting_id": job.id,
            "company_id": job.company_id,
            "email": payload.email,
            "candidate_name": (payload.candidate_name or "").strip() or payload.email.split("@")[0],
            "resume_url": payload.resume_url,
            "parsed_resume_json": payload.parsed_resume,
            "ai_score": payload.score,
            "ai_status": status,
            "reasoning": payload.reasoning or ("Scored by upstream system" if status else None),
            "external_id": dedup_key(payload, company_id=job.company_id, job_id=job.id),
        }
        if status is not None:
            values["scored_at"] = utcnow()
        if self.features.application_phone:
            values["phone"] = payload.phone or ""

        application, created = self.repo.insert_application_if_absent(values)
        if created:
            logger.info("Inbound application %s created for job %s", application.id, job.id)
        else:
            logger.info("Inbound application replay for job %s matched %s", job.id, application.id)
        return InboundResult(application_id=application.id, created=created)
