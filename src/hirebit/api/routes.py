from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Header, HTTPException, Query, status
from sqlalchemy.orm import Session

from hirebit.api.deps import get_db, get_schema_features
from hirebit.api.schemas import ErrorResponse, InboundApplicationResponse
from hirebit.core.inbound import InboundApplicationError, InboundApplicationService
from hirebit.db.schema import SchemaFeatures

router = APIRouter(prefix="/inbound", tags=["inbound"])


@router.post(
    "/applications/{job_id}",
    response_model=InboundApplicationResponse,
    status_code=status.HTTP_201_CREATED,
    responses={code: {"model": ErrorResponse} for code in (400, 401, 404, 503)},
)
def receive_application(
    job_id: str,
    body: Any = Body(None),
    x_webhook_secret: str | None = Header(None),
    secret: str | None = Query(None),
    db: Session = Depends(get_db),
    features: SchemaFeatures = Depends(get_schema_features),
) -> InboundApplicationResponse:
    service = InboundApplicationService(db, features)
    try:
        result = service.receive(job_id, x_webhook_secret or secret, body)
    except InboundApplicationError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    return InboundApplicationResponse(created=result.created, application_id=result.application_id)
