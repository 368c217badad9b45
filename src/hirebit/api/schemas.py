from __future__ import annotations

from pydantic import BaseModel


class InboundApplicationResponse(BaseModel):
    success: bool = True
    created: bool
    application_id: str


class ErrorResponse(BaseModel):
    detail: str
