"""Standard success envelope shared by API routes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import Request
from pydantic import BaseModel, Field


class ResponseMeta(BaseModel):
    timestamp: str
    traceId: str | None = None


class SuccessResponse(BaseModel):
    """Envelope ``{"data": ..., "success": true, "meta": {...}}``."""

    data: Any
    success: bool = True
    meta: ResponseMeta = Field(
        default_factory=lambda: ResponseMeta(timestamp=datetime.now(timezone.utc).isoformat())
    )


def success_response(data: Any, request: Request | None = None) -> SuccessResponse:
    """Wrap ``data`` in the success envelope, tagging the request's trace id."""

    trace_id = getattr(request.state, "trace_id", None) if request is not None else None
    return SuccessResponse(
        data=data,
        meta=ResponseMeta(
            timestamp=datetime.now(timezone.utc).isoformat(),
            traceId=trace_id,
        ),
    )
