from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from nerix_gateway.adapters.support.in_memory import InMemorySupportRequestRepository
from nerix_gateway.core.rate_limit import client_ip
from nerix_gateway.schemas.responses import SuccessResponse, success_response
from nerix_gateway.schemas.support import SupportRequestIn
from nerix_gateway.services.support_service import CONFIRMATION_MESSAGE, SupportService

router = APIRouter(tags=["Support"])

_support_service = SupportService(InMemorySupportRequestRepository())


def get_support_service() -> SupportService:
    return _support_service


@router.post("/support", response_model=None)
async def submit_support_request(
    form: SupportRequestIn,
    request: Request,
    service: SupportService = Depends(get_support_service),
) -> SuccessResponse | JSONResponse:
    """Accept a contact form submission.

    Spam is acknowledged with a bare ``{"success": true}`` and not stored.

    Returns:
        SuccessResponse with the confirmation message and stored request id.
    """
    outcome = await service.submit(
        form,
        ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    if outcome.record is None:
        return JSONResponse({"success": True})

    return success_response(
        {"message": CONFIRMATION_MESSAGE, "id": outcome.record.id},
        request,
    )


@router.get("/support")
async def support_status(request: Request) -> SuccessResponse:
    """Health probe for the support endpoint."""

    return success_response(
        {"status": "operational", "timestamp": datetime.now(timezone.utc).isoformat()},
        request,
    )
