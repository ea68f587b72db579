from __future__ import annotations

import time
from datetime import datetime, timezone

from fastapi import APIRouter, Request

from nerix_gateway.core.config import settings
from nerix_gateway.core.rate_limit import get_rate_limit_evaluator
from nerix_gateway.schemas.responses import SuccessResponse, success_response

router = APIRouter(tags=["System"])


@router.get("/system-status")
async def system_status(request: Request) -> SuccessResponse:
    """Report overall status plus per-service health.

    The rate-limit counter store is probed with ``ping``; a failing store
    degrades the overall status rather than failing the request.
    """

    start = time.perf_counter()
    store_ok = await get_rate_limit_evaluator().store.ping()
    store_ms = round((time.perf_counter() - start) * 1000, 2)

    services = [
        {
            "name": "API Services",
            "description": "REST API endpoints",
            "status": "operational",
        },
        {
            "name": "Rate Limit Store",
            "description": f"Counter store ({settings.rate_limit.backend})",
            "status": "operational" if store_ok else "outage",
            "responseTime": store_ms,
        },
    ]
    overall = "operational" if store_ok else "degraded"

    return success_response(
        {
            "status": overall,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
            "services": services,
        },
        request,
    )
