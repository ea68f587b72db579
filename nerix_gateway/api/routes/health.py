from __future__ import annotations

from fastapi import APIRouter

from nerix_gateway.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict[str, str]:
    """Liveness probe served outside the gated API prefix.

    It touches no backend, so it answers even while the counter store is
    down; ``/api/system-status`` reports store health.
    """

    return {"status": "ok", "environment": settings.app_env}
