from __future__ import annotations

from nerix_gateway.api.routes.health import router as health_router
from nerix_gateway.api.routes.pages import router as pages_router
from nerix_gateway.api.routes.support import router as support_router
from nerix_gateway.api.routes.system import router as system_router

__all__ = ["health_router", "pages_router", "support_router", "system_router"]
