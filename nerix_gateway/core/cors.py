"""CORS header stamping for API responses."""

from __future__ import annotations

from fastapi import Request, Response

from nerix_gateway.core.config import parse_csv, settings

ALLOW_METHODS = "GET, POST, PUT, DELETE, OPTIONS"
ALLOW_HEADERS = "Content-Type, Authorization, X-API-Key, X-Requested-With"
MAX_AGE_SECONDS = "86400"


def resolve_allowed_origin(origin: str, allowed_origins: list[str]) -> str:
    """Pick the Access-Control-Allow-Origin value for a request origin.

    The request origin is echoed when it is allow-listed; otherwise the first
    configured origin is used. With no allow-list the origin is echoed as is.
    """
    if origin in allowed_origins:
        return origin
    if allowed_origins:
        return allowed_origins[0]
    return origin


def apply_cors_headers(response: Response, request: Request) -> Response:
    """Set the CORS headers for ``request`` on ``response`` and return it."""

    origin = request.headers.get("origin", "")
    allowed = parse_csv(settings.cors.allowed_origins)

    response.headers["Access-Control-Allow-Origin"] = resolve_allowed_origin(origin, allowed)
    response.headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
    response.headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS
    response.headers["Access-Control-Allow-Credentials"] = "true"
    response.headers["Access-Control-Max-Age"] = MAX_AGE_SECONDS
    response.headers["Vary"] = "Origin"
    return response
