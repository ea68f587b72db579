"""HTTP middleware gating every inbound request.

The gate runs these stages in order, each able to short-circuit:

1. Scope check: static assets, favicon, the service worker and the API
   docs pages pass through.
2. CORS preflight: OPTIONS under the API prefix returns 200 immediately.
3. Rate limiting: API requests consume budget; denials return 429.
4. Trace and CORS stamping: API responses get X-Trace-Id and CORS headers.
5. CSP stamping: page responses get a nonce-bearing Content-Security-Policy.

Usage:
    app.middleware("http")(gate_middleware)
"""

from __future__ import annotations

import logging
import uuid

from fastapi import Request, Response, status
from fastapi.responses import JSONResponse

from nerix_gateway.core.config import parse_csv, settings
from nerix_gateway.core.cors import apply_cors_headers
from nerix_gateway.core.csp import build_csp_header, generate_nonce
from nerix_gateway.core.errors import ErrorCode, RateLimitUnavailableError
from nerix_gateway.core.exception_handlers import build_error_response
from nerix_gateway.core.logging import bind_request_context, bind_tier, clear_request_context
from nerix_gateway.core.rate_limit import (
    RateLimitResult,
    client_identity,
    get_rate_limit_evaluator,
    hash_identity,
)

logger = logging.getLogger(__name__)


def is_api_path(path: str) -> bool:
    return path.startswith(settings.app.api_prefix)


def is_excluded_path(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in parse_csv(settings.app.excluded_path_prefixes))


def is_docs_path(request: Request) -> bool:
    """True for the app's own OpenAPI schema, Swagger UI and ReDoc pages."""

    app = request.app
    docs_urls = (app.docs_url, app.redoc_url, app.openapi_url, app.swagger_ui_oauth2_redirect_url)
    return request.url.path in {url for url in docs_urls if url}


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Build X-RateLimit-* headers (plus Retry-After when blocked)."""

    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset_at),
    }
    if not result.allowed:
        headers["Retry-After"] = str(result.retry_after_seconds or 60)
    return headers


def rate_limited_response(result: RateLimitResult) -> JSONResponse:
    """Render the 429 response for a denied evaluation."""

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Rate limit exceeded",
            "code": ErrorCode.RATE_LIMIT_EXCEEDED.value,
            "details": {
                "limit": result.limit,
                "remaining": result.remaining,
                "resetTime": result.reset_at,
                "retryAfter": result.retry_after_seconds,
            },
        },
        headers=rate_limit_headers(result),
    )


async def _enforce_rate_limit(request: Request) -> tuple[RateLimitResult | None, Response | None]:
    """Evaluate the request; return (result, early_response)."""

    if not settings.rate_limit.enabled:
        return None, None

    evaluator = get_rate_limit_evaluator()
    path = request.url.path
    if evaluator.is_exempt(path):
        return None, None

    tier = evaluator.match(path, request.method)
    bind_tier(tier.name)
    identity = client_identity(request)
    try:
        result = await evaluator.evaluate(tier, identity)
    except RateLimitUnavailableError as exc:
        return None, build_error_response(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            code=exc.code,
            message=exc.message,
            details=exc.details,
        )

    if result.allowed:
        logger.debug(
            "rate_limit.allowed",
            extra={
                "identity_hash": hash_identity(identity),
                "limit": result.limit,
                "remaining": result.remaining,
            },
        )
        return result, None

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "identity_hash": hash_identity(identity),
            "limit": result.limit,
            "retry_after_s": result.retry_after_seconds,
        },
    )
    return result, rate_limited_response(result)


async def _handle_api_request(request: Request, call_next) -> Response:
    if request.method == "OPTIONS":
        return apply_cors_headers(Response(status_code=status.HTTP_200_OK), request)

    trace_id = str(uuid.uuid4())
    bind_request_context(trace_id, path=request.url.path, method=request.method)
    request.state.trace_id = trace_id
    try:
        result, early_response = await _enforce_rate_limit(request)
        if early_response is not None:
            return early_response

        response: Response = await call_next(request)
    finally:
        clear_request_context()

    response.headers[settings.log.trace_id_header] = trace_id
    apply_cors_headers(response, request)
    if result is not None and settings.rate_limit.include_headers:
        response.headers.update(rate_limit_headers(result))
    return response


async def _handle_page_request(request: Request, call_next) -> Response:
    nonce = generate_nonce()
    request.state.csp_nonce = nonce

    response: Response = await call_next(request)

    response.headers["Content-Security-Policy"] = build_csp_header(nonce)
    response.headers["X-Nonce"] = nonce
    return response


async def gate_middleware(request: Request, call_next) -> Response:
    """HTTP middleware running the request-gating pipeline.

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response: Either an early response (preflight, 429, 503) or the
            downstream response with gate headers added.

    Side Effects:
        - Binds the logging context (trace id, path, method, tier) for API
          requests and clears it after
        - Stores ``trace_id`` or ``csp_nonce`` on ``request.state``
        - Consumes rate-limit budget for API requests
    """

    path = request.url.path
    if is_excluded_path(path) or is_docs_path(request):
        return await call_next(request)
    if is_api_path(path):
        return await _handle_api_request(request, call_next)
    return await _handle_page_request(request, call_next)
