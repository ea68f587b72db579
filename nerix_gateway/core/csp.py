"""Content-Security-Policy construction with per-request nonces."""

from __future__ import annotations

import base64
import uuid

NONCE_PLACEHOLDER = "{nonce}"

# Directive order is preserved in the rendered header.
CSP_DIRECTIVES: dict[str, tuple[str, ...]] = {
    "default-src": ("'self'",),
    "script-src": ("'self'", "'nonce-{nonce}'", "'strict-dynamic'", "https://vercel.live"),
    "style-src": ("'self'", "'nonce-{nonce}'"),
    "img-src": (
        "'self'",
        "blob:",
        "data:",
        "https:",
        "*.vercel-analytics.com",
        "*.vercel-insights.com",
        "*.public.blob.vercel-storage.com",
    ),
    "font-src": ("'self'", "data:"),
    "object-src": ("'none'",),
    "base-uri": ("'self'",),
    "form-action": ("'self'",),
    "frame-ancestors": ("'none'",),
    "frame-src": (
        "'self'",
        "https://verify.walletconnect.com",
        "https://secure.walletconnect.com",
    ),
    "connect-src": (
        "'self'",
        "https:",
        "wss:",
        "blob:",
        "*.walletconnect.com",
        "*.binance.org",
        "*.bsc.nodereal.io",
        "*.ankr.com",
        "*.vercel-analytics.com",
        "*.vercel-insights.com",
        "*.public.blob.vercel-storage.com",
    ),
    "media-src": ("'self'", "blob:", "data:"),
    "upgrade-insecure-requests": (),
    "block-all-mixed-content": (),
}


def generate_nonce() -> str:
    """Return a fresh base64-encoded random nonce."""
    return base64.b64encode(str(uuid.uuid4()).encode()).decode()


def build_csp_header(nonce: str, directives: dict[str, tuple[str, ...]] = CSP_DIRECTIVES) -> str:
    """Render the CSP header value, substituting ``nonce`` into the sources.

    Args:
        nonce: Nonce generated for the current request.
        directives: Ordered directive table.

    Returns:
        Directives joined with ``"; "``; valueless directives render bare.

    Example:
        >>> build_csp_header("abc", {"script-src": ("'nonce-{nonce}'",), "upgrade-insecure-requests": ()})
        "script-src 'nonce-abc'; upgrade-insecure-requests"
    """
    parts = []
    for name, sources in directives.items():
        rendered = " ".join(s.replace(NONCE_PLACEHOLDER, nonce) for s in sources)
        parts.append(f"{name} {rendered}".rstrip())
    return "; ".join(parts)
