from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

router = APIRouter(tags=["Pages"])

_HOME_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8">
<title>Nerix</title>
<style nonce="{nonce}">body {{ font-family: sans-serif; }}</style>
</head>
<body>
<main id="root">Nerix</main>
<script nonce="{nonce}">window.__NERIX__ = {{ ready: true }};</script>
</body>
</html>
"""


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def home(request: Request) -> HTMLResponse:
    """Landing page; inline tags carry the per-request CSP nonce."""

    nonce = getattr(request.state, "csp_nonce", "")
    return HTMLResponse(_HOME_TEMPLATE.format(nonce=nonce))
