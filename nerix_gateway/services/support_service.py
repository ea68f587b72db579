"""Support contact form handling with lightweight spam protection.

Submissions flagged as spam are accepted silently (the caller still sees a
success response) so bots get no signal about which check tripped.
"""

from __future__ import annotations

import hashlib
import logging
import re
import time
from dataclasses import dataclass
from typing import Callable

from nerix_gateway.adapters.support.base import (
    AbstractSupportRequestRepository,
    NewSupportRequest,
    SupportRequestRecord,
)
from nerix_gateway.schemas.support import SupportRequestIn

logger = logging.getLogger(__name__)

MIN_FILL_TIME_MS = 3000

SUSPICIOUS_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"https?://\S+", re.IGNORECASE),
    re.compile(r"buy now|click here|free money|make money fast", re.IGNORECASE),
    re.compile(r"\b\d{10,}\b"),
)

CONFIRMATION_MESSAGE = "Thank you for your message! We'll get back to you soon."


@dataclass(frozen=True)
class SubmissionOutcome:
    """Result of a submission: ``record`` is None when it was dropped as spam."""

    record: SupportRequestRecord | None
    spam_reason: str | None = None

    @property
    def is_spam(self) -> bool:
        return self.spam_reason is not None


def detect_spam(form: SupportRequestIn, *, now_ms: int) -> str | None:
    """Return the name of the first spam check that fails, or None.

    Checks, in order: filled honeypot, form filled under three seconds,
    suspicious content in name/subject/message.
    """
    if form.honeypot and form.honeypot.strip():
        return "honeypot"

    if now_ms - form.timestamp < MIN_FILL_TIME_MS:
        return "fill_time"

    full_text = f"{form.name} {form.subject} {form.message}".lower()
    if any(pattern.search(full_text) for pattern in SUSPICIOUS_PATTERNS):
        return "suspicious_content"

    return None


class SupportService:
    """Validates, filters and stores contact form submissions."""

    def __init__(
        self,
        repository: AbstractSupportRequestRepository,
        *,
        clock_ms: Callable[[], int] = lambda: int(time.time() * 1000),
    ) -> None:
        self._repository = repository
        self._clock_ms = clock_ms

    async def submit(
        self,
        form: SupportRequestIn,
        *,
        ip: str,
        user_agent: str | None = None,
    ) -> SubmissionOutcome:
        ip_hash = hashlib.sha256(ip.encode()).hexdigest()[:16]

        reason = detect_spam(form, now_ms=self._clock_ms())
        if reason is not None:
            logger.warning(
                "support.spam_detected",
                extra={"reason": reason, "ip_hash": ip_hash, "request_type": form.type},
            )
            return SubmissionOutcome(record=None, spam_reason=reason)

        record = await self._repository.add(
            NewSupportRequest(
                name=form.name,
                email=str(form.email),
                subject=form.subject,
                message=form.message,
                type=form.type,
                ip=ip,
                user_agent=user_agent,
            )
        )
        logger.info(
            "support.request_stored",
            extra={"support_request_id": record.id, "request_type": record.type, "ip_hash": ip_hash},
        )
        return SubmissionOutcome(record=record)
