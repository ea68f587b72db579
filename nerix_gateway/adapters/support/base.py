"""Support request repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone


@dataclass(frozen=True)
class NewSupportRequest:
    """Validated contact form data ready to be stored."""

    name: str
    email: str
    subject: str
    message: str
    type: str
    ip: str
    user_agent: str | None = None


@dataclass(frozen=True)
class SupportRequestRecord:
    """Stored support request."""

    id: int
    name: str
    email: str
    subject: str
    message: str
    type: str
    ip: str
    user_agent: str | None
    status: str = "new"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class AbstractSupportRequestRepository(ABC):
    """Persistence boundary for support requests."""

    @abstractmethod
    async def add(self, request: NewSupportRequest) -> SupportRequestRecord:
        """Store a new request with status ``new`` and return the record."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, request_id: int) -> SupportRequestRecord | None:
        raise NotImplementedError
