"""In-memory support request repository.

Per-process only; records are lost on restart.
"""

from __future__ import annotations

import itertools
import threading

from nerix_gateway.adapters.support.base import (
    AbstractSupportRequestRepository,
    NewSupportRequest,
    SupportRequestRecord,
)


class InMemorySupportRequestRepository(AbstractSupportRequestRepository):
    """Stores support requests in a dict keyed by a sequential id."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._records: dict[int, SupportRequestRecord] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    async def add(self, request: NewSupportRequest) -> SupportRequestRecord:
        with self._lock:
            record = SupportRequestRecord(
                id=next(self._ids),
                name=request.name,
                email=request.email,
                subject=request.subject,
                message=request.message,
                type=request.type,
                ip=request.ip,
                user_agent=request.user_agent,
            )
            self._records[record.id] = record
        return record

    async def get(self, request_id: int) -> SupportRequestRecord | None:
        with self._lock:
            return self._records.get(request_id)
