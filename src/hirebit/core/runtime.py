from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any

from hirebit.db.base import utcnow


@dataclass(slots=True)
class IngestionStatus:
    enabled: bool = False
    running: bool = False
    disabled_reason: str | None = None
    last_processed_at: datetime | None = None
    last_error: str | None = None
    last_summary: dict[str, Any] | None = None


class IngestionStatusTracker:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = IngestionStatus()

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return asdict(self._status)

    def disabled(self, reason: str) -> None:
        with self._lock:
            self._status.enabled = False
            self._status.running = False
            self._status.disabled_reason = reason

    def started(self) -> None:
        with self._lock:
            self._status.enabled = True
            self._status.running = True
            self._status.disabled_reason = None

    def finished(self, summary: dict[str, Any] | None = None, error: str | None = None) -> None:
        with self._lock:
            self._status.running = False
            self._status.last_processed_at = utcnow()
            self._status.last_error = error
            if summary is not None:
                self._status.last_summary = summary


_INGESTION_STATUS: IngestionStatusTracker | None = None


def get_ingestion_status() -> IngestionStatusTracker:
    global _INGESTION_STATUS
    if _INGESTION_STATUS is None:
        _INGESTION_STATUS = IngestionStatusTracker()
    return _INGESTION_STATUS
