"""Audit log storage.

The delivery subsystem only appends; reads serve debugging (per record) and
operational dashboards (per time range).
"""

import threading
from datetime import datetime
from typing import List, Optional, Protocol

from infrastructure.audit.models import DeliveryAuditEntry


class AuditWriteError(Exception):
    """An audit entry could not be persisted."""


class AuditReadError(Exception):
    """Audit entries could not be read back from the backend."""


class AuditLog(Protocol):
    """Append-only audit log interface.

    Methods:
        append: Persist one entry (raises AuditWriteError on failure)
        list_for_record: Entries of one record, oldest first (raises
            AuditReadError when the backend cannot be read)
        list_between: Entries with ``start <= timestamp <= end``, oldest
            first, optionally restricted to one channel
    """

    def append(self, entry: DeliveryAuditEntry) -> None:
        ...

    def list_for_record(self, record_id: str) -> List[DeliveryAuditEntry]:
        ...

    def list_between(
        self,
        start: datetime,
        end: datetime,
        channel: Optional[str] = None,
    ) -> List[DeliveryAuditEntry]:
        ...


class InMemoryAuditLog:
    """Thread-safe in-memory audit log."""

    def __init__(self) -> None:
        self._entries: List[DeliveryAuditEntry] = []
        self._lock = threading.Lock()

    def append(self, entry: DeliveryAuditEntry) -> None:
        with self._lock:
            self._entries.append(entry)

    def list_for_record(self, record_id: str) -> List[DeliveryAuditEntry]:
        with self._lock:
            matching = [e for e in self._entries if e.record_id == record_id]
        return sorted(matching, key=lambda e: e.timestamp)

    def list_between(
        self,
        start: datetime,
        end: datetime,
        channel: Optional[str] = None,
    ) -> List[DeliveryAuditEntry]:
        with self._lock:
            matching = [
                e
                for e in self._entries
                if start <= e.timestamp <= end
                and (channel is None or e.channel == channel)
            ]
        return sorted(matching, key=lambda e: e.timestamp)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
