# herbtrace/storage/base.py
"""
Contract between the ledger and whatever persists it.

Every method either succeeds or raises StorageError. Batch saves are upserts
keyed by batch_id. Event saves are insert-only: re-saving an identical record
is a no-op, so retrying after an ambiguous failure is safe, and a different
record under a stored event_id raises DuplicateEventError.
There is no transaction across calls.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from herbtrace.models.ledger.record_models import BatchRecord, EventRecord


class LedgerStore(ABC):

    @abstractmethod
    def save_batch(self, record: BatchRecord) -> None:
        ...

    @abstractmethod
    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        ...

    @abstractmethod
    def get_all_batches(self) -> List[BatchRecord]:
        ...

    @abstractmethod
    def update_batch(self, batch_id: str, patch: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def save_event(self, record: EventRecord) -> None:
        ...

    @abstractmethod
    def get_events_by_batch(self, batch_id: str) -> List[EventRecord]:
        """Events of one batch in the order they were saved."""

    @abstractmethod
    def get_event(self, event_id: str) -> Optional[EventRecord]:
        ...
