# herbtrace/storage/memory_store.py
from __future__ import annotations

from typing import Any, Dict, List, Optional

from herbtrace.errors import DuplicateEventError, StorageError
from herbtrace.models.ledger.record_models import BatchRecord, EventRecord, same_event_record
from herbtrace.storage.base import LedgerStore


class InMemoryLedgerStore(LedgerStore):
    """
    Process-local store. Used when DISABLE_MONGO=1 and by the tests.
    Hands out copies so callers can't reach into the stored rows.
    """

    def __init__(self):
        self._batches: Dict[str, BatchRecord] = {}
        self._events: Dict[str, EventRecord] = {}
        # batch_id -> event ids in save order
        self._by_batch: Dict[str, List[str]] = {}

    def save_batch(self, record: BatchRecord) -> None:
        self._batches[record.batch_id] = record.model_copy(deep=True)

    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        rec = self._batches.get(batch_id)
        return rec.model_copy(deep=True) if rec else None

    def get_all_batches(self) -> List[BatchRecord]:
        return [r.model_copy(deep=True) for r in self._batches.values()]

    def update_batch(self, batch_id: str, patch: Dict[str, Any]) -> None:
        rec = self._batches.get(batch_id)
        if rec is None:
            raise StorageError(f"update_batch: no stored batch {batch_id}", batchId=batch_id)
        self._batches[batch_id] = rec.model_copy(update=dict(patch), deep=True)

    def save_event(self, record: EventRecord) -> None:
        existing = self._events.get(record.event_id)
        if existing is not None:
            if same_event_record(existing, record):
                return
            raise DuplicateEventError(
                f"event {record.event_id} already stored for batch {existing.batch_id}",
                eventId=record.event_id,
                batchId=existing.batch_id,
            )
        self._events[record.event_id] = record.model_copy(deep=True)
        self._by_batch.setdefault(record.batch_id, []).append(record.event_id)

    def get_events_by_batch(self, batch_id: str) -> List[EventRecord]:
        return [self._events[eid].model_copy(deep=True) for eid in self._by_batch.get(batch_id, [])]

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        rec = self._events.get(event_id)
        return rec.model_copy(deep=True) if rec else None
