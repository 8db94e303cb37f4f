# herbtrace/storage/mongo_store.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from herbtrace.errors import DuplicateEventError, StorageError
from herbtrace.models.ledger.record_models import BatchRecord, EventRecord, same_event_record
from herbtrace.storage.base import LedgerStore

log = logging.getLogger(__name__)

# never leak Mongo's ObjectId to the record models
_NO_ID = {"_id": 0}
_NO_ID_SEQ = {"_id": 0, "seq": 0}


class MongoLedgerStore(LedgerStore):
    """
    Collections:
      batches  { batch_id, herb_species, creator, current_status, data, is_completed, created_at, updated_at }
      events   { event_id, event_type, batch_id, parent_event_id, participant, organization,
                 data, integrity_tag, external_ref, created_at, seq }

    `seq` is a per-store insertion counter so a batch's events come back in
    the order they were appended, even when two share a timestamp.
    """

    def __init__(self, db, batches: str = "batches", events: str = "events", counters: str = "counters"):
        self.db = db
        self.batches = db[batches]
        self.events = db[events]
        self.counters = db[counters]

    # -------------------------
    # Setup
    # -------------------------
    def ensure_indexes(self) -> None:
        try:
            self.batches.create_index([("batch_id", ASCENDING)], unique=True)
            self.batches.create_index([("updated_at", DESCENDING)])
            self.events.create_index([("event_id", ASCENDING)], unique=True)
            self.events.create_index([("batch_id", ASCENDING), ("seq", ASCENDING)])
            self.events.create_index([("parent_event_id", ASCENDING)])
        except PyMongoError as e:
            log.warning("index error: %s", e)

    def _next_seq(self) -> int:
        doc = self.counters.find_one_and_update(
            {"_id": "events"},
            {"$inc": {"value": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return int(doc["value"])

    # -------------------------
    # Batches
    # -------------------------
    def save_batch(self, record: BatchRecord) -> None:
        try:
            self.batches.replace_one({"batch_id": record.batch_id}, record.model_dump(), upsert=True)
        except PyMongoError as e:
            raise StorageError(f"save_batch failed: {e}", cause=e, batchId=record.batch_id) from e

    def get_batch(self, batch_id: str) -> Optional[BatchRecord]:
        try:
            doc = self.batches.find_one({"batch_id": batch_id}, _NO_ID)
        except PyMongoError as e:
            raise StorageError(f"get_batch failed: {e}", cause=e, batchId=batch_id) from e
        return BatchRecord(**doc) if doc else None

    def get_all_batches(self) -> List[BatchRecord]:
        try:
            cur = self.batches.find({}, _NO_ID).sort([("created_at", ASCENDING)])
            return [BatchRecord(**d) for d in cur]
        except PyMongoError as e:
            raise StorageError(f"get_all_batches failed: {e}", cause=e) from e

    def update_batch(self, batch_id: str, patch: Dict[str, Any]) -> None:
        try:
            res = self.batches.update_one({"batch_id": batch_id}, {"$set": dict(patch)})
        except PyMongoError as e:
            raise StorageError(f"update_batch failed: {e}", cause=e, batchId=batch_id) from e
        if res.matched_count == 0:
            raise StorageError(f"update_batch: no stored batch {batch_id}", batchId=batch_id)

    # -------------------------
    # Events
    # -------------------------
    def save_event(self, record: EventRecord) -> None:
        try:
            existing = self.events.find_one({"event_id": record.event_id}, _NO_ID_SEQ)
            if existing is None:
                try:
                    self.events.insert_one({**record.model_dump(), "seq": self._next_seq()})
                    return
                except DuplicateKeyError:
                    # another writer inserted the same event_id first
                    existing = self.events.find_one({"event_id": record.event_id}, _NO_ID_SEQ)
        except PyMongoError as e:
            raise StorageError(f"save_event failed: {e}", cause=e, eventId=record.event_id) from e

        stored = EventRecord(**existing)
        if not same_event_record(stored, record):
            raise DuplicateEventError(
                f"event {record.event_id} already stored for batch {stored.batch_id}",
                eventId=record.event_id,
                batchId=stored.batch_id,
            )

    def get_events_by_batch(self, batch_id: str) -> List[EventRecord]:
        try:
            cur = self.events.find({"batch_id": batch_id}, _NO_ID).sort([("seq", ASCENDING)])
            return [EventRecord(**d) for d in cur]
        except PyMongoError as e:
            raise StorageError(f"get_events_by_batch failed: {e}", cause=e, batchId=batch_id) from e

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        try:
            doc = self.events.find_one({"event_id": event_id}, _NO_ID)
        except PyMongoError as e:
            raise StorageError(f"get_event failed: {e}", cause=e, eventId=event_id) from e
        return EventRecord(**doc) if doc else None
