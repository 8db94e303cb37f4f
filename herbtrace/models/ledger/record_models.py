# herbtrace/models/ledger/record_models.py
"""
Persisted record shapes exchanged with the storage collaborator.

Stores see snake_case records with the stage payload kept as an opaque
`data` document; the ledger converts to and from its own models here.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, TypeAdapter

from herbtrace.models.ledger.event_models import (
    Batch,
    Event,
    EventPayload,
    EventType,
    Stage,
)

_payload_adapter = TypeAdapter(EventPayload)


class EventRecord(BaseModel):
    event_id: str
    event_type: str
    batch_id: str
    parent_event_id: Optional[str] = None
    participant: str
    organization: str = ""
    data: Dict[str, Any] = Field(default_factory=dict)
    integrity_tag: str = ""
    external_ref: Optional[str] = None
    created_at: datetime


class BatchRecord(BaseModel):
    batch_id: str
    herb_species: str
    creator: str
    current_status: str
    data: Dict[str, Any] = Field(default_factory=dict)
    is_completed: bool = False
    created_at: datetime
    updated_at: datetime


def as_utc(dt: datetime) -> datetime:
    # Mongo hands back naive UTC datetimes
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


# -------------------------
# Event <-> record
# -------------------------
def event_to_record(event: Event) -> EventRecord:
    return EventRecord(
        event_id=event.eventId,
        event_type=event.eventType.value,
        batch_id=event.batchId,
        parent_event_id=event.parentEventId,
        participant=event.participant,
        organization=event.organization,
        data=event.payload.model_dump(mode="json", by_alias=True),
        integrity_tag=event.integrityTag,
        external_ref=event.externalRef,
        created_at=event.timestamp,
    )


def same_event_record(a: EventRecord, b: EventRecord) -> bool:
    """True when two records describe the same stored event (re-save of an identical write)."""
    return a.model_copy(update={"created_at": as_utc(a.created_at)}) == b.model_copy(
        update={"created_at": as_utc(b.created_at)}
    )


def record_to_event(rec: EventRecord) -> Event:
    data = dict(rec.data or {})
    # older rows carried the payload without its tag
    data.setdefault("kind", rec.event_type)
    return Event(
        eventId=rec.event_id,
        eventType=EventType(rec.event_type),
        batchId=rec.batch_id,
        parentEventId=rec.parent_event_id,
        participant=rec.participant,
        organization=rec.organization or "",
        timestamp=as_utc(rec.created_at),
        payload=_payload_adapter.validate_python(data),
        integrityTag=rec.integrity_tag or "",
        externalRef=rec.external_ref,
    )


# -------------------------
# Batch <-> record
# -------------------------
def batch_to_record(batch: Batch) -> BatchRecord:
    return BatchRecord(
        batch_id=batch.batchId,
        herb_species=batch.species,
        creator=batch.creator,
        current_status=batch.currentStage.value,
        data={"eventCount": len(batch.events)},
        is_completed=batch.isTerminal,
        created_at=batch.createdAt,
        updated_at=batch.updatedAt,
    )


def batch_patch(batch: Batch) -> Dict[str, Any]:
    """Fields an append changes on the stored batch summary."""
    return {
        "current_status": batch.currentStage.value,
        "is_completed": batch.isTerminal,
        "updated_at": batch.updatedAt,
        "data": {"eventCount": len(batch.events)},
    }


def stage_from_record(rec: BatchRecord) -> Stage:
    try:
        return Stage(rec.current_status)
    except ValueError:
        return Stage.NONE
