# herbtrace/services/ledger/ledger_service.py
"""
Event ledger: the system of record for batches and their events.

One LedgerService is built per process (see herbtrace.bootstrap) and handed
to everything that needs it. It keeps an in-memory index over the backing
store, enforces the stage gate on append, and tells subscribers about every
accepted event.

With the default reload_policy="always" every query and append first reloads
the snapshot from the backing store, so separate instances (the public pages
and the REST API) see each other's appends. reload_policy="on_change" only
reloads after mark_stale(), which can be subscribed to a writer in the same
process. There is no locking or version check, so two writers racing on the
same batch can both pass the duplicate-stage check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Union

from herbtrace.errors import DuplicateEventError, NotFoundError, StorageError
from herbtrace.models.ledger.event_models import (
    DEFAULT_ORGANIZATION,
    AuditEntry,
    Batch,
    Event,
    EventDraft,
    EventType,
    Stage,
    derive_stage,
)
from herbtrace.models.ledger.record_models import (
    as_utc,
    batch_patch,
    batch_to_record,
    event_to_record,
    record_to_event,
    stage_from_record,
)
from herbtrace.services.ledger.identifiers import IdentifierGenerator
from herbtrace.services.ledger.stage_gate import GateDecision, StageGate
from herbtrace.services.traceability.integrity import event_tag
from herbtrace.storage.base import LedgerStore
from herbtrace.storage.metadata_store import MetadataStore

log = logging.getLogger(__name__)

RELOAD_ON_CHANGE = "on_change"
RELOAD_ALWAYS = "always"


@dataclass(frozen=True)
class LedgerChange:
    """What subscribers receive after every accepted append."""

    kind: str
    batch_id: str
    event_id: str
    event_type: EventType
    stage: Stage
    at: datetime


Listener = Callable[[LedgerChange], None]


def _utcnow() -> datetime:
    # millisecond precision so timestamps survive a round trip through Mongo
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


class LedgerService:

    def __init__(
        self,
        store: LedgerStore,
        ids: Optional[IdentifierGenerator] = None,
        metadata_store: Optional[MetadataStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        reload_policy: str = RELOAD_ALWAYS,
    ):
        if reload_policy not in (RELOAD_ON_CHANGE, RELOAD_ALWAYS):
            raise ValueError(f"unknown reload policy: {reload_policy}")
        self.store = store
        self.ids = ids or IdentifierGenerator()
        self.metadata_store = metadata_store
        self._clock = clock or _utcnow
        self.reload_policy = reload_policy

        self._batches: Dict[str, Batch] = {}
        self._events: Dict[str, Event] = {}
        # global append order: event ids, oldest first
        self._order: List[str] = []
        self._by_parent: Dict[str, List[str]] = {}
        self._listeners: List[Listener] = []
        self._stale = True

    # -------------------------
    # Snapshot handling
    # -------------------------
    def mark_stale(self, *_args) -> None:
        """Force a reload before the next read. Usable directly as a listener."""
        self._stale = True

    def reload(self) -> None:
        """Rebuild the in-memory index from the backing store."""
        batches: Dict[str, Batch] = {}
        events: List[Event] = []

        for rec in self.store.get_all_batches():
            stored_events = [record_to_event(r) for r in self.store.get_events_by_batch(rec.batch_id)]
            if not any(e.eventType == EventType.COLLECTION for e in stored_events):
                # a batch row whose founding event never landed
                log.warning("skipping batch %s: no COLLECTION event in store", rec.batch_id)
                continue

            stage = derive_stage(e.eventType for e in stored_events)
            if stage_from_record(rec) != stage:
                log.info(
                    "batch %s stored status %s, derived %s from events",
                    rec.batch_id, rec.current_status, stage.value,
                )

            updated = max([as_utc(rec.updated_at)] + [e.timestamp for e in stored_events])
            batches[rec.batch_id] = Batch(
                batchId=rec.batch_id,
                species=rec.herb_species,
                creator=rec.creator,
                currentStage=stage,
                isTerminal=stage == Stage.MANUFACTURED,
                createdAt=as_utc(rec.created_at),
                updatedAt=updated,
                events=stored_events,
            )
            events.extend(stored_events)

        events.sort(key=lambda e: e.timestamp)

        self._batches = batches
        self._events = {}
        self._order = []
        self._by_parent = {}
        for ev in events:
            self._index_event(ev)
        self._stale = False
        log.debug("ledger reloaded: %d batches, %d events", len(batches), len(events))

    def _fresh(self) -> None:
        if self._stale or self.reload_policy == RELOAD_ALWAYS:
            self.reload()

    def _index_event(self, ev: Event) -> None:
        self._events[ev.eventId] = ev
        self._order.append(ev.eventId)
        if ev.parentEventId:
            self._by_parent.setdefault(ev.parentEventId, []).append(ev.eventId)

    # -------------------------
    # Subscriptions
    # -------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, change: LedgerChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                log.exception("ledger listener failed for %s", change.event_id)

    # -------------------------
    # Queries
    # -------------------------
    def get_batch(self, batch_id: str) -> Optional[Batch]:
        self._fresh()
        batch = self._batches.get(batch_id)
        return batch.snapshot() if batch else None

    def get_event(self, event_id: str) -> Optional[Event]:
        self._fresh()
        return self._events.get(event_id)

    def list_batches(self) -> List[Batch]:
        self._fresh()
        return [b.snapshot() for b in self._batches.values()]

    def iter_events(self) -> Iterator[Event]:
        """Every event, in global append order."""
        self._fresh()
        for eid in list(self._order):
            yield self._events[eid]

    def events_with_parent(self, parent_event_id: str) -> List[Event]:
        self._fresh()
        return [self._events[eid] for eid in self._by_parent.get(parent_event_id, [])]

    def audit_trail(self) -> List[AuditEntry]:
        self._fresh()
        out = [
            AuditEntry(
                eventId=ev.eventId,
                eventType=ev.eventType,
                batchId=ev.batchId,
                participant=ev.participant,
                organization=ev.organization,
                timestamp=ev.timestamp,
                integrityTag=ev.integrityTag,
            )
            for ev in self._events.values()
        ]
        out.sort(key=lambda a: a.timestamp, reverse=True)
        return out

    def can_append(self, batch_id: str, event_type: Union[EventType, str]) -> GateDecision:
        self._fresh()
        et = EventType(event_type)
        batch = self._batches.get(batch_id)
        if batch is None and et != EventType.COLLECTION:
            raise NotFoundError(f"Batch not found: {batch_id}", batchId=batch_id)
        stage = batch.currentStage if batch else Stage.NONE
        return StageGate.can_transition(stage, et)

    # -------------------------
    # Append
    # -------------------------
    def append(self, draft: EventDraft, metadata: Optional[dict] = None) -> Event:
        """
        Validate against the stage gate, persist, update the batch summary.

        Raises NotFoundError / DuplicateStageError / TerminalBatchError /
        OutOfOrderError for rule violations, DuplicateEventError when an
        explicit eventId is already taken, and StorageError when the store
        fails. On any error the in-memory ledger is left untouched.
        """
        self._fresh()

        batch = self._batches.get(draft.batchId)
        if batch is None and draft.eventType != EventType.COLLECTION:
            log.info("append rejected: batch %s not found", draft.batchId)
            raise NotFoundError(f"Batch not found: {draft.batchId}", batchId=draft.batchId)

        stage = batch.currentStage if batch else Stage.NONE
        decision = StageGate.can_transition(stage, draft.eventType)
        if not decision.accepted:
            log.info(
                "append rejected for %s (%s on %s): %s",
                draft.batchId, draft.eventType.value, stage.value, decision.reason.value,
            )
            decision.raise_for_reject()

        if draft.eventId and draft.eventId in self._events:
            owner = self._events[draft.eventId].batchId
            log.info("append rejected: event id %s already used by batch %s", draft.eventId, owner)
            raise DuplicateEventError(
                f"Event id already in use: {draft.eventId}", eventId=draft.eventId, batchId=owner
            )

        external_ref = draft.externalRef
        if metadata is not None and self.metadata_store is not None:
            external_ref = self.metadata_store.put(
                metadata, name=f"{draft.eventType.value.lower()}-{draft.batchId}"
            )

        event = self._build_event(draft, external_ref)
        updated = self._persist(batch, event)

        self._batches[updated.batchId] = updated
        self._index_event(event)
        log.info(
            "appended %s %s to batch %s (stage %s)",
            event.eventType.value, event.eventId, event.batchId, updated.currentStage.value,
        )

        self._notify(
            LedgerChange(
                kind="event_appended",
                batch_id=event.batchId,
                event_id=event.eventId,
                event_type=event.eventType,
                stage=updated.currentStage,
                at=event.timestamp,
            )
        )
        return event

    def _build_event(self, draft: EventDraft, external_ref: Optional[str]) -> Event:
        unsigned = Event(
            eventId=draft.eventId or self.ids.new_event_id(draft.eventType),
            eventType=draft.eventType,
            batchId=draft.batchId,
            parentEventId=draft.parentEventId,
            participant=draft.participant,
            organization=draft.organization or DEFAULT_ORGANIZATION[draft.eventType],
            timestamp=self._clock(),
            payload=draft.payload,
            externalRef=external_ref,
        )
        return unsigned.model_copy(update={"integrityTag": event_tag(unsigned)})

    def _persist(self, batch: Optional[Batch], event: Event) -> Batch:
        """Write to the store and return the new batch summary (not yet indexed)."""
        if batch is None:
            updated = Batch(
                batchId=event.batchId,
                species=event.payload.herbSpecies,
                creator=event.participant,
                currentStage=Stage.COLLECTED,
                isTerminal=False,
                createdAt=event.timestamp,
                updatedAt=event.timestamp,
                events=[event],
            )
            # batch row first: a batch without its event is ignored on reload
            self.store.save_batch(batch_to_record(updated))
            self.store.save_event(event_to_record(event))
            return updated

        events = list(batch.events) + [event]
        stage = derive_stage(e.eventType for e in events)
        updated = batch.model_copy(
            update={
                "events": events,
                "currentStage": stage,
                "isTerminal": stage == Stage.MANUFACTURED,
                "updatedAt": event.timestamp,
            }
        )

        self.store.save_event(event_to_record(event))
        self._update_summary(updated)
        return updated

    def _update_summary(self, batch: Batch) -> None:
        # the event is already stored and reload re-derives the summary from it
        patch = batch_patch(batch)
        for attempt in (1, 2):
            try:
                self.store.update_batch(batch.batchId, patch)
                return
            except StorageError as e:
                log.warning(
                    "batch summary update failed for %s (attempt %d): %s",
                    batch.batchId, attempt, e.reason,
                )
