# herbtrace/services/ledger/resolver.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from herbtrace.errors import NotFoundError
from herbtrace.models.ledger.event_models import Batch, Event
from herbtrace.services.ledger.ledger_service import LedgerService

log = logging.getLogger(__name__)

MATCH_BATCH = "batch_id"
MATCH_EVENT = "event_id"
MATCH_PARENT = "parent_event_id"
MATCH_SUBSTRING = "event_id_substring"


@dataclass
class ResolvedBatch:
    batch: Batch
    events: List[Event] = field(default_factory=list)
    matched_by: str = MATCH_BATCH
    matched_event_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "batch": self.batch.model_dump(mode="json", by_alias=True),
            "events": [e.model_dump(mode="json", by_alias=True) for e in self.events],
            "matchedBy": self.matched_by,
            "matchedEventId": self.matched_event_id,
        }


class Resolver:
    """
    Token -> batch. First match wins:
      1. token is a batch id
      2. token is an event id
      3. legacy fallback: earliest event whose parentEventId equals the token,
         or (when substring_match is on) whose own id contains the token

    Step 3 exists for old labels that carried only one id. Substring
    containment can pick the wrong batch when ids overlap textually, which is
    why it can be switched off.
    """

    def __init__(self, ledger: LedgerService, substring_match: bool = True):
        self.ledger = ledger
        self.substring_match = substring_match

    def resolve(self, token: str) -> ResolvedBatch:
        token = (token or "").strip()
        if not token:
            raise NotFoundError("Empty tracking token")

        batch = self.ledger.get_batch(token)
        if batch is not None:
            return ResolvedBatch(batch=batch, events=list(batch.events), matched_by=MATCH_BATCH)

        event = self.ledger.get_event(token)
        if event is not None:
            return self._owning(event, MATCH_EVENT)

        hit = self._legacy_match(token)
        if hit is not None:
            event, how = hit
            log.info("resolved %r via legacy %s match on %s", token, how, event.eventId)
            return self._owning(event, how)

        raise NotFoundError(f"Batch not found for {token}", token=token)

    def resolve_batch_id(self, token: str) -> str:
        return self.resolve(token).batch.batchId

    # -------------------------
    # helpers
    # -------------------------
    def _owning(self, event: Event, how: str) -> ResolvedBatch:
        batch = self.ledger.get_batch(event.batchId)
        if batch is None:
            # event indexed without its batch (store skew); treat as a miss
            raise NotFoundError(f"Batch not found for event {event.eventId}", eventId=event.eventId)
        return ResolvedBatch(
            batch=batch,
            events=list(batch.events),
            matched_by=how,
            matched_event_id=event.eventId,
        )

    def _legacy_match(self, token: str):
        parent_hits = self.ledger.events_with_parent(token)
        parent_hit = parent_hits[0] if parent_hits else None

        sub_hit = None
        if self.substring_match:
            for ev in self.ledger.iter_events():
                if token in ev.eventId:
                    sub_hit = ev
                    break
                if parent_hit is not None and ev.eventId == parent_hit.eventId:
                    # nothing earlier than the parent hit contained the token
                    break

        # the scan stops at the parent hit, so any substring hit is the earlier one
        if sub_hit is not None and (parent_hit is None or sub_hit.eventId != parent_hit.eventId):
            return sub_hit, MATCH_SUBSTRING
        if parent_hit is not None:
            return parent_hit, MATCH_PARENT
        return None
