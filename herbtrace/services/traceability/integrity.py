# herbtrace/services/traceability/integrity.py
"""
Advisory integrity tags.

Tags are SHA-256 digests of a canonical JSON rendering. Nothing on the read
path rejects data whose tag does not match: decode never checks them, and
the traceability view only *reports* whether an event still matches its tag.
They are labels, not tamper protection.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any, Dict

from herbtrace.models.ledger.event_models import Event


def canonical_json(data: Dict[str, Any]) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)


def content_tag(data: Dict[str, Any]) -> str:
    return hashlib.sha256(canonical_json(data).encode("utf-8")).hexdigest()


def event_envelope(event: Event) -> Dict[str, Any]:
    return {
        "eventId": event.eventId,
        "eventType": event.eventType.value,
        "batchId": event.batchId,
        "parentEventId": event.parentEventId,
        "participant": event.participant,
        "organization": event.organization,
        "timestamp": event.timestamp.isoformat(),
        "payload": event.payload.model_dump(mode="json", by_alias=True),
        "externalRef": event.externalRef,
    }


def event_tag(event: Event) -> str:
    return content_tag(event_envelope(event))


def verify_event_tag(event: Event) -> bool:
    return bool(event.integrityTag) and event.integrityTag == event_tag(event)
