# herbtrace/fastapi/ledger_api.py
# JSON API over the event ledger: record events, look batches up, and turn
# batch/event ids into scannable codes and back.

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, ValidationError

from herbtrace.bootstrap import LedgerContext
from herbtrace.errors import LedgerError, NotFoundError, PayloadValidationError, http_status
from herbtrace.models.ledger.event_models import Batch, Event, EventDraft, EventType

log = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/ledger", tags=["ledger"])


# ==========================================================
# REQUEST MODELS
# ==========================================================
class CreateBatchRequest(BaseModel):
    participant: str = Field(..., min_length=1)
    organization: Optional[str] = None
    batchId: Optional[str] = None           # generated when omitted
    payload: Dict[str, Any]                 # CollectionPayload fields
    metadata: Optional[Dict[str, Any]] = None


class AppendEventRequest(BaseModel):
    batchId: str = Field(..., min_length=1)
    eventType: EventType
    participant: str = Field(..., min_length=1)
    organization: Optional[str] = None
    parentEventId: Optional[str] = None     # defaults to the batch's latest event
    payload: Dict[str, Any]
    metadata: Optional[Dict[str, Any]] = None


class DecodeRequest(BaseModel):
    text: str


# ==========================================================
# HELPERS
# ==========================================================
def get_ctx(request: Request) -> LedgerContext:
    return request.app.state.ledger_context


def ledger_error_response(err: LedgerError) -> JSONResponse:
    return JSONResponse(status_code=http_status(err), content={"ok": False, "error": err.to_dict()})


def _event_out(ev: Event) -> Dict[str, Any]:
    return ev.model_dump(mode="json", by_alias=True)


def _batch_out(batch: Batch, include_events: bool = True) -> Dict[str, Any]:
    out = batch.model_dump(mode="json", by_alias=True, exclude=None if include_events else {"events"})
    out["eventCount"] = len(batch.events)
    return out


def _draft(event_type: EventType, batch_id: str, participant: str, organization, parent, payload) -> EventDraft:
    body = dict(payload)
    body.setdefault("kind", event_type.value)
    try:
        return EventDraft(
            batchId=batch_id,
            eventType=event_type,
            participant=participant,
            organization=organization,
            parentEventId=parent,
            payload=body,
        )
    except ValidationError as e:
        raise PayloadValidationError(str(e), batchId=batch_id, eventType=event_type.value) from e


def _accepted(ctx: LedgerContext, ev: Event) -> JSONResponse:
    batch = ctx.ledger.get_batch(ev.batchId)
    code = ctx.codec.encode(ev.batchId, ev.eventId, ev.eventType.value)
    return JSONResponse(
        status_code=201,
        content={
            "ok": True,
            "event": _event_out(ev),
            "batch": _batch_out(batch, include_events=False),
            "tracking": code.to_dict(),
        },
    )


# ==========================================================
# ROUTES
# ==========================================================
@router.get("/_health")
def health(ctx: LedgerContext = Depends(get_ctx)):
    return {"ok": True, "service": "herbtrace-ledger", "batches": len(ctx.ledger.list_batches())}


@router.get("/batches")
def list_batches(ctx: LedgerContext = Depends(get_ctx)):
    batches = sorted(ctx.ledger.list_batches(), key=lambda b: b.updatedAt, reverse=True)
    return {"ok": True, "items": [_batch_out(b, include_events=False) for b in batches]}


@router.post("/batches")
def create_batch(req: CreateBatchRequest, ctx: LedgerContext = Depends(get_ctx)):
    batch_id = req.batchId or ctx.ledger.ids.new_batch_id()
    draft = _draft(EventType.COLLECTION, batch_id, req.participant, req.organization, None, req.payload)
    ev = ctx.ledger.append(draft, metadata=req.metadata)
    return _accepted(ctx, ev)


@router.get("/batches/{batch_id}")
def get_batch(batch_id: str, ctx: LedgerContext = Depends(get_ctx)):
    batch = ctx.ledger.get_batch(batch_id)
    if batch is None:
        raise NotFoundError(f"Batch not found: {batch_id}", batchId=batch_id)
    return {"ok": True, "batch": _batch_out(batch)}


@router.get("/batches/{batch_id}/can-append")
def can_append(batch_id: str, eventType: EventType = Query(...), ctx: LedgerContext = Depends(get_ctx)):
    decision = ctx.ledger.can_append(batch_id, eventType)
    return {"ok": True, "decision": decision.to_dict()}


@router.get("/batches/{batch_id}/traceability")
def traceability(batch_id: str, ctx: LedgerContext = Depends(get_ctx)):
    vm = ctx.traceability.build_traceability(batch_id)
    return {"ok": True, "traceability": vm.to_dict()}


@router.post("/events")
def append_event(req: AppendEventRequest, ctx: LedgerContext = Depends(get_ctx)):
    parent = req.parentEventId
    if parent is None:
        batch = ctx.ledger.get_batch(req.batchId)
        if batch is not None and batch.events:
            parent = batch.events[-1].eventId
    draft = _draft(req.eventType, req.batchId, req.participant, req.organization, parent, req.payload)
    ev = ctx.ledger.append(draft, metadata=req.metadata)
    return _accepted(ctx, ev)


@router.get("/events/{event_id}")
def get_event(event_id: str, ctx: LedgerContext = Depends(get_ctx)):
    ev = ctx.ledger.get_event(event_id)
    if ev is None:
        raise NotFoundError(f"Event not found: {event_id}", eventId=event_id)
    return {"ok": True, "event": _event_out(ev)}


@router.get("/resolve/{token}")
def resolve(token: str, ctx: LedgerContext = Depends(get_ctx)):
    return {"ok": True, **ctx.resolver.resolve(token).to_dict()}


@router.post("/tracking/decode")
def decode_tracking(req: DecodeRequest, ctx: LedgerContext = Depends(get_ctx)):
    decoded = ctx.codec.decode(req.text)
    return {"ok": True, "decoded": decoded.to_dict()}


@router.get("/tracking/{batch_id}/{event_id}/qr.png")
def tracking_qr(
    batch_id: str,
    event_id: str,
    printable: int = Query(0),
    ctx: LedgerContext = Depends(get_ctx),
):
    if printable:
        png = ctx.codec.render_printable(batch_id, event_id, label=batch_id)
    else:
        png = ctx.codec.encode(batch_id, event_id).png
    return Response(content=png, media_type="image/png")


@router.get("/audit")
def audit(limit: int = Query(100, ge=1, le=1000), ctx: LedgerContext = Depends(get_ctx)):
    entries = ctx.ledger.audit_trail()[:limit]
    return {"ok": True, "items": [a.model_dump(mode="json") for a in entries]}
