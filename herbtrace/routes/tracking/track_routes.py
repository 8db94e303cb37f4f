# herbtrace/routes/tracking/track_routes.py

import logging

from flask import Blueprint, current_app, jsonify, request

from herbtrace.bootstrap import get_context
from herbtrace.errors import LedgerError, NotFoundError, http_status
from herbtrace.services.traceability.tracking_codec import TRACK_MARKER, split_tracking_path

log = logging.getLogger(__name__)

track_bp = Blueprint("track_bp", __name__, url_prefix="/track")


@track_bp.errorhandler(LedgerError)
def _ledger_error(err: LedgerError):
    return jsonify({"ok": False, "error": err.to_dict()}), http_status(err)


def _label_segments(rest):
    """
    Segments of the scanned path. Werkzeug decodes %2F before routing, so the
    raw request URI (RAW_URI / REQUEST_URI, set by gunicorn, uWSGI and the
    Werkzeug server) is split instead when the server provides it.
    """
    raw = request.environ.get("RAW_URI") or request.environ.get("REQUEST_URI")
    if raw and TRACK_MARKER in raw:
        return split_tracking_path(raw)
    return [p for p in rest.split("/") if p]


@track_bp.get("/<path:rest>")
def track(rest):
    segments = _label_segments(rest)
    if len(segments) == 1:
        return _legacy_label(segments[0])
    if len(segments) == 2:
        return _current_label(*segments)
    raise NotFoundError(f"Unknown tracking path: {rest}")


# ---------------------------------------------------
# CURRENT LABELS: /track/<batchId>/<eventId>
# ---------------------------------------------------
def _current_label(batch_id, event_id):
    """
    What a scanned label opens. The batch id on the label is authoritative;
    the event id only says which step the label was printed for.
    """
    ctx = get_context(current_app)
    vm = ctx.traceability.build_traceability(batch_id)

    if not any(step.eventId == event_id for step in vm.journey):
        # label printed for another batch's event, or a mistyped URL
        log.info("track: event %s not in batch %s", event_id, batch_id)
        return jsonify({
            "ok": False,
            "error": {"kind": "not_found", "reason": f"Event {event_id} is not part of batch {batch_id}"},
        }), 404

    return jsonify({"ok": True, "scannedEventId": event_id, "traceability": vm.to_dict()})


# ---------------------------------------------------
# LEGACY LABELS: /track/<eventId>
# ---------------------------------------------------
def _legacy_label(token):
    ctx = get_context(current_app)
    vm = ctx.traceability.build_traceability(token)
    return jsonify({"ok": True, "legacy": True, "traceability": vm.to_dict()})
