# herbtrace/routes/qr/qr_routes.py

from io import BytesIO

from flask import Blueprint, current_app, jsonify, request, send_file

from herbtrace.bootstrap import get_context
from herbtrace.errors import InvalidFormatError, LedgerError, http_status
from herbtrace.qr_utils import read_qr_text

qr_bp = Blueprint("qr_bp", __name__, url_prefix="/qr")


@qr_bp.errorhandler(LedgerError)
def _ledger_error(err: LedgerError):
    return jsonify({"ok": False, "error": err.to_dict()}), http_status(err)


# ---------------------------------------------------
# QR IMAGE FOR A LABEL
# ---------------------------------------------------
@qr_bp.get("/<batch_id>/<event_id>.png")
def qr_png(batch_id, event_id):
    """
    ?printable=1 -> black on white with the batch id printed underneath.
    """
    ctx = get_context(current_app)
    if request.args.get("printable") == "1":
        png = ctx.codec.render_printable(batch_id, event_id, label=batch_id)
    else:
        png = ctx.codec.encode(batch_id, event_id).png

    return send_file(BytesIO(png), mimetype="image/png", download_name=f"{event_id}.png")


# ---------------------------------------------------
# DECODE SCANNED TEXT OR AN UPLOADED PHOTO
# ---------------------------------------------------
@qr_bp.post("/decode")
def decode_qr():
    ctx = get_context(current_app)

    upload = request.files.get("image")
    if upload is not None:
        text = read_qr_text(upload.read())
    else:
        data = request.get_json(silent=True) or {}
        text = data.get("text") or request.form.get("text") or ""

    if not text.strip():
        raise InvalidFormatError("text or image is required")

    decoded = ctx.codec.decode(text)
    return jsonify({"ok": True, "decoded": decoded.to_dict()})
