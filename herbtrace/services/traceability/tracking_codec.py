# herbtrace/services/traceability/tracking_codec.py
"""
Scannable tracking codes.

Printed codes carry a URL:
    current : <origin>/track/<batchId>/<eventId>
    legacy  : <origin>/track/<eventId>
Both segments are percent-encoded. Both shapes must keep decoding forever,
because labels already in circulation can't be reprinted.
"""

from __future__ import annotations

import json
import logging
import time
from io import BytesIO
from typing import Callable, List, Optional
from urllib.parse import quote, unquote

import qrcode
from PIL import Image, ImageDraw, ImageFont

from herbtrace.errors import InvalidFormatError, NotFoundError
from herbtrace.models.traceability.tracking_models import (
    SOURCE_DIRECT_ID,
    SOURCE_LEGACY_URL,
    SOURCE_STRUCTURED,
    SOURCE_TRACKING_URL,
    DecodedTracking,
    TrackingCode,
)
from herbtrace.services.ledger.resolver import Resolver
from herbtrace.services.traceability.integrity import content_tag

log = logging.getLogger(__name__)

TRACK_MARKER = "/track/"
ENVELOPE_VERSION = "1.0"


class TrackingCodec:

    def __init__(
        self,
        origin: str,
        resolver: Optional[Resolver] = None,
        fill_color: str = "#2D5A27",
        back_color: str = "#FFFFFF",
        clock: Optional[Callable[[], float]] = None,
    ):
        self.origin = origin.rstrip("/")
        self.resolver = resolver
        self.fill_color = fill_color
        self.back_color = back_color
        self._clock = clock or time.time

    # -------------------------
    # Encode
    # -------------------------
    def tracking_text(self, batch_id: str, event_id: str) -> str:
        return f"{self.origin}{TRACK_MARKER}{quote(batch_id, safe='')}/{quote(event_id, safe='')}"

    def encode(self, batch_id: str, event_id: str, event_type: Optional[str] = None) -> TrackingCode:
        if not batch_id or not event_id:
            raise InvalidFormatError("batchId and eventId are both required to encode a tracking code")

        url = self.tracking_text(batch_id, event_id)
        envelope = {
            "url": url,
            "batchId": batch_id,
            "eventId": event_id,
            "type": event_type,
            "timestamp": int(self._clock() * 1000),
            "version": ENVELOPE_VERSION,
        }
        png = self._render(
            url,
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            border=2,
            fill_color=self.fill_color,
            back_color=self.back_color,
        )
        log.debug("tracking code for %s/%s: %s", batch_id, event_id, url)
        return TrackingCode(
            tracking_text=url,
            integrity_tag=content_tag(envelope),
            png=png,
            envelope=envelope,
        )

    def render_printable(self, batch_id: str, event_id: str, label: Optional[str] = None) -> bytes:
        """Black-on-white label with a wider quiet zone and optional caption."""
        url = self.tracking_text(batch_id, event_id)
        qr_img = self._image(
            url,
            error_correction=qrcode.constants.ERROR_CORRECT_H,
            border=3,
            fill_color="black",
            back_color="white",
        )
        if label:
            qr_img = _with_caption(qr_img, label)
        return _png_bytes(qr_img)

    def _image(self, data: str, error_correction, border: int, fill_color: str, back_color: str):
        qr = qrcode.QRCode(
            version=None,
            error_correction=error_correction,
            box_size=10,
            border=border,
        )
        qr.add_data(data)
        qr.make(fit=True)
        return qr.make_image(fill_color=fill_color, back_color=back_color).convert("RGB")

    def _render(self, data: str, **kw) -> bytes:
        return _png_bytes(self._image(data, **kw))

    # -------------------------
    # Decode
    # -------------------------
    def decode(self, scanned_text: str) -> DecodedTracking:
        text = (scanned_text or "").strip()
        if not text:
            raise InvalidFormatError("Invalid QR code format - empty payload")

        if TRACK_MARKER in text:
            return self._decode_tracking_url(text)

        structured = _parse_structured(text)
        if structured is not None:
            event_id = str(structured.get("eventId") or "").strip()
            if not event_id:
                raise InvalidFormatError("Invalid QR code format - missing event ID")
            batch_id = str(structured.get("batchId") or "").strip() or None
            return DecodedTracking(event_id=event_id, batch_id=batch_id, source=SOURCE_STRUCTURED, raw=text)

        # bare id typed in or scanned from a plain label
        return DecodedTracking(
            event_id=text,
            batch_id=self._lookup_batch(text),
            source=SOURCE_DIRECT_ID,
            raw=text,
        )

    def _decode_tracking_url(self, text: str) -> DecodedTracking:
        parts = split_tracking_path(text)

        if len(parts) >= 2:
            batch_id, event_id = parts[0], parts[1]
            if not batch_id or not event_id:
                raise InvalidFormatError("Invalid QR code format - missing batchId or eventId")
            return DecodedTracking(event_id=event_id, batch_id=batch_id, source=SOURCE_TRACKING_URL, raw=text)

        if len(parts) == 1 and parts[0]:
            event_id = parts[0]
            batch_id = self._lookup_batch(event_id)
            if batch_id is None:
                raise InvalidFormatError(
                    f"Legacy QR detected, but unable to retrieve batchId for eventId: {event_id}. "
                    "Please use a new QR code with batchId.",
                    eventId=event_id,
                )
            return DecodedTracking(event_id=event_id, batch_id=batch_id, source=SOURCE_LEGACY_URL, raw=text)

        raise InvalidFormatError("Invalid QR code format - missing eventId")

    def _lookup_batch(self, token: str) -> Optional[str]:
        if self.resolver is None:
            return None
        try:
            return self.resolver.resolve_batch_id(token)
        except NotFoundError:
            return None


# -------------------------
# helpers
# -------------------------
def split_tracking_path(text: str) -> List[str]:
    """
    Percent-decoded segments after /track/ in a URL or raw request path.
    Query string, fragment and trailing slashes are ignored; a %2F inside a
    segment stays part of that segment.
    """
    path = text.split(TRACK_MARKER, 1)[1] if TRACK_MARKER in text else text
    path = path.split("#", 1)[0].split("?", 1)[0].strip("/")
    return [unquote(p) for p in path.split("/")] if path else []


def _parse_structured(text: str):
    if not text.startswith("{"):
        return None
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _png_bytes(img) -> bytes:
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _with_caption(qr_img, label: str):
    qr_width, qr_height = qr_img.size
    final_img = Image.new("RGB", (qr_width, qr_height + 50), "white")
    final_img.paste(qr_img, (0, 0))

    draw = ImageDraw.Draw(final_img)
    try:
        font = ImageFont.truetype("arial.ttf", 18)
    except OSError:
        font = ImageFont.load_default()

    bbox = draw.textbbox((0, 0), label, font=font)
    text_width = bbox[2] - bbox[0]
    x = max((qr_width - text_width) // 2, 0)
    draw.text((x, qr_height + 10), label, fill="black", font=font)
    return final_img
