# herbtrace/models/traceability/tracking_models.py
import base64
from dataclasses import dataclass
from typing import Any, Dict, Optional

# how a scanned text was understood
SOURCE_TRACKING_URL = "tracking_url"
SOURCE_LEGACY_URL = "legacy_tracking_url"
SOURCE_STRUCTURED = "structured"
SOURCE_DIRECT_ID = "direct_id"


@dataclass(frozen=True)
class TrackingCode:
    tracking_text: str
    integrity_tag: str
    png: bytes                  # QR image of tracking_text
    envelope: Dict[str, Any]    # what integrity_tag was computed over

    def data_url(self) -> str:
        return "data:image/png;base64," + base64.b64encode(self.png).decode("ascii")

    def to_dict(self, include_image: bool = True) -> Dict[str, Any]:
        out = {
            "trackingText": self.tracking_text,
            "integrityTag": self.integrity_tag,
        }
        if include_image:
            out["qrDataUrl"] = self.data_url()
        return out


@dataclass(frozen=True)
class DecodedTracking:
    event_id: str
    batch_id: Optional[str] = None
    source: str = SOURCE_TRACKING_URL
    raw: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "batchId": self.batch_id,
            "eventId": self.event_id,
            "source": self.source,
        }
