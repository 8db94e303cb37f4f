# herbtrace/qr_utils.py
from typing import Optional, Union

import cv2
import numpy as np

from herbtrace.errors import InvalidFormatError


def read_qr_text(image: Union[bytes, str]) -> str:
    """
    Pull the text out of a QR image (raw bytes from an upload, or a file path).
    Raises InvalidFormatError if nothing readable is found.
    """
    if isinstance(image, (bytes, bytearray)):
        buf = np.frombuffer(bytes(image), dtype=np.uint8)
        img = cv2.imdecode(buf, cv2.IMREAD_COLOR) if buf.size else None
    else:
        img = cv2.imread(image)

    if img is None:
        raise InvalidFormatError("Could not read image")

    data = _detect(img)
    if not data:
        raise InvalidFormatError("No QR code found in image")
    return data


def _detect(img) -> Optional[str]:
    detector = cv2.QRCodeDetector()
    data, _points, _ = detector.detectAndDecode(img)
    if data:
        return data
    # small or low-contrast labels: try again on an upscaled grayscale copy
    gray = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    gray = cv2.resize(gray, None, fx=2, fy=2, interpolation=cv2.INTER_NEAREST)
    data, _points, _ = detector.detectAndDecode(gray)
    return data or None
