"""
codec.py — Data-URL envelope for image payloads.

Payloads travel through the app as self-describing strings:

    data:image/png;base64,iVBORw0KGgo...

The Gemini request wants the mime type and the raw base-64 text separately,
so the envelope is stripped before a call and re-added on the way back.
"""

from __future__ import annotations

import base64
import binascii
import io
import mimetypes
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .errors import MalformedPayload, UnsupportedMediaKind

IMAGE_PREFIX = "image/"
_ENVELOPE_MARKER = ";base64,"


def is_image_mime(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and mime_type.lower().startswith(IMAGE_PREFIX)


def encode_to_data_payload(raw_bytes: bytes, mime_hint: Optional[str]) -> str:
    """Wrap raw image bytes in a data URL. Non-image mime types are rejected."""
    if not is_image_mime(mime_hint):
        raise UnsupportedMediaKind(mime_hint)
    b64 = base64.b64encode(raw_bytes).decode("ascii")
    return f"data:{mime_hint.lower()};base64,{b64}"


def _split(payload: str) -> Tuple[str, str]:
    if not payload.startswith("data:") or _ENVELOPE_MARKER not in payload:
        raise MalformedPayload("Payload is not a base64 data URL")
    header, data = payload.split(",", 1)
    return header[len("data:"):-len(";base64")], data


def strip_envelope(payload: str) -> str:
    """Return the bare base-64 text of a data-URL payload."""
    return _split(payload)[1]


def payload_mime(payload: str) -> str:
    return _split(payload)[0]


def decode_payload(payload: str) -> bytes:
    try:
        return base64.b64decode(strip_envelope(payload), validate=True)
    except binascii.Error as exc:
        raise MalformedPayload(f"Payload body is not valid base64: {exc}") from exc


def sniff_mime(raw_bytes: bytes) -> Optional[str]:
    """Detect the image mime type from the bytes themselves (Pillow)."""
    try:
        with Image.open(io.BytesIO(raw_bytes)) as img:
            return Image.MIME.get(img.format or "")
    except (UnidentifiedImageError, OSError):
        return None


def read_image_file(path: Path, mime_hint: Optional[str] = None) -> str:
    """
    Read a local file into a data-URL payload.

    The mime type comes from the hint, then the file extension, then the
    bytes. Anything that does not resolve to image/* raises
    UnsupportedMediaKind.
    """
    path = Path(path)
    raw = path.read_bytes()
    mime = mime_hint or mimetypes.guess_type(path.name)[0] or sniff_mime(raw)
    return encode_to_data_payload(raw, mime)
