"""Decode and sanity-check image payloads returned by the optimization API."""

from __future__ import annotations

import base64
import binascii
import logging
import re

from ..exceptions import InvalidImageDataError

logger = logging.getLogger(__name__)

_DATA_URL_PREFIX = re.compile(r"^data:image/[A-Za-z0-9.+-]+;base64,")

JPEG_SOI = b"\xff\xd8"
PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
MIN_BYTES = 50
MIN_BYTES_ISOBMFF = 20
ISOBMFF_FORMATS = frozenset({"avif", "heif", "heic"})


def to_data_url(data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(data).decode('ascii')}"


def decode_image_payload(payload: str) -> bytes:
    """Strip an optional ``data:`` prefix and strictly decode base64."""
    cleaned = _DATA_URL_PREFIX.sub("", payload.strip())
    cleaned = re.sub(r"\s+", "", cleaned)
    if not cleaned:
        raise InvalidImageDataError("empty image payload")
    try:
        return base64.b64decode(cleaned, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidImageDataError(f"invalid base64 payload: {exc}") from exc


def validate_image_bytes(data: bytes, target_format: str) -> None:
    """Raise :class:`InvalidImageDataError` when bytes cannot be the target format.

    AVIF/HEIF payloads are legitimately tiny and their ``ftyp`` box varies
    between encoders, so only a size floor is enforced for them.
    """
    fmt = target_format.lower()
    if fmt in ISOBMFF_FORMATS:
        if len(data) < MIN_BYTES_ISOBMFF:
            raise InvalidImageDataError(f"{fmt} payload too small ({len(data)} bytes)")
        if data[4:8] != b"ftyp":
            logger.warning("image.validation.ftyp_missing", extra={"format": fmt, "bytes": len(data)})
        return

    if len(data) < MIN_BYTES:
        raise InvalidImageDataError(f"{fmt} payload too small ({len(data)} bytes)")
    if fmt in {"jpeg", "jpg"} and not data.startswith(JPEG_SOI):
        raise InvalidImageDataError("jpeg payload missing SOI marker")
    if fmt == "png" and not data.startswith(PNG_SIGNATURE):
        raise InvalidImageDataError("png payload missing signature")
    if fmt == "webp" and (data[:4] != b"RIFF" or data[8:12] != b"WEBP"):
        logger.warning("image.validation.webp_markers_missing", extra={"bytes": len(data)})
