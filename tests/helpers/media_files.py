from __future__ import annotations

import base64
from io import BytesIO
from pathlib import Path

from PIL import Image


def png_bytes(size: tuple[int, int] = (64, 64), color: tuple[int, int, int] = (200, 40, 40)) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def png_base64(size: tuple[int, int] = (64, 64)) -> str:
    return base64.b64encode(png_bytes(size)).decode("ascii")


def write_file(root: Path, relative: str, data: bytes) -> Path:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)
    return path


def webp_like_bytes(size_bytes: int) -> bytes:
    """RIFF/WEBP container header padded to ``size_bytes``; not decodable."""
    header = b"RIFF" + (size_bytes - 8).to_bytes(4, "little") + b"WEBPVP8 "
    return header + b"\x00" * (size_bytes - len(header))
