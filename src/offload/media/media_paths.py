"""Mapping between absolute file paths, storage-relative paths and URLs."""

from __future__ import annotations

import mimetypes
import re
from pathlib import Path, PurePosixPath

_DATED_TAIL = re.compile(r"(\d{4}/\d{2}/[^/]+)$")
_UPLOADS_MARKER = "/uploads/"

EXTENSION_MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "avif": "image/avif",
    "heic": "image/heic",
    "heif": "image/heif",
    "tif": "image/tiff",
    "tiff": "image/tiff",
    "svg": "image/svg+xml",
}


def normalize_path(path: str | Path, root: Path, remaps: dict[str, str] | None = None) -> Path:
    """Return an absolute path under ``root`` for paths recorded elsewhere.

    Paths copied between environments keep their old absolute prefix; remaps
    are applied first, then the ``YYYY/MM/name.ext`` tail or the part after
    ``/uploads/`` is re-rooted.
    """
    raw = str(path).replace("\\", "/")
    for old, new in (remaps or {}).items():
        if raw.startswith(old):
            raw = new + raw[len(old):]
            break

    candidate = Path(raw)
    if not candidate.is_absolute():
        return root / raw.lstrip("/")

    resolved_root = root.resolve()
    try:
        candidate.resolve().relative_to(resolved_root)
        return candidate
    except ValueError:
        pass

    if candidate.exists():
        return candidate

    match = _DATED_TAIL.search(raw)
    if match:
        return root / match.group(1)
    if _UPLOADS_MARKER in raw:
        return root / raw.rsplit(_UPLOADS_MARKER, 1)[1]
    return candidate


def relative_path(path: str | Path, root: Path) -> str:
    """Storage-relative POSIX path (the remote object key)."""
    candidate = Path(path)
    if not candidate.is_absolute():
        return PurePosixPath(str(path).replace("\\", "/").lstrip("/")).as_posix()
    try:
        return candidate.resolve().relative_to(root.resolve()).as_posix()
    except ValueError:
        return candidate.name


def extension_of(path: str | Path) -> str:
    return PurePosixPath(str(path)).suffix.lstrip(".").lower()


def guess_mime_type(path: str | Path) -> str:
    ext = extension_of(path)
    if ext in EXTENSION_MIME_TYPES:
        return EXTENSION_MIME_TYPES[ext]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or "application/octet-stream"
