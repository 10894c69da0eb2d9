"""Recognition of derived size variants that sit next to a primary file."""

from __future__ import annotations

import re
from pathlib import Path

_DIMENSIONS = re.compile(r"^\d+x\d+$")
_EDITED = re.compile(r"^e\d+$")
_PRIMARY_SUFFIXES = ("-scaled", "-rotated")


def base_stem(stem: str) -> str:
    """Strip ``-scaled``/``-rotated`` so variants of big-image copies still match."""
    for suffix in _PRIMARY_SUFFIXES:
        if stem.endswith(suffix):
            return stem[: -len(suffix)]
    return stem


def variant_kind(candidate_stem: str, primary_stem: str) -> str | None:
    """Classify ``candidate_stem`` as a variant of ``primary_stem``.

    Returns ``dimensions``, ``scaled``, ``rotated``, ``edited`` or ``suffix``;
    ``None`` when the name does not derive from the primary file.
    """
    stem = base_stem(primary_stem)
    if candidate_stem == primary_stem or not candidate_stem.startswith(f"{stem}-"):
        return None
    suffix = candidate_stem[len(stem) + 1 :]
    if not suffix:
        return None
    head = suffix.split("-", 1)[0]
    if _DIMENSIONS.match(suffix):
        return "dimensions"
    if suffix == "scaled":
        return "scaled"
    if suffix == "rotated":
        return "rotated"
    if _EDITED.match(head):
        return "edited"
    return "suffix"


def discover_variants(primary: Path) -> list[Path]:
    """Scan the primary file's directory for variants that exist on disk."""
    directory = primary.parent
    if not directory.is_dir():
        return []
    ext = primary.suffix.lower()
    found = []
    for candidate in directory.iterdir():
        if not candidate.is_file() or candidate.name == primary.name:
            continue
        if candidate.suffix.lower() != ext:
            continue
        if variant_kind(candidate.stem, primary.stem) is not None:
            found.append(candidate)
    return sorted(found)
