from __future__ import annotations

from pathlib import Path

import pytest

from src.offload.media.media_paths import guess_mime_type, normalize_path, relative_path
from src.offload.media.media_variants import base_stem, variant_kind


@pytest.mark.parametrize(
    ("candidate", "expected"),
    [
        ("photo-300x200", "dimensions"),
        ("photo-scaled", "scaled"),
        ("photo-rotated", "rotated"),
        ("photo-e1699999999", "edited"),
        ("photo-e1699999999-300x200", "edited"),
        ("photo-custom", "suffix"),
        ("photo", None),
        ("photograph-300x200", None),
        ("other-300x200", None),
    ],
)
def test_variant_kind_classifies_candidates(candidate: str, expected: str | None) -> None:
    assert variant_kind(candidate, "photo") == expected


def test_variants_of_scaled_primary_match_the_base_name() -> None:
    assert base_stem("photo-scaled") == "photo"
    assert variant_kind("photo-1024x768", "photo-scaled") == "dimensions"
    assert variant_kind("photo-scaled", "photo-scaled") is None


def test_normalize_applies_remaps_before_rerooting(tmp_path) -> None:
    root = tmp_path / "uploads"
    remaps = {"/mnt/legacy/": "/srv/site/uploads/"}

    assert normalize_path("/mnt/legacy/misc/x.jpg", root, remaps) == root / "misc/x.jpg"
    assert normalize_path("/mnt/legacy/misc/x.jpg", root) == Path("/mnt/legacy/misc/x.jpg")
    assert normalize_path("2020/05/x.jpg", root) == root / "2020/05/x.jpg"
    assert normalize_path("/var/www/uploads/2019/12/y.png", root) == root / "2019/12/y.png"


def test_relative_path_and_mime_guessing(tmp_path) -> None:
    root = tmp_path / "uploads"

    assert relative_path(root / "2020/05/x.jpg", root) == "2020/05/x.jpg"
    assert relative_path("2020/05/x.jpg", root) == "2020/05/x.jpg"
    assert guess_mime_type("a.JPG") == "image/jpeg"
    assert guess_mime_type("a.svg") == "image/svg+xml"
