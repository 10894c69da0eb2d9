from __future__ import annotations

from PIL import Image

from src.offload.media.image_sizes import SizeSpec, critical_sizes, generate_size


def make_image(path, size) -> None:
    Image.new("RGB", size, (10, 120, 200)).save(path, format="PNG")


def test_critical_sizes_optionally_include_commerce_sizes() -> None:
    base = [spec.name for spec in critical_sizes(False)]
    extended = [spec.name for spec in critical_sizes(True)]

    assert base == ["thumbnail", "medium", "medium_large", "large"]
    assert "woocommerce_thumbnail" in extended
    assert extended[:4] == base


def test_generate_crops_and_scales_without_upscaling(tmp_path) -> None:
    primary = tmp_path / "photo.png"
    make_image(primary, (800, 400))

    thumb = generate_size(primary, SizeSpec("thumbnail", 150, 150, crop=True))
    medium = generate_size(primary, SizeSpec("medium", 300, 300))
    large = generate_size(primary, SizeSpec("large", 1024, 1024))

    assert thumb is not None and thumb.name == "photo-150x150.png"
    assert medium is not None and medium.name == "photo-300x150.png"
    with Image.open(medium) as image:
        assert image.size == (300, 150)
    assert large is None


def test_undecodable_source_is_skipped(tmp_path) -> None:
    primary = tmp_path / "broken.webp"
    primary.write_bytes(b"RIFF0000WEBP" + b"\x00" * 100)

    assert generate_size(primary, SizeSpec("medium", 300, 300)) is None
    assert generate_size(tmp_path / "logo.svg", SizeSpec("medium", 300, 300)) is None
