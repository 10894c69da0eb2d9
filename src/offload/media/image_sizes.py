"""Generation of conventional size variants with Pillow."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SizeSpec:
    name: str
    width: int
    height: int
    crop: bool = False


CRITICAL_SIZES: tuple[SizeSpec, ...] = (
    SizeSpec("thumbnail", 150, 150, crop=True),
    SizeSpec("medium", 300, 300),
    SizeSpec("medium_large", 768, 0),
    SizeSpec("large", 1024, 1024),
)

COMMERCE_SIZES: tuple[SizeSpec, ...] = (
    SizeSpec("woocommerce_thumbnail", 300, 300, crop=True),
    SizeSpec("woocommerce_single", 600, 600),
    SizeSpec("woocommerce_gallery_thumbnail", 100, 100, crop=True),
    SizeSpec("shop_single", 600, 600),
    SizeSpec("shop_thumbnail", 300, 300, crop=True),
    SizeSpec("shop_catalog", 300, 300, crop=True),
)

# Pillow cannot rasterize vector images.
_UNSUPPORTED_SUFFIXES = frozenset({".svg"})


def critical_sizes(include_commerce: bool) -> list[SizeSpec]:
    sizes = list(CRITICAL_SIZES)
    if include_commerce:
        sizes.extend(COMMERCE_SIZES)
    return sizes


def _target_dimensions(width: int, height: int, spec: SizeSpec) -> tuple[int, int] | None:
    if spec.crop:
        if width < spec.width or height < spec.height:
            return None
        return spec.width, spec.height
    max_w = spec.width or width
    max_h = spec.height or height
    if width <= max_w and height <= max_h:
        return None
    ratio = min(max_w / width, max_h / height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def variant_path(primary: Path, width: int, height: int) -> Path:
    return primary.with_name(f"{primary.stem}-{width}x{height}{primary.suffix}")


def generate_size(primary: Path, spec: SizeSpec) -> Path | None:
    """Write the ``spec`` variant next to ``primary``.

    Returns the variant path, or ``None`` when the source is too small for
    the size (no upscaling) or cannot be decoded.
    """
    if primary.suffix.lower() in _UNSUPPORTED_SUFFIXES:
        return None
    try:
        with Image.open(primary) as image:
            target = _target_dimensions(image.width, image.height, spec)
            if target is None:
                return None
            destination = variant_path(primary, *target)
            if destination.exists():
                return destination
            if spec.crop:
                resized = ImageOps.fit(image, target, method=Image.Resampling.LANCZOS)
            else:
                resized = image.resize(target, Image.Resampling.LANCZOS)
            resized.save(destination, format=image.format)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        logger.warning(
            "image_sizes.generate.failed",
            extra={"path": str(primary), "size": spec.name, "error": str(exc)},
        )
        return None
    return destination
