from __future__ import annotations

import io
import logging
from dataclasses import dataclass

import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from ..errors import UnsupportedImageError

logger = logging.getLogger(__name__)

LANCZOS = Image.Resampling.LANCZOS

HEIC_MIME_TYPES = frozenset({"image/heic", "image/heif"})
HEIC_EXTENSIONS = (".heic", ".heif")


@dataclass(frozen=True, slots=True)
class ImagePolicy:
    """Geometry contract a backend model imposes on the uploaded image."""

    target_max_dimension: int
    square_crop: bool = False
    require_alpha: bool = False


def is_heic(mime_type: str | None, filename: str | None) -> bool:
    mime = (mime_type or "").lower().strip()
    name = (filename or "").lower().strip()
    return mime in HEIC_MIME_TYPES or name.endswith(HEIC_EXTENSIONS)


def _decode(raw: bytes) -> Image.Image:
    image = Image.open(io.BytesIO(raw))
    image.load()
    return image


def _target_mode(image: Image.Image, require_alpha: bool) -> str:
    if require_alpha:
        return "RGBA"
    if image.mode in {"RGBA", "LA", "PA"} or "transparency" in image.info:
        return "RGBA"
    return "RGB"


def _transform(image: Image.Image, policy: ImagePolicy) -> bytes:
    oriented = ImageOps.exif_transpose(image)
    converted = oriented.convert(_target_mode(oriented, policy.require_alpha))

    size = policy.target_max_dimension
    if policy.square_crop:
        converted = ImageOps.fit(converted, (size, size), method=LANCZOS, centering=(0.5, 0.5))
    else:
        converted.thumbnail((size, size), LANCZOS)

    with io.BytesIO() as buffer:
        converted.save(buffer, format="PNG")
        return buffer.getvalue()


def heic_to_png(raw: bytes) -> bytes:
    """Decode HEIC/HEIF bytes with libheif and re-encode them as PNG."""
    heif_file = pillow_heif.open_heif(io.BytesIO(raw), convert_hdr_to_8bit=True)
    image = heif_file.to_pillow()
    with io.BytesIO() as buffer:
        image.save(buffer, format="PNG")
        return buffer.getvalue()


def normalize_image(
    raw: bytes,
    mime_type: str | None,
    filename: str | None,
    policy: ImagePolicy,
) -> bytes:
    """
    Convert an uploaded image into the PNG buffer a backend model expects.

    The orientation tag is applied first. ``square_crop`` produces exactly
    ``target_max_dimension`` square pixels (cover + center crop); otherwise the
    image is shrunk to fit inside that box without upscaling.

    Raises
    ------
    UnsupportedImageError
        If the bytes cannot be decoded, including HEIC input libheif rejects.
    """
    if policy.target_max_dimension < 1:
        raise ValueError("target_max_dimension must be positive")

    try:
        image = _decode(raw)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        if not is_heic(mime_type, filename):
            raise UnsupportedImageError(f"Unsupported or corrupt image '{filename or 'upload'}': {exc}") from exc
        logger.info("Pillow could not decode %s; converting from HEIC", filename or "upload")
        try:
            converted = heic_to_png(raw)
            image = _decode(converted)
        except (UnidentifiedImageError, OSError, ValueError, RuntimeError) as heic_exc:
            raise UnsupportedImageError(
                f"Unable to convert HEIC image '{filename or 'upload'}': {heic_exc}"
            ) from heic_exc

    try:
        return _transform(image, policy)
    finally:
        image.close()
