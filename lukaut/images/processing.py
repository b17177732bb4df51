"""Image sniffing and thumbnail generation with Pillow."""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, ImageOps, UnidentifiedImageError

from lukaut.errors import invalid

JPEG = "image/jpeg"
PNG = "image/png"

THUMBNAIL_SIZE = (200, 200)
THUMBNAIL_QUALITY = 85

_EXTENSIONS = {JPEG: ".jpg", PNG: ".png"}


@dataclass(slots=True)
class ProcessedImage:
    content_type: str
    width: int
    height: int
    thumbnail: bytes


def detect_content_type(data: bytes) -> str | None:
    """Identify JPEG or PNG from magic bytes; None for anything else."""
    if data[:3] == b"\xff\xd8\xff":
        return JPEG
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return PNG
    return None


def extension_for(content_type: str) -> str:
    return _EXTENSIONS.get(content_type, ".bin")


def process_image(data: bytes, content_type: str) -> ProcessedImage:
    """Read dimensions and render a JPEG thumbnail fitting in 200x200.

    Raises:
        LukautError(EINVALID): The bytes cannot be decoded as an image
    """
    try:
        with Image.open(BytesIO(data)) as img:
            img = ImageOps.exif_transpose(img)
            width, height = img.size

            thumb = img.convert("RGB")
            thumb.thumbnail(THUMBNAIL_SIZE)
            buffer = BytesIO()
            thumb.save(buffer, format="JPEG", quality=THUMBNAIL_QUALITY)
    except (UnidentifiedImageError, OSError) as exc:
        raise invalid("The file is not a valid image", op="images.process") from exc

    return ProcessedImage(
        content_type=content_type,
        width=width,
        height=height,
        thumbnail=buffer.getvalue(),
    )
