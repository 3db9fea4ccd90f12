"""Pillow helpers for attached image bytes."""

from __future__ import annotations

import io
import mimetypes

from PIL import Image, UnidentifiedImageError

DEFAULT_EXTENSIONS = {"image": "png", "audio": "mp3"}


def image_dimensions(data: bytes) -> tuple[int, int]:
    """Pixel size of encoded image bytes. Any decode failure raises OSError."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (Image.DecompressionBombError, ValueError) as exc:
        raise OSError(f"cannot decode image: {exc}") from exc


def classify_orientation(width: int, height: int) -> str:
    return "portrait" if height > width else "landscape"


def sniff_image_format(data: bytes) -> str | None:
    try:
        with Image.open(io.BytesIO(data)) as image:
            fmt = image.format
    except (UnidentifiedImageError, OSError):
        return None
    if not fmt:
        return None
    fmt = fmt.lower()
    return "jpg" if fmt == "jpeg" else fmt


def file_extension(kind: str, data: bytes, declared: str | None = None) -> str:
    if declared:
        return declared.lower().lstrip(".")
    if kind == "image":
        sniffed = sniff_image_format(data)
        if sniffed:
            return sniffed
    return DEFAULT_EXTENSIONS.get(kind, "bin")


def content_type(filename: str) -> str:
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or "application/octet-stream"
