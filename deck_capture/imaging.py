from __future__ import annotations

import base64
import binascii
import io

from PIL import Image, UnidentifiedImageError


def frame_size(image_data: str | bytes | None) -> tuple[int, int] | None:
    """Return (width, height) of a base64 frame, or None when it cannot be decoded."""
    if not image_data:
        return None
    if isinstance(image_data, str) and image_data.startswith("data:"):
        image_data = image_data.split(",", 1)[-1]
    try:
        raw = base64.b64decode(image_data, validate=False)
    except (binascii.Error, ValueError):
        return None
    try:
        with Image.open(io.BytesIO(raw)) as img:
            return int(img.width), int(img.height)
    except (UnidentifiedImageError, OSError):
        return None


__all__ = ["frame_size"]
