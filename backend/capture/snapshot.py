"""
Camera snapshot encoding.

Downscale to a fixed small resolution and compress to a low-quality JPEG.
CPU bound; callers run it off the event loop.
"""

from __future__ import annotations

import io

from PIL import Image

from constants import SNAPSHOT_HEIGHT, SNAPSHOT_JPEG_QUALITY, SNAPSHOT_WIDTH


def encode_snapshot(
    image: Image.Image,
    *,
    width: int = SNAPSHOT_WIDTH,
    height: int = SNAPSHOT_HEIGHT,
    quality: int = SNAPSHOT_JPEG_QUALITY,
) -> bytes:
    """
    Return JPEG bytes for `image` resized to width x height.

    Aspect ratio is not preserved; the remote model receives a fixed frame.
    """
    if image.mode != "RGB":
        image = image.convert("RGB")
    resized = image.resize((width, height), Image.Resampling.BILINEAR)

    buf = io.BytesIO()
    resized.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()
