"""Profile picture recompression."""

from __future__ import annotations

import io

from PIL import Image, UnidentifiedImageError

from devreview.core.errors import ArtifactTooLarge, ValidationError


def recompress_picture(
    data: bytes,
    *,
    max_dimension: int = 1080,
    quality: int = 80,
    max_bytes: int = 1024 * 1024,
) -> bytes:
    """Downscale to fit ``max_dimension`` and re-encode as JPEG.

    Raises ArtifactTooLarge if the result is still above ``max_bytes``.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            image.thumbnail((max_dimension, max_dimension))
            if image.mode not in ("RGB", "L"):
                image = image.convert("RGB")
            out = io.BytesIO()
            image.save(out, format="JPEG", quality=quality, optimize=True)
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError("Profile picture is not a readable image") from exc

    result = out.getvalue()
    if len(result) > max_bytes:
        raise ArtifactTooLarge(size=len(result), limit=max_bytes)
    return result
