import io
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional, Tuple

import piexif
from PIL import Image, ImageFile

logger = logging.getLogger(__name__)
ImageFile.LOAD_TRUNCATED_IMAGES = True


def compress_image(
    content: bytes,
    max_dimension: int = 1280,
    quality: int = 80,
    threshold_bytes: int = 200 * 1024,
) -> Tuple[bytes, bool]:
    """
    Shrink a photo for upload while keeping its EXIF block.

    Returns (bytes, compressed). The original is returned untouched when it is
    already small, cannot be decoded, or would not get any smaller.
    """
    if len(content) < threshold_bytes:
        return content, False

    try:
        with Image.open(io.BytesIO(content)) as img:
            exif_bytes = img.info.get("exif")
            # Convert to RGB to handle RGBA/P images
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.thumbnail((max_dimension, max_dimension))

            out = io.BytesIO()
            save_kwargs = {"format": "JPEG", "quality": quality, "optimize": True}
            if exif_bytes:
                save_kwargs["exif"] = exif_bytes
            img.save(out, **save_kwargs)
    except (OSError, ValueError) as e:
        logger.warning(f"Image compression failed: {e}")
        return content, False

    compressed = out.getvalue()
    if len(compressed) >= len(content):
        return content, False

    logger.debug(f"Compressed {len(content) // 1024}KB -> {len(compressed) // 1024}KB")
    return compressed, True


def generate_thumbnail(image_data: bytes, size: Tuple[int, int] = (320, 320)) -> Optional[bytes]:
    """
    Returns: Thumbnail JPEG bytes or None.
    """
    try:
        # 1. Try the embedded EXIF thumbnail first
        exif_dict = piexif.load(image_data)
        if exif_dict and exif_dict.get("thumbnail"):
            logger.debug("Extracted embedded thumbnail via piexif.")
            return exif_dict["thumbnail"]
    except Exception as e:
        logger.debug(f"No embedded thumbnail: {e}")

    try:
        with Image.open(io.BytesIO(image_data)) as img:
            if img.mode not in ("RGB", "L"):
                img = img.convert("RGB")
            img.thumbnail(size)
            thumb_io = io.BytesIO()
            img.save(thumb_io, format="JPEG", quality=85, optimize=True)
            return thumb_io.getvalue()
    except Exception as e:
        logger.debug(f"Thumbnail generation failed: {e}")
    return None


def write_preview(image_data: bytes, size: Tuple[int, int], directory: Optional[str] = None) -> Optional[Path]:
    """Write a preview thumbnail to a temporary file. The caller owns the file."""
    thumb = generate_thumbnail(image_data, size)
    if thumb is None:
        return None
    if directory:
        Path(directory).mkdir(parents=True, exist_ok=True)
    fd, name = tempfile.mkstemp(prefix="preview_", suffix=".jpg", dir=directory or None)
    with os.fdopen(fd, "wb") as f:
        f.write(thumb)
    return Path(name)
