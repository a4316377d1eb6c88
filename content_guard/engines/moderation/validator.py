"""
Image Validator

Cheap checks that run before any pixel data is decoded:
1. Declared upload size against the configured cap
2. Container format against the allow-list (JPEG, PNG, WebP, GIF)
3. Pixel dimensions against the anti-exhaustion bound

Rejections are returned as StageResult failures, never raised.
"""

import io
import logging
from typing import Optional

from PIL import Image

from content_guard.engines.moderation.schemas import (
    FailureKind,
    ImageFormat,
    ImageMetadata,
    StageResult,
)

logger = logging.getLogger(__name__)

ALLOWED_FORMATS = frozenset(fmt.value for fmt in ImageFormat)

# Pillow reports multi-picture camera JPEGs as MPO
FORMAT_ALIASES = {"mpo": "jpeg"}

# Errors Pillow raises for data it cannot identify or parse
DECODE_ERRORS = (OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError)


def check_declared_size(file_size: Optional[int], max_size_bytes: int) -> StageResult[int]:
    """Reject an upload whose declared size exceeds the cap.

    An undeclared (None or 0) size passes this check; a negative one is
    rejected.
    """
    if file_size is not None and file_size < 0:
        return StageResult.fail(
            FailureKind.INPUT_REJECTED,
            f"Invalid declared file size ({file_size} bytes)",
        )
    if file_size and file_size > max_size_bytes:
        return StageResult.fail(
            FailureKind.INPUT_REJECTED,
            f"File size exceeds limit ({file_size} > {max_size_bytes} bytes)",
        )
    return StageResult.success(file_size or 0)


def read_metadata(image_bytes: bytes) -> StageResult[ImageMetadata]:
    """Decode format and dimensions from the container header only."""
    if not image_bytes:
        return StageResult.fail(FailureKind.INPUT_REJECTED, "Invalid image format: empty upload")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            fmt = (img.format or "").lower() or None
        fmt = FORMAT_ALIASES.get(fmt, fmt)
    except DECODE_ERRORS as e:
        logger.warning(f"[NSFW] Could not read image metadata: {e}")
        return StageResult.fail(
            FailureKind.INPUT_REJECTED,
            f"Invalid image format: unrecognized image data ({type(e).__name__})",
        )

    return StageResult.success(ImageMetadata(format=fmt, width=width, height=height))


def check_metadata(metadata: ImageMetadata, max_dimension: int) -> StageResult[ImageMetadata]:
    if metadata.format not in ALLOWED_FORMATS:
        return StageResult.fail(
            FailureKind.INPUT_REJECTED,
            f"Invalid image format: {metadata.format or 'unknown'}",
            metadata=metadata,
        )

    if not metadata.has_dimensions:
        return StageResult.fail(
            FailureKind.INPUT_REJECTED,
            "Invalid image dimensions",
            metadata=metadata,
        )

    if metadata.width > max_dimension or metadata.height > max_dimension:
        logger.warning(
            f"[NSFW] Image exceeds max dimensions: {metadata.width}x{metadata.height} "
            f"(max {max_dimension})"
        )
        return StageResult.fail(
            FailureKind.INPUT_REJECTED,
            f"Image dimensions exceed limit ({metadata.width}x{metadata.height} > {max_dimension})",
            metadata=metadata,
        )

    return StageResult.success(metadata)


def validate_image(
    image_bytes: bytes,
    file_size: Optional[int],
    max_size_bytes: int,
    max_dimension: int,
) -> StageResult[ImageMetadata]:
    """Run all validator checks in order, stopping at the first rejection."""
    size_check = check_declared_size(file_size, max_size_bytes)
    if not size_check.ok:
        return StageResult(failure=size_check.failure)

    decoded = read_metadata(image_bytes)
    if not decoded.ok:
        return decoded

    return check_metadata(decoded.value, max_dimension)
