"""
Image Preprocessing for the NSFW model

Turns a validated upload into the model's input tensor:
- cover fit to 224x224 (scale to fill, crop overflow from the center)
- exactly 3 channels (alpha dropped, palette/CMYK/grayscale converted to RGB)
- row-major, channel-interleaved samples
- each 8-bit sample v mapped to v / 127.5 - 1.0

The normalization matches the model's training-time preprocessing and must
not change.
"""

import io
import logging

import numpy as np
from PIL import Image, ImageOps

from content_guard.engines.moderation.schemas import (
    FailureKind,
    StageResult,
    TENSOR_CHANNELS,
    TENSOR_LENGTH,
    TENSOR_SIZE,
)
from content_guard.engines.moderation.validator import DECODE_ERRORS

logger = logging.getLogger(__name__)

RESAMPLE = Image.Resampling.LANCZOS

_MODES_WITH_ALPHA = ("RGBA", "LA", "PA", "RGBa", "La")


def to_rgb(img: Image.Image) -> Image.Image:
    """Convert any Pillow mode to 3-channel RGB, discarding transparency."""
    if img.mode == "RGB":
        return img
    if img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")
    if img.mode in _MODES_WITH_ALPHA:
        return img.convert("RGBA").convert("RGB")
    return img.convert("RGB")


def cover_fit(img: Image.Image, size: int = TENSOR_SIZE) -> Image.Image:
    """Scale to fill a size x size box, cropping the overflow symmetrically."""
    return ImageOps.fit(img, (size, size), method=RESAMPLE, centering=(0.5, 0.5))


def normalize_pixels(pixels: np.ndarray) -> np.ndarray:
    """Map uint8 samples in [0, 255] to float32 in [-1.0, 1.0]."""
    return pixels.astype(np.float32) / np.float32(127.5) - np.float32(1.0)


def preprocess_image(image_bytes: bytes, max_dimension: int) -> StageResult[np.ndarray]:
    """Decode, resize and normalize an upload into a flat float32 tensor.

    Args:
        image_bytes: Raw upload content
        max_dimension: Largest accepted width or height in pixels

    Returns:
        StageResult holding a 1-D array of length 224*224*3, or a
        preprocessing failure. Never raises for bad image data.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if not width or not height:
                return StageResult.fail(
                    FailureKind.PREPROCESSING_FAILED, "Image preprocessing failed: invalid image dimensions"
                )
            if width > max_dimension or height > max_dimension:
                logger.warning(f"[NSFW] Image exceeds max dimensions: {width}x{height}")
                return StageResult.fail(
                    FailureKind.PREPROCESSING_FAILED,
                    f"Image preprocessing failed: dimensions {width}x{height} exceed {max_dimension}",
                )

            # Animated formats contribute their first frame only
            img.seek(0)
            img.load()
            rgb = to_rgb(img)
            fitted = cover_fit(rgb)
    except DECODE_ERRORS as e:
        logger.error(f"[NSFW] Image preprocessing failed: {e}")
        return StageResult.fail(FailureKind.PREPROCESSING_FAILED, f"Image preprocessing failed: {e}")

    pixels = np.asarray(fitted, dtype=np.uint8)
    if pixels.shape != (TENSOR_SIZE, TENSOR_SIZE, TENSOR_CHANNELS):
        return StageResult.fail(
            FailureKind.PREPROCESSING_FAILED,
            f"Image preprocessing failed: unexpected pixel shape {pixels.shape}",
        )

    tensor = normalize_pixels(pixels).reshape(TENSOR_LENGTH)
    return StageResult.success(tensor)
