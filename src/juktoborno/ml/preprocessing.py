"""Image decoding and model-input normalization.

Every image source (upload, camera frame, canvas drawing) arrives as encoded
bytes or a decoded PIL image and goes through the same two steps:

1. :func:`decode_image` turns bytes into an upright RGB image.
2. :func:`normalize` stretches it to ``target_size x target_size`` and
   produces a planar ``(C, H, W)`` float32 tensor scaled to [0, 1].

The resize is a plain stretch with no aspect-preserving crop, and no mean/std
normalization is applied; both must match the transform the model was
trained with.
"""

from __future__ import annotations

import io
import logging
from typing import TYPE_CHECKING

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from juktoborno.errors import DecodeError, InvalidArgumentError

if TYPE_CHECKING:
    from numpy.typing import NDArray

logger = logging.getLogger(__name__)

LUMA_WEIGHTS: tuple[float, float, float] = (0.299, 0.587, 0.114)
SUPPORTED_CHANNELS: frozenset[int] = frozenset({1, 3})


def to_rgb(image: Image.Image) -> Image.Image:
    """Return ``image`` in RGB mode, compositing any transparency onto black.

    Fully transparent pixels become black, as on a blank canvas.
    """
    if image.has_transparency_data:
        rgba = image.convert("RGBA")
        canvas = Image.new("RGBA", rgba.size, (0, 0, 0, 255))
        return Image.alpha_composite(canvas, rgba).convert("RGB")
    return image if image.mode == "RGB" else image.convert("RGB")


def decode_image(image_bytes: bytes, max_pixels: int | None = None) -> Image.Image:
    """Decode raw image bytes into an upright RGB image.

    Args:
        image_bytes: Raw file bytes (any format Pillow can read).
        max_pixels: Reject images with more pixels than this.

    Raises:
        DecodeError: If the data is empty, corrupt, unsupported, has zero
            dimensions, or exceeds ``max_pixels``.
    """
    if not image_bytes:
        raise DecodeError("Empty image data")

    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if width == 0 or height == 0:
                raise DecodeError(f"Image has zero dimensions ({width}x{height})")
            if max_pixels is not None and width * height > max_pixels:
                raise DecodeError(f"Image too large: {width}x{height} exceeds {max_pixels} pixels")
            img.load()
            upright = ImageOps.exif_transpose(img)
            return to_rgb(upright)
    except DecodeError:
        raise
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, EOFError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc


def normalize(image: Image.Image, target_size: int, channels: int) -> NDArray[np.float32]:
    """Convert an image into a read-only ``(channels, target_size, target_size)`` tensor.

    ``channels == 1`` collapses RGB with the luminosity weights
    ``0.299R + 0.587G + 0.114B``; ``channels == 3`` keeps R, G and B as
    separate planes. All samples are divided by 255.0.

    Raises:
        InvalidArgumentError: If ``target_size`` is not positive or
            ``channels`` is not 1 or 3.
        DecodeError: If the image has zero dimensions.
    """
    if target_size <= 0:
        raise InvalidArgumentError(f"target_size must be positive, got {target_size}")
    if channels not in SUPPORTED_CHANNELS:
        raise InvalidArgumentError(f"channels must be 1 or 3, got {channels}")
    if image.width == 0 or image.height == 0:
        raise DecodeError(f"Image has zero dimensions ({image.width}x{image.height})")

    rgb = to_rgb(image)
    resized = rgb.resize((target_size, target_size), Image.Resampling.BILINEAR)
    pixels = np.asarray(resized, dtype=np.float32)

    if channels == 1:
        r, g, b = pixels[..., 0], pixels[..., 1], pixels[..., 2]
        luma = LUMA_WEIGHTS[0] * r + LUMA_WEIGHTS[1] * g + LUMA_WEIGHTS[2] * b
        tensor = (luma / 255.0)[np.newaxis, ...]
    else:
        tensor = np.transpose(pixels, (2, 0, 1)) / 255.0

    tensor = np.ascontiguousarray(np.clip(tensor, 0.0, 1.0), dtype=np.float32)
    tensor.flags.writeable = False
    return tensor
