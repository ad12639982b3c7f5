"""Contrast, sharpening and grayscale conversion for document images.

Color carries no signal for text recognition, so every enhancement here
returns a single-channel image.
"""

import cv2
import numpy as np

from pharmadoc.utils.logger import get_logger

logger = get_logger(__name__)


def to_gray(image: np.ndarray) -> np.ndarray:
    """Convert an image to grayscale if it has color channels.

    Args:
        image: Input image (BGR, BGRA or grayscale).

    Returns:
        Grayscale image.
    """
    if len(image.shape) == 3:
        if image.shape[2] == 4:
            return cv2.cvtColor(image, cv2.COLOR_BGRA2GRAY)
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


def normalize_contrast(image: np.ndarray) -> np.ndarray:
    """Stretch pixel intensities to the full 0-255 range.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Contrast-normalized grayscale image.
    """
    gray = to_gray(image)
    result = cv2.normalize(gray, None, 0, 255, cv2.NORM_MINMAX)
    logger.debug(
        "Normalized contrast: range %d-%d -> %d-%d",
        int(gray.min()),
        int(gray.max()),
        int(result.min()),
        int(result.max()),
    )
    return result


def sharpen(image: np.ndarray, sigma: float = 1.0, amount: float = 1.0) -> np.ndarray:
    """Sharpen text edges with an unsharp mask.

    Args:
        image: Input image (BGR or grayscale).
        sigma: Gaussian sigma of the blur that is subtracted.
        amount: Strength of the sharpening.

    Returns:
        Sharpened grayscale image.
    """
    gray = to_gray(image)
    blurred = cv2.GaussianBlur(gray, (0, 0), sigma)
    result = cv2.addWeighted(gray, 1.0 + amount, blurred, -amount, 0)
    logger.debug("Applied unsharp mask (sigma=%.1f, amount=%.1f)", sigma, amount)
    return result


def resize_to_bounds(
    image: np.ndarray,
    max_dimension: int = 3000,
    min_dimension: int = 800,
    upscale_target: int = 1200,
) -> np.ndarray:
    """Bound image size for recognition while preserving aspect ratio.

    Images with either side above ``max_dimension`` are shrunk to fit inside
    it. Images with both sides below ``min_dimension`` are enlarged to fit
    inside ``upscale_target``. Anything else is returned unchanged.

    Args:
        image: Input image.
        max_dimension: Largest allowed side in pixels.
        min_dimension: Sides below this on both axes trigger upscaling.
        upscale_target: Bounding box side used when upscaling.

    Returns:
        Resized (or original) image.
    """
    h, w = image.shape[:2]

    if w > max_dimension or h > max_dimension:
        scale = min(max_dimension / w, max_dimension / h)
        interpolation = cv2.INTER_AREA
    elif w < min_dimension and h < min_dimension:
        scale = min(upscale_target / w, upscale_target / h)
        interpolation = cv2.INTER_CUBIC
    else:
        return image

    new_size = (max(1, round(w * scale)), max(1, round(h * scale)))
    logger.info("Resizing image from %dx%d to %dx%d", w, h, *new_size)
    return cv2.resize(image, new_size, interpolation=interpolation)
