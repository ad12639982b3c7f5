"""Best-effort image normalization ahead of text recognition.

Resizes, normalizes contrast, sharpens and converts to grayscale, tracking
quality metrics before and after. Normalization is an optimization, not a
correctness requirement: on any failure the original bytes pass through.
"""

from dataclasses import dataclass

import cv2
import numpy as np

from pharmadoc.utils.config import PreprocessingConfig
from pharmadoc.utils.logger import get_logger

from .enhance import normalize_contrast, resize_to_bounds, sharpen, to_gray

logger = get_logger(__name__)


@dataclass
class QualityMetrics:
    """Before/after image quality measurements."""

    sharpness_before: float
    sharpness_after: float
    contrast_before: float
    contrast_after: float


def calculate_sharpness(image: np.ndarray) -> float:
    """Calculate image sharpness using Laplacian variance.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Sharpness score (higher means sharper).
    """
    return float(cv2.Laplacian(to_gray(image), cv2.CV_64F).var())


def calculate_contrast(image: np.ndarray) -> float:
    """Calculate image contrast as the standard deviation of pixel intensities.

    Args:
        image: Input image (BGR or grayscale).

    Returns:
        Contrast score (higher means more contrast).
    """
    return float(to_gray(image).std())


def decode_image(image_bytes: bytes) -> np.ndarray:
    """Decode encoded image bytes into a BGR or grayscale array.

    Raises:
        ValueError: If OpenCV cannot decode the bytes.
    """
    buffer = np.frombuffer(image_bytes, dtype=np.uint8)
    image = cv2.imdecode(buffer, cv2.IMREAD_UNCHANGED)
    if image is None:
        raise ValueError("Unable to decode image bytes")
    return image


def encode_png(image: np.ndarray) -> bytes:
    """Encode an image array as lossless PNG bytes."""
    ok, encoded = cv2.imencode(".png", image, [cv2.IMWRITE_PNG_COMPRESSION, 0])
    if not ok:
        raise ValueError("Unable to encode image as PNG")
    return encoded.tobytes()


class ImageNormalizer:
    """Prepares raw image bytes for recognition.

    Args:
        config: Size bounds and sharpening parameters.
    """

    def __init__(self, config: PreprocessingConfig | None = None) -> None:
        self.config = config or PreprocessingConfig()

    def process(self, image: np.ndarray) -> tuple[np.ndarray, QualityMetrics]:
        """Run resize, contrast, sharpen and grayscale on a decoded image.

        Args:
            image: Decoded document image.

        Returns:
            Tuple of (single-channel image, quality_metrics).
        """
        metrics = QualityMetrics(
            sharpness_before=calculate_sharpness(image),
            contrast_before=calculate_contrast(image),
            sharpness_after=0.0,
            contrast_after=0.0,
        )

        result = resize_to_bounds(
            image,
            max_dimension=self.config.max_dimension,
            min_dimension=self.config.min_dimension,
            upscale_target=self.config.upscale_target,
        )
        result = normalize_contrast(result)
        result = sharpen(
            result,
            sigma=self.config.sharpen_sigma,
            amount=self.config.sharpen_amount,
        )

        metrics.sharpness_after = calculate_sharpness(result)
        metrics.contrast_after = calculate_contrast(result)

        logger.info(
            "Normalization complete: sharpness %.1f->%.1f, contrast %.1f->%.1f",
            metrics.sharpness_before,
            metrics.sharpness_after,
            metrics.contrast_before,
            metrics.contrast_after,
        )
        return result, metrics

    def normalize(self, image_bytes: bytes) -> bytes:
        """Normalize encoded image bytes, returning PNG bytes.

        Args:
            image_bytes: JPEG or PNG bytes as uploaded.

        Returns:
            Normalized grayscale PNG bytes, or ``image_bytes`` unchanged when
            normalization is disabled or fails.
        """
        if not self.config.enabled:
            return image_bytes

        try:
            image = decode_image(image_bytes)
            if image.dtype != np.uint8:
                image = cv2.convertScaleAbs(image, alpha=255.0 / max(1, image.max()))
            processed, _ = self.process(image)
            return encode_png(processed)
        except (cv2.error, ValueError) as exc:
            logger.warning("Image normalization failed, using original: %s", exc)
            return image_bytes
