"""Local Tesseract recognition engine with a hard wall-clock budget.

Used as the fallback when the remote provider is disabled, errors, or
returns too little text. Tesseract reports its own word-level confidence,
which callers should treat with more skepticism than the remote score.
"""

import io
import time

import pytesseract
from PIL import Image, UnidentifiedImageError

from pharmadoc.utils.config import OCRConfig
from pharmadoc.utils.errors import RecognitionFailed, RecognitionTimeout
from pharmadoc.utils.logger import get_logger

from .recognition import Provider, RecognitionResult

logger = get_logger(__name__)


def _is_timeout(exc: RuntimeError) -> bool:
    # pytesseract kills the subprocess and raises RuntimeError on timeout.
    return "timeout" in str(exc).lower()


def open_image(image_bytes: bytes, min_side: int) -> Image.Image:
    """Decode an image and reject it when either side is below ``min_side``.

    Raises:
        RecognitionFailed: For undecodable or undersized images.
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise RecognitionFailed(f"Unreadable image: {exc}") from exc

    width, height = image.size
    if width < min_side or height < min_side:
        raise RecognitionFailed(
            f"Image is {width}x{height}, below {min_side}x{min_side}",
            user_message=(
                "Image is too small for reliable OCR processing. "
                f"Minimum size is {min_side}x{min_side} pixels."
            ),
        )
    if width > 5000 or height > 5000:
        logger.info("Large image (%dx%d), recognition may be slow", width, height)
    return image


class TesseractEngine:
    """Wrapper around Tesseract OCR for document text extraction.

    Args:
        config: OCR configuration (binary path, language, page segmentation
            mode, timeout budget, minimum image size).
    """

    def __init__(self, config: OCRConfig | None = None) -> None:
        self.config = config or OCRConfig()
        if self.config.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.config.tesseract_cmd

    @property
    def tesseract_config(self) -> str:
        return f"--psm {self.config.psm} -c preserve_interword_spaces=1"

    def recognize(self, image_bytes: bytes) -> RecognitionResult:
        """Recognize text in an image within the configured time budget.

        Args:
            image_bytes: Encoded image bytes.

        Returns:
            Recognition result with provider ``tesseract`` and the average
            word confidence on a 0-100 scale.

        Raises:
            RecognitionTimeout: If recognition exceeds the budget.
            RecognitionFailed: For unreadable images or empty output.
        """
        image = open_image(image_bytes, self.config.min_image_side)
        start = time.monotonic()
        deadline = start + self.config.timeout_seconds

        try:
            text = pytesseract.image_to_string(
                image,
                lang=self.config.default_lang,
                config=self.tesseract_config,
                timeout=self.config.timeout_seconds,
            )
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise RuntimeError("Tesseract process timeout")
            data = pytesseract.image_to_data(
                image,
                lang=self.config.default_lang,
                config=self.tesseract_config,
                output_type=pytesseract.Output.DICT,
                timeout=remaining,
            )
        except RuntimeError as exc:
            if _is_timeout(exc):
                raise RecognitionTimeout(
                    f"OCR processing timed out after {self.config.timeout_seconds:.0f} seconds"
                ) from exc
            raise RecognitionFailed(f"Tesseract failed: {exc}") from exc
        except pytesseract.TesseractError as exc:
            raise RecognitionFailed(f"Tesseract failed: {exc}") from exc

        confidences = [
            float(conf)
            for conf, word in zip(data["conf"], data["text"])
            if float(conf) > 0 and str(word).strip()
        ]
        avg_conf = sum(confidences) / len(confidences) if confidences else 0.0
        text = text.strip()

        if len(text) < 5:
            raise RecognitionFailed(
                f"Tesseract returned {len(text)} characters",
                user_message=(
                    "Unable to extract readable text from the image. Please "
                    "ensure the image is clear and contains text."
                ),
            )

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "Tesseract extracted %d words with average confidence %.1f in %.0f ms",
            len(confidences),
            avg_conf,
            elapsed_ms,
        )
        return RecognitionResult(
            text=text,
            confidence=round(avg_conf),
            provider=Provider.TESSERACT,
            elapsed_ms=elapsed_ms,
        )
