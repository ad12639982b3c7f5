"""Remote-first recognition with local fallback.

Images go to Google Vision while the injected circuit breaker reports it as
available and its output clears the acceptance criteria; otherwise Tesseract
takes over. PDFs are read from their embedded text layer.
"""

from pharmadoc.utils.config import OCRConfig
from pharmadoc.utils.errors import ExtractionWarning, RemoteProviderError
from pharmadoc.utils.logger import get_logger

from .circuit_breaker import CircuitBreaker
from .pdf_handler import PDFHandler
from .recognition import Provider, RecognitionResult
from .tesseract_engine import TesseractEngine
from .vision_client import GoogleVisionClient, is_access_failure

logger = get_logger(__name__)


class OCRProviderChain:
    """Routes recognition across the remote provider and the local engine.

    Args:
        local_engine: Tesseract fallback, always present.
        pdf_handler: Embedded text extractor for PDFs.
        breaker: Process-wide availability flag of the remote provider.
        remote: Remote client, or ``None`` when no API key is configured.
        config: Acceptance thresholds.
    """

    def __init__(
        self,
        local_engine: TesseractEngine,
        pdf_handler: PDFHandler,
        breaker: CircuitBreaker,
        remote: GoogleVisionClient | None = None,
        config: OCRConfig | None = None,
    ) -> None:
        self.local_engine = local_engine
        self.pdf_handler = pdf_handler
        self.breaker = breaker
        self.remote = remote
        self.config = config or OCRConfig()

    @property
    def preferred_provider(self) -> Provider:
        if self.remote is not None and self.breaker.is_available:
            return Provider.GOOGLE_VISION
        return Provider.TESSERACT

    def _accepts(self, result: RecognitionResult) -> bool:
        return (
            len(result.text.strip()) > self.config.remote_min_text_length
            and result.confidence >= self.config.remote_confidence_floor
        )

    def _handle_remote_failure(self, exc: RemoteProviderError) -> None:
        if is_access_failure(exc):
            self.breaker.trip(str(exc))
        else:
            logger.warning("Google Vision failed, falling back to Tesseract: %s", exc)

    def _try_remote(self, image_bytes: bytes) -> RecognitionResult | None:
        try:
            result = self.remote.recognize(image_bytes)
        except RemoteProviderError as exc:
            self._handle_remote_failure(exc)
            return None

        if self._accepts(result):
            return result

        logger.info(
            "Google Vision returned minimal text (%d characters), falling back to Tesseract",
            len(result.text.strip()),
        )
        return None

    def recognize(self, image_bytes: bytes) -> RecognitionResult:
        """Recognize text in an image.

        Args:
            image_bytes: Encoded (ideally normalized) image bytes.

        Returns:
            Recognition result tagged with the provider that produced it.

        Raises:
            RecognitionTimeout: If the local engine exceeds its budget.
            RecognitionFailed: If the local engine cannot read the image.
        """
        if self.preferred_provider is Provider.GOOGLE_VISION:
            result = self._try_remote(image_bytes)
            if result is not None:
                return result
        else:
            logger.debug("Remote provider unavailable, using Tesseract directly")

        result = self.local_engine.recognize(image_bytes)
        if result.confidence < self.config.low_confidence_threshold:
            logger.warning("Low OCR confidence: %.0f", result.confidence)
            result.warning = ExtractionWarning.LOW_CONFIDENCE.value
        return result

    def recognize_document_text(self, pdf_bytes: bytes) -> RecognitionResult:
        """Read the embedded text of a PDF.

        Raises:
            NoExtractableText: If the PDF has no text layer.
            EmptyOrCorrupt: If the PDF cannot be opened.
        """
        return self.pdf_handler.recognize(pdf_bytes)

    def probe_remote(self) -> bool:
        """Check the remote provider once, tripping the breaker on access failures.

        Returns:
            Whether the remote provider is still preferred after the probe.
        """
        if self.remote is None or not self.breaker.is_available:
            return False
        try:
            self.remote.probe()
        except RemoteProviderError as exc:
            self._handle_remote_failure(exc)
        else:
            logger.info("Google Cloud Vision API is available")
        return self.breaker.is_available
