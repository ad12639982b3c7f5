"""Recognition result shared by all OCR providers."""

from dataclasses import dataclass
from enum import StrEnum


class Provider(StrEnum):
    """Which provider produced a recognition result.

    Confidence scales differ per provider: remote and embedded text report a
    fixed high-trust value, Tesseract reports its own word-level average.
    """

    GOOGLE_VISION = "google-vision"
    TESSERACT = "tesseract"
    EMBEDDED_TEXT = "embedded-text"


@dataclass
class RecognitionResult:
    """Raw text recognized from a document.

    Attributes:
        text: Recognized text, lines separated by ``\\n``.
        confidence: Score in [0, 100]; out-of-range values are clamped.
        provider: Provider discriminant.
        elapsed_ms: Wall-clock time spent in the provider.
        warning: Optional quality warning for the uploader.
        page_count: Pages read (PDFs only).
    """

    text: str
    confidence: float
    provider: Provider
    elapsed_ms: float = 0.0
    warning: str | None = None
    page_count: int = 1

    def __post_init__(self) -> None:
        self.confidence = max(0.0, min(100.0, float(self.confidence)))
