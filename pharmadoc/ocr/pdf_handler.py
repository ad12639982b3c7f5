"""Embedded text-layer extraction for PDF documents.

Reading the text layer is cheap and needs no recognition. Scanned PDFs carry
little or no text layer; those are reported with a low confidence and a hint
to resubmit the pages as images.
"""

import time

import fitz  # PyMuPDF

from pharmadoc.utils.config import PDFConfig
from pharmadoc.utils.errors import EmptyOrCorrupt, ExtractionWarning, NoExtractableText
from pharmadoc.utils.logger import get_logger

from .recognition import Provider, RecognitionResult

logger = get_logger(__name__)


class PDFHandler:
    """Extracts the text layer of PDF documents.

    Args:
        config: Page limit and confidence values for embedded text.
    """

    def __init__(self, config: PDFConfig | None = None) -> None:
        self.config = config or PDFConfig()

    def extract_text(self, pdf_bytes: bytes) -> tuple[str, int]:
        """Read the text layer of up to ``max_pages`` pages.

        Args:
            pdf_bytes: Raw PDF bytes.

        Returns:
            Tuple of (joined page text, total page count).

        Raises:
            EmptyOrCorrupt: If the PDF cannot be opened or is encrypted.
        """
        try:
            doc = fitz.open(stream=pdf_bytes, filetype="pdf")
        except (fitz.FileDataError, RuntimeError, ValueError) as exc:
            raise EmptyOrCorrupt(
                f"PDF could not be opened: {exc}",
                user_message="The PDF file appears to be corrupted. Please try uploading again.",
            ) from exc

        with doc:
            if doc.needs_pass:
                raise EmptyOrCorrupt(
                    "PDF is encrypted",
                    user_message=(
                        "This PDF is password-protected. Please upload an "
                        "unprotected version."
                    ),
                )
            page_count = doc.page_count
            pages = [
                doc.load_page(i).get_text("text")
                for i in range(min(page_count, self.config.max_pages))
            ]

        logger.debug("Read text layer of %d/%d pages", len(pages), page_count)
        return "\n".join(pages), page_count

    def recognize(self, pdf_bytes: bytes) -> RecognitionResult:
        """Turn a PDF's text layer into a recognition result.

        Args:
            pdf_bytes: Raw PDF bytes.

        Returns:
            Result with provider ``embedded-text``: full confidence when the
            text layer is substantial, limited confidence plus a warning when
            it is short.

        Raises:
            NoExtractableText: If the PDF has no text layer at all.
            EmptyOrCorrupt: If the PDF cannot be opened.
        """
        start = time.monotonic()
        raw_text, page_count = self.extract_text(pdf_bytes)
        text = raw_text.strip()
        elapsed_ms = (time.monotonic() - start) * 1000

        if len(text) > self.config.embedded_min_chars:
            logger.info("Using embedded PDF text (%d characters)", len(text))
            return RecognitionResult(
                text=text,
                confidence=self.config.embedded_confidence,
                provider=Provider.EMBEDDED_TEXT,
                elapsed_ms=elapsed_ms,
                page_count=page_count,
            )

        if text:
            logger.info("PDF text layer is short (%d characters), likely scanned", len(text))
            return RecognitionResult(
                text=text,
                confidence=self.config.limited_confidence,
                provider=Provider.EMBEDDED_TEXT,
                elapsed_ms=elapsed_ms,
                warning=ExtractionWarning.SCANNED_PDF.value,
                page_count=page_count,
            )

        raise NoExtractableText(
            "PDF has no text layer", details={"pages": page_count}
        )
