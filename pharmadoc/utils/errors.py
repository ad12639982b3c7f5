"""Exception hierarchy for the pharmacy document pipeline.

Fatal errors abort a pipeline run. Each carries two texts: ``message`` is the
internal diagnostic written to the logs, ``user_message`` is what a caller may
show to the person who uploaded the document.

Hierarchy::

    PharmaDocError
    ├── DocumentError
    │   ├── UnsupportedMediaType
    │   └── EmptyOrCorrupt
    ├── TextSufficiencyError
    │   ├── InsufficientText
    │   └── TooFewLines
    └── RecognitionError
        ├── NoExtractableText
        ├── RecognitionFailed
        └── RecognitionTimeout

``RemoteProviderError`` is raised by the remote OCR client and handled inside
the provider chain; it never reaches callers of the pipeline.
"""

from enum import StrEnum


class PharmaDocError(Exception):
    """Base exception for all fatal pipeline errors.

    Attributes:
        message: Internal diagnostic message.
        user_message: Message safe to show to the uploader.
        details: Optional dictionary with additional context.
    """

    http_status: int = 422
    default_user_message: str = "The document could not be processed."

    def __init__(
        self,
        message: str,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message
        self.user_message = user_message or self.default_user_message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class DocumentError(PharmaDocError):
    """The uploaded file itself cannot be accepted."""

    http_status = 400


class UnsupportedMediaType(DocumentError):
    http_status = 415
    default_user_message = (
        "Unsupported file type. Please upload JPG, PNG, or PDF files only."
    )


class EmptyOrCorrupt(DocumentError):
    default_user_message = (
        "The file appears to be empty or corrupted. Please try uploading again."
    )


class TextSufficiencyError(PharmaDocError):
    """Recognition produced text too sparse to extract anything from."""


class InsufficientText(TextSufficiencyError):
    default_user_message = (
        "Unable to extract meaningful text from the document. "
        "Please ensure the document is clear and readable."
    )


class TooFewLines(TextSufficiencyError):
    default_user_message = (
        "The document appears to have too few lines of text. "
        "Please ensure the entire document is visible and clear."
    )


class RecognitionError(PharmaDocError):
    """Text recognition could not produce a result."""


class NoExtractableText(RecognitionError):
    default_user_message = (
        "No text could be extracted from this PDF. Please try uploading it "
        "as an image (JPG/PNG) for OCR processing."
    )


class RecognitionFailed(RecognitionError):
    default_user_message = (
        "Failed to extract text from the image. Please ensure the image is "
        "clear and contains readable text."
    )


class RecognitionTimeout(RecognitionError):
    http_status = 504
    default_user_message = (
        "OCR processing took too long. Please try with a smaller or clearer "
        "document."
    )


class RemoteProviderError(Exception):
    """Failure reported by the remote recognition provider.

    Attributes:
        status_code: HTTP status of the failed call, if any.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class ExtractionWarning(StrEnum):
    """Non-fatal findings attached to extracted records for manual review."""

    SUPPLIER_MISSING = "Could not identify supplier name"
    NO_LINE_ITEMS = "No medicines found in the bill"
    ZERO_TOTAL = "Could not extract total amount"
    NO_PRESCRIPTION_MEDICINES = "No medicines found in the prescription"
    NOT_A_PRESCRIPTION = "Document may not be a medical prescription"
    LOW_CONFIDENCE = (
        "Low recognition confidence; please review the extracted values"
    )
    SCANNED_PDF = (
        "This appears to be a scanned PDF. For better results, try uploading "
        "as an image."
    )
