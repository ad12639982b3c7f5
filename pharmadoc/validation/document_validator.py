"""Document and recognized-text validation.

The validator runs twice per pipeline invocation: once on the raw upload
(media type, emptiness, file signature) and once on the recognized text,
where it rejects output that is too sparse for the selected extractor.
OCR on blank or near-blank images still returns a non-null string, so
failing here gives the caller an actionable reason instead of an empty
record.
"""

from dataclasses import dataclass

from pharmadoc.documents import DocumentKind, MediaType, SourceDocument
from pharmadoc.utils.config import ValidationConfig
from pharmadoc.utils.errors import (
    EmptyOrCorrupt,
    InsufficientText,
    PharmaDocError,
    TooFewLines,
    UnsupportedMediaType,
)
from pharmadoc.utils.logger import get_logger

logger = get_logger(__name__)

PDF_SIGNATURE = b"%PDF"

# Leading bytes per image media type.
IMAGE_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    MediaType.PNG: (b"\x89PNG",),
    MediaType.JPEG: (b"\xff\xd8\xff",),
}


@dataclass
class ValidationOutcome:
    """Result of a validation check.

    Attributes:
        is_valid: Whether the check passed.
        error: The error describing the failure, if any.
    """

    is_valid: bool
    error: PharmaDocError | None = None

    @classmethod
    def ok(cls) -> "ValidationOutcome":
        return cls(is_valid=True)

    @classmethod
    def fail(cls, error: PharmaDocError) -> "ValidationOutcome":
        return cls(is_valid=False, error=error)

    def raise_if_invalid(self) -> None:
        """Raise the stored error when the check failed."""
        if not self.is_valid and self.error is not None:
            raise self.error


class DocumentValidator:
    """Validates uploads before recognition and text after it.

    Args:
        config: Thresholds for the text sufficiency checks.
    """

    def __init__(self, config: ValidationConfig | None = None) -> None:
        self.config = config or ValidationConfig()

    def validate(self, document: SourceDocument) -> ValidationOutcome:
        """Check that a source document can be sent to recognition.

        Args:
            document: The uploaded document.

        Returns:
            Outcome carrying ``UnsupportedMediaType`` or ``EmptyOrCorrupt``
            on failure.
        """
        if document.media_type not in set(MediaType):
            logger.warning("Rejected media type %s", document.media_type)
            return ValidationOutcome.fail(
                UnsupportedMediaType(
                    f"Unsupported media type: {document.media_type}",
                    details={"filename": document.filename},
                )
            )

        if document.size == 0:
            return ValidationOutcome.fail(
                EmptyOrCorrupt(
                    "Document is empty", details={"filename": document.filename}
                )
            )

        if document.is_pdf and not document.content.startswith(PDF_SIGNATURE):
            return ValidationOutcome.fail(
                EmptyOrCorrupt(
                    "Invalid PDF signature",
                    user_message="The uploaded file is not a valid PDF document.",
                    details={"leading_bytes": document.content[:8].hex()},
                )
            )

        signatures = IMAGE_SIGNATURES.get(document.media_type, ())
        if signatures and not document.content.startswith(signatures):
            return ValidationOutcome.fail(
                EmptyOrCorrupt(
                    f"Content does not match declared type {document.media_type}",
                    user_message="Invalid image format or corrupted image file.",
                    details={"leading_bytes": document.content[:8].hex()},
                )
            )

        logger.debug(
            "Accepted %s (%s, %d bytes)",
            document.filename,
            document.media_type,
            document.size,
        )
        return ValidationOutcome.ok()

    def validate_text(
        self, text: str | None, kind: DocumentKind | None = None
    ) -> ValidationOutcome:
        """Check that recognized text is substantial enough to extract from.

        Args:
            text: Recognized text.
            kind: Target extractor. Bills need more characters and lines
                than prescriptions; ``None`` applies only the generic
                character minimum.

        Returns:
            Outcome carrying ``InsufficientText`` or ``TooFewLines`` on failure.
        """
        stripped = (text or "").strip()
        min_chars = (
            self.config.min_bill_text_chars
            if kind == DocumentKind.BILL
            else self.config.min_text_chars
        )

        if len(stripped) < min_chars:
            return ValidationOutcome.fail(
                InsufficientText(
                    f"Recognized text has {len(stripped)} characters, "
                    f"need at least {min_chars}",
                    details={"kind": str(kind) if kind else None},
                )
            )

        min_lines = {
            DocumentKind.BILL: self.config.min_bill_lines,
            DocumentKind.PRESCRIPTION: self.config.min_prescription_lines,
        }.get(kind, 0)
        line_count = sum(1 for line in stripped.splitlines() if line.strip())

        if line_count < min_lines:
            return ValidationOutcome.fail(
                TooFewLines(
                    f"Recognized text has {line_count} lines, "
                    f"need at least {min_lines}",
                    details={"kind": str(kind)},
                )
            )

        return ValidationOutcome.ok()
