"""Source document types shared across the pipeline stages."""

from dataclasses import dataclass
from enum import StrEnum


class MediaType(StrEnum):
    """Media types accepted for recognition."""

    JPEG = "image/jpeg"
    PNG = "image/png"
    PDF = "application/pdf"


class DocumentKind(StrEnum):
    """Which structured extractor a document is routed to."""

    BILL = "bill"
    PRESCRIPTION = "prescription"


@dataclass(frozen=True)
class SourceDocument:
    """Raw uploaded bytes with their declared media type.

    Lives only for the duration of one pipeline invocation.
    """

    content: bytes
    media_type: str
    filename: str = "document"

    @property
    def size(self) -> int:
        return len(self.content)

    @property
    def is_pdf(self) -> bool:
        return self.media_type == MediaType.PDF

    @property
    def is_image(self) -> bool:
        return self.media_type in (MediaType.JPEG, MediaType.PNG)
