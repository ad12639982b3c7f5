"""End-to-end document pipeline orchestrator.

Coordinates validation, image normalization, recognition, structured
extraction and catalog reconciliation for one uploaded document.
"""

import time

from pharmadoc.documents import DocumentKind, SourceDocument
from pharmadoc.extraction.bill_extractor import BillExtractor
from pharmadoc.extraction.prescription_extractor import PrescriptionExtractor
from pharmadoc.extraction.records import BillRecord, PrescriptionRecord, split_lines
from pharmadoc.ocr.circuit_breaker import CircuitBreaker
from pharmadoc.ocr.pdf_handler import PDFHandler
from pharmadoc.ocr.provider_chain import OCRProviderChain
from pharmadoc.ocr.recognition import RecognitionResult
from pharmadoc.ocr.tesseract_engine import TesseractEngine, open_image
from pharmadoc.ocr.vision_client import GoogleVisionClient
from pharmadoc.preprocessing.pipeline import ImageNormalizer
from pharmadoc.reconciliation.catalog import CatalogLookup, InMemoryCatalog
from pharmadoc.reconciliation.reconciler import EntityReconciler, MatchCandidate
from pharmadoc.utils.config import AppConfig
from pharmadoc.utils.logger import get_logger
from pharmadoc.validation.document_validator import DocumentValidator

from .assembler import PipelineResult, ResultAssembler

logger = get_logger(__name__)


class DocumentPipeline:
    """Runs one document through every stage, in order.

    Stages are injected so a single circuit breaker and catalog can be
    shared across pipelines. Any fatal stage error propagates as a
    ``PharmaDocError`` subclass.

    Args:
        validator: Media-type and text-sufficiency checks.
        normalizer: Image normalizer applied before recognition.
        chain: OCR provider chain.
        reconciler: Catalog candidate ranking.
        catalog: Catalog to reconcile against, or ``None`` to skip.
        assembler: Result assembler.
        min_image_side: Smallest accepted width and height of an uploaded
            image, checked before normalization.
    """

    def __init__(
        self,
        validator: DocumentValidator,
        normalizer: ImageNormalizer,
        chain: OCRProviderChain,
        reconciler: EntityReconciler | None = None,
        catalog: CatalogLookup | None = None,
        assembler: ResultAssembler | None = None,
        bill_extractor: BillExtractor | None = None,
        prescription_extractor: PrescriptionExtractor | None = None,
        min_image_side: int = 100,
    ) -> None:
        self.validator = validator
        self.normalizer = normalizer
        self.chain = chain
        self.reconciler = reconciler or EntityReconciler()
        self.catalog = catalog
        self.assembler = assembler or ResultAssembler()
        self.bill_extractor = bill_extractor or BillExtractor()
        self.prescription_extractor = prescription_extractor or PrescriptionExtractor()
        self.min_image_side = min_image_side

    def recognize(self, document: SourceDocument) -> RecognitionResult:
        """Validate a document and recognize its text.

        Raises:
            UnsupportedMediaType: For media types other than JPEG, PNG, PDF.
            EmptyOrCorrupt: For empty or malformed files.
            RecognitionError: If no provider produced text.
        """
        self.validator.validate(document).raise_if_invalid()

        if document.is_pdf:
            return self.chain.recognize_document_text(document.content)

        open_image(document.content, self.min_image_side)
        image_bytes = self.normalizer.normalize(document.content)
        return self.chain.recognize(image_bytes)

    def process(
        self,
        document: SourceDocument,
        kind: DocumentKind,
        store_id: str | None = None,
    ) -> PipelineResult:
        """Extract a structured record from a document.

        Args:
            document: Uploaded bytes and media type.
            kind: Which extractor to route the text to.
            store_id: Store whose catalog candidates are proposed.

        Returns:
            Pipeline result with recognition, record and candidates.

        Raises:
            PharmaDocError: On any fatal stage failure.
        """
        start = time.monotonic()
        logger.info("Processing %s as %s (%d bytes)", document.filename, kind, document.size)

        recognition = self.recognize(document)
        self.validator.validate_text(recognition.text, kind).raise_if_invalid()

        lines = split_lines(recognition.text)
        if kind == DocumentKind.BILL:
            record = self.bill_extractor.extract_bill(lines)
        else:
            record = self.prescription_extractor.extract_prescription(lines)

        matches = self._reconcile(record, store_id)
        result = self.assembler.assemble(recognition, record, matches, kind)

        logger.info(
            "Processed %s via %s in %.1fms",
            document.filename,
            recognition.provider,
            (time.monotonic() - start) * 1000,
        )
        return result

    def _reconcile(
        self, record: BillRecord | PrescriptionRecord, store_id: str | None
    ) -> dict[str, list[MatchCandidate]]:
        if self.catalog is None or store_id is None:
            return {}

        matches: dict[str, list[MatchCandidate]] = {}
        if isinstance(record, BillRecord):
            names = [item.name for item in record.line_items]
            if record.supplier.name or record.supplier.phone:
                matches["supplier"] = self.reconciler.reconcile_supplier(
                    record.supplier.name, record.supplier.phone, self.catalog, store_id
                )
        else:
            names = [medicine.name for medicine in record.medicines]

        for name in names:
            if name not in matches:
                matches[name] = self.reconciler.reconcile(name, self.catalog, store_id)
        return matches


def build_pipeline(
    config: AppConfig,
    breaker: CircuitBreaker | None = None,
    catalog: CatalogLookup | None = None,
) -> DocumentPipeline:
    """Assemble a pipeline from configuration.

    Args:
        config: Application configuration.
        breaker: Shared remote-provider breaker; a fresh one otherwise.
        catalog: Catalog to reconcile against; loaded from
            ``config.catalog_path`` otherwise.
    """
    remote = None
    if config.ocr.remote_enabled and config.ocr.vision_api_key:
        remote = GoogleVisionClient(config.ocr.vision_api_key, config.ocr)
    else:
        logger.info("No Google Cloud API key configured, using Tesseract only")

    chain = OCRProviderChain(
        local_engine=TesseractEngine(config.ocr),
        pdf_handler=PDFHandler(config.pdf),
        breaker=breaker or CircuitBreaker(),
        remote=remote,
        config=config.ocr,
    )

    return DocumentPipeline(
        validator=DocumentValidator(config.validation),
        normalizer=ImageNormalizer(config.preprocessing),
        chain=chain,
        reconciler=EntityReconciler(config.reconciliation),
        catalog=catalog if catalog is not None else InMemoryCatalog.from_yaml(config.catalog_path),
        min_image_side=config.ocr.min_image_side,
    )
