"""Tests for the end-to-end document pipeline."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from pharmadoc.documents import DocumentKind, MediaType, SourceDocument
from pharmadoc.extraction.records import BillRecord
from pharmadoc.ocr.circuit_breaker import CircuitBreaker
from pharmadoc.ocr.provider_chain import OCRProviderChain
from pharmadoc.ocr.recognition import Provider, RecognitionResult
from pharmadoc.ocr.vision_client import GoogleVisionClient
from pharmadoc.pipeline.assembler import ResultAssembler
from pharmadoc.pipeline.processor import DocumentPipeline, build_pipeline
from pharmadoc.pipeline.uploads import uploaded_file
from pharmadoc.preprocessing.pipeline import ImageNormalizer
from pharmadoc.reconciliation.catalog import InMemoryCatalog
from pharmadoc.reconciliation.reconciler import MatchKind
from pharmadoc.utils.config import AppConfig, OCRConfig
from pharmadoc.utils.errors import (
    ExtractionWarning,
    InsufficientText,
    NoExtractableText,
    RecognitionFailed,
    UnsupportedMediaType,
)
from pharmadoc.validation.document_validator import DocumentValidator

from conftest import png_bytes


def _pipeline(
    text: str,
    provider: Provider = Provider.GOOGLE_VISION,
    warning: str | None = None,
    catalog: InMemoryCatalog | None = None,
) -> tuple[DocumentPipeline, MagicMock]:
    chain = MagicMock(spec=OCRProviderChain)
    result = RecognitionResult(text, 95.0, provider, warning=warning)
    chain.recognize.return_value = result
    chain.recognize_document_text.return_value = result
    pipeline = DocumentPipeline(
        validator=DocumentValidator(),
        normalizer=ImageNormalizer(),
        chain=chain,
        catalog=catalog,
    )
    return pipeline, chain


class TestDocumentPipeline:
    def test_bill_image(
        self, sample_png: bytes, bill_lines: list[str], catalog: InMemoryCatalog
    ) -> None:
        pipeline, chain = _pipeline("\n".join(bill_lines), catalog=catalog)
        doc = SourceDocument(sample_png, MediaType.PNG, "bill.png")

        result = pipeline.process(doc, DocumentKind.BILL, "store-1")

        assert isinstance(result.record, BillRecord)
        assert result.record.supplier.name == "ABC PHARMACEUTICALS"
        assert result.record.totals.total_amount == 125.0
        sent = chain.recognize.call_args[0][0]
        assert sent.startswith(b"\x89PNG") and sent != sample_png

        supplier = result.matches["supplier"]
        assert supplier[0].entity_id == "s1"
        paracetamol = result.matches["Paracetamol 500mg"]
        assert paracetamol[0].entity_id == "m2"
        assert paracetamol[0].match_kind is MatchKind.PARTIAL

    def test_prescription_pdf_skips_normalizer(self, prescription_lines: list[str]) -> None:
        pipeline, chain = _pipeline("\n".join(prescription_lines), Provider.EMBEDDED_TEXT)
        pipeline.normalizer = MagicMock()
        doc = SourceDocument(b"%PDF-1.7 ...", MediaType.PDF, "rx.pdf")

        result = pipeline.process(doc, DocumentKind.PRESCRIPTION)

        chain.recognize_document_text.assert_called_once_with(doc.content)
        pipeline.normalizer.normalize.assert_not_called()
        assert len(result.record.medicines) == 3
        assert result.matches == {}

    def test_short_text_is_insufficient(self, sample_png: bytes) -> None:
        pipeline, _ = _pipeline("Rx  12345")
        doc = SourceDocument(sample_png, MediaType.PNG)
        with pytest.raises(InsufficientText):
            pipeline.process(doc, DocumentKind.PRESCRIPTION)

    def test_unsupported_media_type_stops_early(self) -> None:
        pipeline, chain = _pipeline("irrelevant")
        with pytest.raises(UnsupportedMediaType):
            pipeline.process(SourceDocument(b"GIF89a", "image/gif"), DocumentKind.BILL)
        chain.recognize.assert_not_called()

    def test_undersized_upload_rejected_before_normalizing(self) -> None:
        pipeline, chain = _pipeline("irrelevant")
        pipeline.normalizer = MagicMock()
        doc = SourceDocument(png_bytes(width=60, height=40), MediaType.PNG, "thumb.png")

        with pytest.raises(RecognitionFailed) as exc_info:
            pipeline.process(doc, DocumentKind.BILL)

        assert "too small" in exc_info.value.user_message
        pipeline.normalizer.normalize.assert_not_called()
        chain.recognize.assert_not_called()

    def test_recognition_errors_propagate(self) -> None:
        pipeline, chain = _pipeline("irrelevant")
        chain.recognize_document_text.side_effect = NoExtractableText("empty")
        with pytest.raises(NoExtractableText):
            pipeline.process(SourceDocument(b"%PDF-1.4", MediaType.PDF), DocumentKind.BILL)

    def test_recognition_warning_merged(self, sample_png: bytes, bill_lines: list[str]) -> None:
        warning = ExtractionWarning.LOW_CONFIDENCE.value
        pipeline, _ = _pipeline("\n".join(bill_lines), Provider.TESSERACT, warning=warning)
        result = pipeline.process(SourceDocument(sample_png, MediaType.PNG), DocumentKind.BILL)
        assert result.warnings == [warning]

    def test_to_dict(self, sample_png: bytes, bill_lines: list[str]) -> None:
        pipeline, _ = _pipeline("\n".join(bill_lines))
        data = pipeline.process(
            SourceDocument(sample_png, MediaType.PNG), DocumentKind.BILL
        ).to_dict()

        assert data["kind"] == "bill"
        assert data["recognition"]["provider"] == "google-vision"
        assert data["record"]["bill_number"] == "INV-2024-001"
        assert data["record"]["line_items"][0]["unit_kind"] == "strip"
        assert data["warnings"] == []


class TestResultAssembler:
    def test_deduplicates_warnings(self) -> None:
        record = BillRecord(warnings=["a", "b", "a"])
        recognition = RecognitionResult("text", 20, Provider.TESSERACT, warning="b")
        result = ResultAssembler().assemble(recognition, record, {}, DocumentKind.BILL)
        assert result.warnings == ["a", "b"]


class TestBuildPipeline:
    def test_remote_client_with_api_key(self, tmp_path: Path) -> None:
        breaker = CircuitBreaker()
        config = AppConfig(
            ocr=OCRConfig(vision_api_key="key"), catalog_path=str(tmp_path / "none.yaml")
        )
        pipeline = build_pipeline(config, breaker=breaker)
        assert isinstance(pipeline.chain.remote, GoogleVisionClient)
        assert pipeline.chain.breaker is breaker

    def test_tesseract_only_without_key(self, tmp_path: Path) -> None:
        config = AppConfig(
            ocr=OCRConfig(vision_api_key=None), catalog_path=str(tmp_path / "none.yaml")
        )
        pipeline = build_pipeline(config)
        assert pipeline.chain.remote is None
        assert pipeline.chain.preferred_provider is Provider.TESSERACT

    def test_catalog_loaded_from_config(self, config_dir: Path) -> None:
        config = AppConfig(
            ocr=OCRConfig(remote_enabled=False), catalog_path=str(config_dir / "catalog.yaml")
        )
        pipeline = build_pipeline(config)
        assert pipeline.catalog.entities("store-001")


class TestUploadedFile:
    def test_written_and_removed(self) -> None:
        with uploaded_file(b"%PDF-1.4", "bill.PDF") as path:
            assert path.read_bytes() == b"%PDF-1.4"
            assert path.suffix == ".pdf"
        assert not path.exists()

    def test_removed_on_error(self) -> None:
        with pytest.raises(RuntimeError):
            with uploaded_file(b"data", "bill.png") as path:
                raise RuntimeError("boom")
        assert not path.exists()
