"""Combines the outputs of the pipeline stages into one result."""

from dataclasses import asdict, dataclass, field

from pharmadoc.documents import DocumentKind
from pharmadoc.extraction.records import BillRecord, PrescriptionRecord
from pharmadoc.ocr.recognition import RecognitionResult
from pharmadoc.reconciliation.reconciler import MatchCandidate


@dataclass
class PipelineResult:
    """Recognition, structured record and catalog candidates for one document.

    ``matches`` maps each extracted name (and ``"supplier"`` for bills) to
    its ranked candidates.
    """

    recognition: RecognitionResult
    record: BillRecord | PrescriptionRecord
    kind: DocumentKind
    matches: dict[str, list[MatchCandidate]] = field(default_factory=dict)

    @property
    def warnings(self) -> list[str]:
        return self.record.warnings

    def to_dict(self) -> dict:
        return {
            "kind": str(self.kind),
            "recognition": {
                "provider": str(self.recognition.provider),
                "confidence": self.recognition.confidence,
                "elapsed_ms": round(self.recognition.elapsed_ms, 1),
                "page_count": self.recognition.page_count,
                "text": self.recognition.text,
            },
            "record": self.record.to_dict(),
            "matches": {
                name: [asdict(c) for c in candidates]
                for name, candidates in self.matches.items()
            },
            "warnings": list(self.record.warnings),
        }


class ResultAssembler:
    """Attaches recognition warnings to the record and builds the result."""

    def assemble(
        self,
        recognition: RecognitionResult,
        record: BillRecord | PrescriptionRecord,
        matches: dict[str, list[MatchCandidate]],
        kind: DocumentKind,
    ) -> PipelineResult:
        if recognition.warning and recognition.warning not in record.warnings:
            record.warnings.insert(0, recognition.warning)
        # Keep the first occurrence of each warning.
        record.warnings[:] = list(dict.fromkeys(record.warnings))
        return PipelineResult(
            recognition=recognition, record=record, kind=kind, matches=matches
        )
