"""Heuristic extraction of prescriptions from recognized text lines."""

import re
from collections.abc import Sequence
from dataclasses import dataclass

from pharmadoc.utils.errors import ExtractionWarning
from pharmadoc.utils.logger import get_logger

from .patterns import (
    PRESCRIPTION_INDICATORS,
    PRESCRIPTION_SKIP_PATTERNS,
    clean_medicine_name,
    find_date,
    is_medicine_name,
    matches_any,
)
from .records import LineToken, PrescriptionLine, PrescriptionRecord

logger = get_logger(__name__)

_DOSAGE = r"(?P<dosage>\d+(?:\.\d+)?\s*(?:mg|ml|gm|g|mcg|iu))\b"
_SEQUENCE = r"^(?:\d+[.)]?\s*)?"

_RX_PREFIX = re.compile(r"^(?:rx|r/)\s*[:.\-]?\s*", re.IGNORECASE)
_DOCTOR_TITLE = re.compile(r"^dr(?:\.|(?![a-z]))", re.IGNORECASE)
_DOCTOR_PREFIX = re.compile(r"^(?:dr(?:\.|(?![a-z]))|doctor)\s*[:\-]?\s*", re.IGNORECASE)
_PATIENT_LABEL = re.compile(r"^(?:patient(?:\s*name)?|name)\s*[:\-]?\s*", re.IGNORECASE)

# (pattern, daily quantity) for frequency words; first hit wins.
_FREQUENCY_RULES: list[tuple[re.Pattern, int]] = [
    (re.compile(r"\b(?:four times|4 times|qid)\b", re.IGNORECASE), 4),
    (re.compile(r"\b(?:thrice|three times|3 times|tds|tid)\b", re.IGNORECASE), 3),
    (re.compile(r"\b(?:twice|two times|2 times|bd|bid)\b", re.IGNORECASE), 2),
]
_SCHEDULE = re.compile(r"\b([0-4])\s*-\s*([0-4])\s*-\s*([0-4])\b")
_EXPLICIT_COUNT = re.compile(
    r"\b(\d+)\s*(?:tablets?|tabs?|capsules?|caps?|drops?|ml)\b", re.IGNORECASE
)


@dataclass(frozen=True)
class PrescriptionRule:
    name: str
    pattern: re.Pattern


# Evaluated in order; the bare-name fallback is handled by the extractor.
PRESCRIPTION_RULES: list[PrescriptionRule] = [
    PrescriptionRule(
        name="name_dosage_instructions",
        pattern=re.compile(
            _SEQUENCE + r"(?P<name>.+?)\s+" + _DOSAGE
            + r"\s*[-–:]?\s*(?P<instructions>\S.*)$",
            re.IGNORECASE,
        ),
    ),
    PrescriptionRule(
        name="name_dosage",
        pattern=re.compile(_SEQUENCE + r"(?P<name>.+?)\s+" + _DOSAGE + r"\s*$", re.IGNORECASE),
    ),
]


def infer_quantity(instructions: str | None) -> int:
    """Estimate how many units a dosing instruction calls for.

    Frequency words ("twice", "tds") map to a daily count, a ``1-0-1``
    schedule sums its slots, and an explicit count ("2 tablets") is taken
    as-is. Anything else means one unit.
    """
    if not instructions:
        return 1

    for pattern, quantity in _FREQUENCY_RULES:
        if pattern.search(instructions):
            return quantity

    schedule = _SCHEDULE.search(instructions)
    if schedule:
        total = sum(int(slot) for slot in schedule.groups())
        if total > 0:
            return total

    explicit = _EXPLICIT_COUNT.search(instructions)
    if explicit and int(explicit.group(1)) > 0:
        return int(explicit.group(1))

    return 1


class PrescriptionExtractor:
    """Extracts a :class:`PrescriptionRecord` from prescription lines."""

    def __init__(self, rules: list[PrescriptionRule] | None = None) -> None:
        self.rules = rules if rules is not None else PRESCRIPTION_RULES

    def extract_prescription(self, lines: Sequence[LineToken | str]) -> PrescriptionRecord:
        """Build a prescription record from recognized lines.

        Args:
            lines: Ordered line tokens (or plain strings).

        Returns:
            Prescription record; no medicines or no prescription keyword
            anywhere in the text appear in ``warnings``.
        """
        texts = [
            t.strip()
            for t in (ln.text if isinstance(ln, LineToken) else str(ln) for ln in lines)
            if t and t.strip()
        ]

        record = PrescriptionRecord(
            doctor=self._find_doctor(texts),
            patient=self._find_patient(texts),
            date=find_date(texts) or None,
            medicines=self.extract_medicines(texts),
        )

        if not record.medicines:
            record.warnings.append(ExtractionWarning.NO_PRESCRIPTION_MEDICINES.value)

        full_text = " ".join(texts).lower()
        if not any(
            re.search(rf"\b{re.escape(word)}", full_text) for word in PRESCRIPTION_INDICATORS
        ):
            record.warnings.append(ExtractionWarning.NOT_A_PRESCRIPTION.value)

        logger.info(
            "Parsed prescription: %d medicines, doctor=%r", len(record.medicines), record.doctor
        )
        return record

    def extract_medicines(self, lines: list[str]) -> list[PrescriptionLine]:
        medicines: list[PrescriptionLine] = []

        for line in lines:
            if len(line) < 3 or matches_any(line, PRESCRIPTION_SKIP_PATTERNS):
                continue
            body = _RX_PREFIX.sub("", line)
            medicine = self._apply_rules(body, line)
            if medicine is not None:
                logger.debug("Found prescribed medicine %r", medicine.name)
                medicines.append(medicine)

        return medicines

    def _apply_rules(self, body: str, line: str) -> PrescriptionLine | None:
        for rule in self.rules:
            match = rule.pattern.match(body)
            if not match:
                continue
            raw_name = match.group("name")
            if not is_medicine_name(f"{raw_name} {match.group('dosage')}"):
                continue
            instructions = match.groupdict().get("instructions")
            return PrescriptionLine(
                name=clean_medicine_name(raw_name),
                dosage=re.sub(r"\s+", "", match.group("dosage")),
                instructions=instructions.strip() if instructions else None,
                inferred_quantity=infer_quantity(instructions),
                source_line=line,
            )

        if is_medicine_name(body):
            name = clean_medicine_name(body)
            if name:
                return PrescriptionLine(name=name, source_line=line)
        return None

    @staticmethod
    def _find_doctor(lines: list[str]) -> str | None:
        for line in lines:
            lower = line.lower()
            if _DOCTOR_TITLE.match(line) or "doctor" in lower:
                name = _DOCTOR_PREFIX.sub("", line).strip()
                if name:
                    return name
        return None

    @staticmethod
    def _find_patient(lines: list[str]) -> str | None:
        labelled = [ln for ln in lines if "patient" in ln.lower()]
        named = [ln for ln in lines if ln.lower().startswith("name")]
        for line in labelled + named:
            name = _PATIENT_LABEL.sub("", line).replace(":", "").strip()
            if name:
                return name
        return None


_default_extractor = PrescriptionExtractor()


def extract_prescription(lines: Sequence[LineToken | str]) -> PrescriptionRecord:
    """Extract a prescription record using the default rule table."""
    return _default_extractor.extract_prescription(lines)
