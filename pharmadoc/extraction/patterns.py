"""Shared pattern tables and heuristics for pharmacy document extraction.

Real bills and prescriptions vary with printer, scanner and handwriting, so
nothing here is a grammar: each helper is a cheap keyword or regex test that
is right often enough to be useful and is combined with other evidence by
the extractors.
"""

import re

from .records import UnitKind

# Common medicine names, forms and dosage units seen on Indian pharmacy bills.
MEDICINE_INDICATORS: list[str] = [
    "tab", "tablet", "cap", "capsule", "syrup", "injection", "inj",
    "mg", "ml", "gm", "mcg", "iu", "drops", "ointment", "cream",
    "paracetamol", "amoxicillin", "azithromycin", "crocin", "dolo",
    "combiflam", "calpol", "augmentin", "cipla", "ranbaxy", "sun pharma",
]

# Keywords whose presence anywhere suggests the text is a prescription.
PRESCRIPTION_INDICATORS: list[str] = [
    "rx", "prescription", "medicine", "tablet", "capsule", "syrup", "mg", "ml",
]

COMPANY_INDICATORS: list[str] = [
    "pharma", "pharmaceutical", "medical", "healthcare", "drugs",
    "pvt", "ltd", "limited", "company", "corp", "enterprises",
    "distributor", "distributors", "suppliers", "traders",
]

_INDICATOR_RE = re.compile(
    r"\b(?:" + "|".join(re.escape(i) for i in MEDICINE_INDICATORS) + ")",
    re.IGNORECASE,
)

# Shape heuristics: dosage units, form abbreviations, CamelCase brands,
# dosage suffix words.
_MEDICINE_SHAPE_PATTERNS: list[re.Pattern] = [
    re.compile(r"\d+\s*mg", re.IGNORECASE),
    re.compile(r"\d+\s*ml", re.IGNORECASE),
    re.compile(r"\d+\s*mcg", re.IGNORECASE),
    re.compile(r"\d+\s*iu\b", re.IGNORECASE),
    re.compile(r"\b(?:tab|cap|syr)", re.IGNORECASE),
    re.compile(r"^[A-Z][a-z]+[A-Z]"),
    re.compile(r"\b(?:forte|plus|advance|ds)\b", re.IGNORECASE),
]

# Header, footer and separator lines that never hold a line item.
# (?![a-z]) keeps "No." from matching "Norflox" and "Total" from "Totalin".
BILL_SKIP_PATTERNS: list[re.Pattern] = [
    re.compile(
        r"^(?:item|description|medicine|product|name|qty|quantity|rate|price|"
        r"amount|total|subtotal|sub total|gst|tax|bill|invoice|date|no\.?|sr\.?)(?![a-z])",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(?:thank you|thanks|visit again|address|phone|email|website|gstin?|pan|cin)(?![a-z])",
        re.IGNORECASE,
    ),
    re.compile(r"^[\-=*+_\s]*$"),
    re.compile(r"^page \d+", re.IGNORECASE),
    re.compile(r"^continued", re.IGNORECASE),
]

# Noise lines to pass over when looking for the supplier name.
SUPPLIER_SKIP_PATTERNS: list[re.Pattern] = [
    re.compile(r"^(?:tax invoice|invoice|bill|receipt|purchase|order)(?![a-z])", re.IGNORECASE),
    re.compile(r"^(?:date|time|no\.?|sr\.?)(?![a-z])", re.IGNORECASE),
    re.compile(r"^[\-=*+_\s]*$"),
    re.compile(r"^(?:to|from|address)(?![a-z])", re.IGNORECASE),
    re.compile(r"^(?:item|description|particulars|product|qty|quantity)(?![a-z])", re.IGNORECASE),
    re.compile(r"^(?:thank you|thanks|visit again)", re.IGNORECASE),
]

PRESCRIPTION_SKIP_PATTERNS: list[re.Pattern] = [
    re.compile(r"^(?:dr\.?|doctor|patient|age|date|prescription)(?![a-z])", re.IGNORECASE),
    re.compile(r"^(?:name|address|phone|email)(?![a-z])", re.IGNORECASE),
    re.compile(r"^[\-=*+_\s]*$"),
    re.compile(r"^(?:signature|seal|stamp)(?![a-z])", re.IGNORECASE),
]

DATE_PATTERN = re.compile(r"\b(\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4})\b")

# An amount token not glued to a preceding word, e.g. "1,250.00" but not the
# trailing digit of "1Z5".
AMOUNT_PATTERN = re.compile(r"(?<![\w.])(\d[\d,]*(?:\.\d+)?)")

_FORM_WORDS_RE = re.compile(
    r"\b(?:tab|tablet|tablets|cap|capsule|capsules|syr|syrup|inj|injection)\b\.?",
    re.IGNORECASE,
)

# (pattern, unit kind) checked in order; first hit wins.
_UNIT_KIND_RULES: list[tuple[re.Pattern, UnitKind]] = [
    (re.compile(r"\bsyr(?:up)?\b|\d\s*ml\b|\bml\b", re.IGNORECASE), UnitKind.BOTTLE),
    (re.compile(r"\binj(?:ection)?\b|\bvials?\b", re.IGNORECASE), UnitKind.VIAL),
    (re.compile(r"\b(?:ointment|cream|gel)\b", re.IGNORECASE), UnitKind.TUBE),
    (re.compile(r"\bdrops?\b", re.IGNORECASE), UnitKind.BOTTLE),
]


def matches_any(text: str, patterns: list[re.Pattern]) -> bool:
    return any(p.search(text) for p in patterns)


def is_medicine_name(text: str) -> bool:
    """Heuristic test for whether text denotes a pharmaceutical product.

    Args:
        text: Candidate name, possibly with dosage and form words.

    Returns:
        ``True`` if the text carries a medicine keyword, a dosage unit, a form
        abbreviation, a CamelCase brand shape or a dosage suffix word.
    """
    if not text or len(text.strip()) < 3:
        return False
    if _INDICATOR_RE.search(text):
        return True
    return matches_any(text, _MEDICINE_SHAPE_PATTERNS)


def clean_medicine_name(name: str) -> str:
    """Normalize whitespace, drop stray symbols and dosage-form words."""
    cleaned = re.sub(r"[^\w\s.\-+]", "", name)
    cleaned = _FORM_WORDS_RE.sub("", cleaned)
    cleaned = re.sub(r"\s+", " ", cleaned)
    return cleaned.strip(" .-")


def detect_unit_kind(name: str) -> UnitKind:
    """Infer the packaging unit from keywords in a medicine name."""
    for pattern, kind in _UNIT_KIND_RULES:
        if pattern.search(name):
            return kind
    return UnitKind.STRIP


def parse_amount(token: str) -> float:
    """Parse a numeric token such as ``"1,250.00"``."""
    return float(token.replace(",", ""))


def amounts_in(line: str) -> list[float]:
    """All amount tokens in a line, in order of appearance."""
    return [parse_amount(m) for m in AMOUNT_PATTERN.findall(line)]


def trailing_amount(line: str) -> float | None:
    """The amount a line ends with, if any."""
    match = re.search(r"(?<![\w.])(\d[\d,]*(?:\.\d+)?)\s*$", line)
    return parse_amount(match.group(1)) if match else None


def find_date(lines: list[str]) -> str:
    """Find a ``dd/mm/yyyy``-style date, preferring lines labelled "date"."""
    labelled = [line for line in lines if "date" in line.lower()]
    for line in labelled + lines:
        match = DATE_PATTERN.search(line)
        if match:
            return match.group(1)
    return ""
