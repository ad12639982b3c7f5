"""Heuristic extraction of purchase bills from recognized text lines.

Supplier details come from the top of the bill, line items from an ordered
table of line rules, and totals from labelled amount lines. Missing pieces
never raise: they surface as warnings on the returned record so the caller
can ask for manual review.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from pharmadoc.utils.errors import ExtractionWarning
from pharmadoc.utils.logger import get_logger

from .patterns import (
    BILL_SKIP_PATTERNS,
    COMPANY_INDICATORS,
    SUPPLIER_SKIP_PATTERNS,
    amounts_in,
    clean_medicine_name,
    detect_unit_kind,
    find_date,
    is_medicine_name,
    matches_any,
    parse_amount,
    trailing_amount,
)
from .records import (
    BillRecord,
    BillTotals,
    LineToken,
    MedicineLine,
    Supplier,
    TaxInfo,
)

logger = get_logger(__name__)

SUPPLIER_SCAN_LINES = 15
ADDRESS_SCAN_LINES = 20
MAX_ADDRESS_LINES = 3

_PHONE_PATTERNS: list[re.Pattern] = [
    re.compile(r"(?:phone|tel|mobile|mob|ph)\.?[:\s]*(\d{10,12})\b", re.IGNORECASE),
    re.compile(r"(\+91[\s\-]?\d{10})\b"),
    re.compile(r"(?<![\w+])(\d{10,12})\b"),
]

_TAX_ID_PATTERNS: list[re.Pattern] = [
    re.compile(r"GSTIN[:\s]*([A-Z0-9]{15})\b", re.IGNORECASE),
    re.compile(r"GST(?:\s*No\.?)?[:\s]*([A-Z0-9]{15})\b", re.IGNORECASE),
    re.compile(r"\b(\d{2}[A-Z]{5}\d{4}[A-Z][1-9A-Z]Z[0-9A-Z])\b"),
]

_BILL_NUMBER_PATTERN = re.compile(
    r"\b(?:bill|invoice|inv|receipt)\s*(?:no\.?|number|num|#)?\s*[:#\-]?\s*"
    r"([A-Z0-9\-/]*\d[A-Z0-9\-/]*)",
    re.IGNORECASE,
)

_TAX_RATE_PATTERN = re.compile(r"GST\s*[@:]?\s*(\d+(?:\.\d+)?)\s*%", re.IGNORECASE)

_NUMERIC_TRIPLE = re.compile(r"^\d+\s+\d+(?:\.\d+)?\s+\d+(?:\.\d+)?$")
_CONTACT_LABEL = re.compile(r"^(?:phone|tel|mobile|mob|email|gst)", re.IGNORECASE)

_SUBTOTAL_LABEL = re.compile(r"sub[\s\-]?total", re.IGNORECASE)
_GRAND_TOTAL_LABEL = re.compile(
    r"grand\s*total|net\s*(?:amount|payable|total)|total\s*amount", re.IGNORECASE
)
_TAX_LABEL = re.compile(r"gst|tax", re.IGNORECASE)
_TOTAL_LABEL = re.compile(r"total", re.IGNORECASE)
_BARE_AMOUNT = re.compile(
    r"^\s*(?:rs\.?|₹|inr)\s*(\d[\d,]*(?:\.\d+)?)\s*$|^\s*(\d[\d,]*\.\d{2})\s*$",
    re.IGNORECASE,
)
_BARE_AMOUNT_MIN = 100.0

# A name ending in "<batch> <mm/yy>" belongs to the batch/expiry rule.
_BATCH_EXPIRY_TAIL = re.compile(r"\s[A-Z0-9]+\s+\d{1,2}/\d{2,4}$")


@dataclass(frozen=True)
class LineRule:
    """One line-item shape: a regex with a ``name`` group and a builder.

    Attributes:
        name: Rule identifier recorded on produced lines.
        pattern: Regex matched against the whole line.
        build: Turns a match and the source line into a ``MedicineLine``.
        reject_name: Optional pattern that disqualifies the captured name.
    """

    name: str
    pattern: re.Pattern
    build: Callable[[re.Match, str, str], MedicineLine]
    reject_name: re.Pattern | None = None

    def apply(self, line: str) -> MedicineLine | None:
        match = self.pattern.match(line)
        if not match:
            return None
        raw_name = match.group("name")
        if self.reject_name is not None and self.reject_name.search(raw_name):
            return None
        if not is_medicine_name(raw_name):
            return None
        return self.build(match, line, self.name)


def _priced_line(match: re.Match, line: str, rule: str) -> MedicineLine:
    raw_name = match.group("name")
    groups = match.groupdict()
    quantity = max(1, int(groups["qty"]))
    unit_price = parse_amount(groups["rate"])
    return MedicineLine(
        name=clean_medicine_name(raw_name),
        quantity=quantity,
        unit_price=unit_price,
        total_price=round(quantity * unit_price, 2),
        unit_kind=detect_unit_kind(raw_name),
        batch_number=groups.get("batch"),
        expiry_date=groups.get("expiry"),
        source_line=line,
        rule=rule,
    )


def _unpriced_line(match: re.Match, line: str, rule: str) -> MedicineLine:
    raw_name = match.group("name")
    return MedicineLine(
        name=clean_medicine_name(raw_name),
        quantity=1,
        unit_price=0.0,
        total_price=0.0,
        unit_kind=detect_unit_kind(raw_name),
        source_line=line,
        rule=rule,
    )


_NUM = r"\d[\d,]*(?:\.\d+)?"

# Evaluated in order; the first rule that applies wins.
BILL_LINE_RULES: list[LineRule] = [
    LineRule(
        name="name_qty_rate_amount",
        pattern=re.compile(
            rf"^(?P<name>.+?)\s+(?P<qty>\d+)\s+(?P<rate>{_NUM})\s+(?P<amount>{_NUM})$"
        ),
        build=_priced_line,
        reject_name=_BATCH_EXPIRY_TAIL,
    ),
    LineRule(
        name="name_batch_expiry_qty_rate_amount",
        pattern=re.compile(
            r"^(?P<name>.+?)\s+(?P<batch>[A-Z0-9]+)\s+(?P<expiry>\d{1,2}/\d{2,4})\s+"
            rf"(?P<qty>\d+)\s+(?P<rate>{_NUM})\s+(?P<amount>{_NUM})$"
        ),
        build=_priced_line,
    ),
    LineRule(
        name="name_qty_rate",
        pattern=re.compile(rf"^(?P<name>.+?)\s+(?P<qty>\d+)\s+(?P<rate>{_NUM})$"),
        build=_priced_line,
    ),
    LineRule(
        name="name_only",
        pattern=re.compile(r"^(?P<name>.+)$"),
        build=_unpriced_line,
    ),
]


def _line_texts(lines: Sequence[LineToken | str]) -> list[str]:
    texts = (line.text if isinstance(line, LineToken) else str(line) for line in lines)
    return [t.strip() for t in texts if t and t.strip()]


class BillExtractor:
    """Extracts a :class:`BillRecord` from the lines of a purchase bill.

    Args:
        rules: Ordered line-item rules. Defaults to ``BILL_LINE_RULES``.
    """

    def __init__(self, rules: list[LineRule] | None = None) -> None:
        self.rules = rules if rules is not None else BILL_LINE_RULES

    def extract_bill(self, lines: Sequence[LineToken | str]) -> BillRecord:
        """Build a bill record from recognized lines.

        The caller is expected to have run the bill text sufficiency check.

        Args:
            lines: Ordered line tokens (or plain strings).

        Returns:
            Bill record; missing supplier, items or total appear in
            ``warnings``.
        """
        texts = _line_texts(lines)
        supplier, consumed = self.extract_supplier(texts)
        line_items, corrections = self.extract_line_items(texts, skip=consumed)

        record = BillRecord(
            supplier=supplier,
            bill_number=self.extract_bill_number(texts),
            bill_date=find_date(texts),
            line_items=line_items,
            totals=self.extract_totals(texts),
            tax_info=self.extract_tax_info(texts),
        )

        if not supplier.name:
            record.warnings.append(ExtractionWarning.SUPPLIER_MISSING.value)
        if not line_items:
            record.warnings.append(ExtractionWarning.NO_LINE_ITEMS.value)
        if record.totals.total_amount == 0:
            record.warnings.append(ExtractionWarning.ZERO_TOTAL.value)
        record.warnings.extend(corrections)

        if record.warnings:
            logger.warning("Bill parsing warnings: %s", record.warnings)
        logger.info(
            "Parsed bill: supplier=%r, %d line items, total=%.2f",
            supplier.name or "Unknown",
            len(line_items),
            record.totals.total_amount,
        )
        return record

    def extract_supplier(self, lines: list[str]) -> tuple[Supplier, set[int]]:
        """Locate supplier name, address, phone and tax id.

        Returns:
            Tuple of (supplier, indices of lines used for name and address).
        """
        supplier = Supplier()
        consumed: set[int] = set()

        name_index = self._find_supplier_name(lines)
        if name_index is not None:
            supplier.name = lines[name_index]
            consumed.add(name_index)
            address_indices = self._find_address(lines, name_index)
            supplier.address = ", ".join(lines[i] for i in address_indices)
            consumed.update(address_indices)

        supplier.phone = self._first_match(lines, _PHONE_PATTERNS, digits_only=True)
        supplier.tax_id = self._first_match(lines, _TAX_ID_PATTERNS).upper()

        logger.debug("Supplier info: %s", supplier)
        return supplier, consumed

    def _find_supplier_name(self, lines: list[str]) -> int | None:
        fallback: int | None = None

        for i, line in enumerate(lines[:SUPPLIER_SCAN_LINES]):
            if len(line) < 3 or matches_any(line, SUPPLIER_SKIP_PATTERNS):
                continue
            if re.match(r"^\d", line) or "@" in line:
                continue

            lower = line.lower()
            if any(indicator in lower for indicator in COMPANY_INDICATORS):
                return i
            if fallback is None and len(line) > 5:
                fallback = i

        return fallback

    def _find_address(self, lines: list[str], name_index: int) -> list[int]:
        indices: list[int] = []

        for i in range(name_index + 1, min(ADDRESS_SCAN_LINES, len(lines))):
            if len(indices) >= MAX_ADDRESS_LINES:
                break
            line = lines[i]
            if is_medicine_name(line) or _NUMERIC_TRIPLE.match(line):
                break
            if (
                len(line) > 5
                and not _CONTACT_LABEL.match(line)
                and not matches_any(line, SUPPLIER_SKIP_PATTERNS)
                and not re.match(r"^\d{10}", line)
                and "@" not in line
            ):
                indices.append(i)

        return indices

    @staticmethod
    def _first_match(
        lines: list[str], patterns: list[re.Pattern], digits_only: bool = False
    ) -> str:
        for line in lines:
            for pattern in patterns:
                match = pattern.search(line)
                if match:
                    value = match.group(1)
                    return re.sub(r"\D", "", value) if digits_only else value
        return ""

    def extract_bill_number(self, lines: list[str]) -> str:
        for line in lines:
            match = _BILL_NUMBER_PATTERN.search(line)
            if match:
                return match.group(1)
        return ""

    def extract_line_items(
        self, lines: list[str], skip: set[int] | None = None
    ) -> tuple[list[MedicineLine], list[str]]:
        """Apply the line rules to every non-header line.

        Args:
            lines: Bill lines.
            skip: Indices already attributed to the supplier block.

        Returns:
            Tuple of (medicine lines, warnings about corrected line totals).
        """
        skip = skip or set()
        items: list[MedicineLine] = []
        corrections: list[str] = []

        for i, line in enumerate(lines):
            if i in skip or len(line) < 3 or matches_any(line, BILL_SKIP_PATTERNS):
                continue

            item = self._apply_rules(line)
            if item is None:
                continue

            stated = self._stated_amount(item)
            if stated is not None and abs(stated - item.total_price) > 0.01:
                corrections.append(
                    f"Line total for {item.name} corrected from {stated:.2f} "
                    f"to {item.total_price:.2f}"
                )
            logger.debug("Found medicine %r via %s", item.name, item.rule)
            items.append(item)

        logger.info("Total medicines extracted: %d", len(items))
        return items, corrections

    def _apply_rules(self, line: str) -> MedicineLine | None:
        for rule in self.rules:
            item = rule.apply(line)
            if item is not None:
                return item
        return None

    def _stated_amount(self, item: MedicineLine) -> float | None:
        # Only rules with an amount column state a line total.
        rule = next((r for r in self.rules if r.name == item.rule), None)
        if rule is None or "amount" not in rule.pattern.groupindex:
            return None
        match = rule.pattern.match(item.source_line)
        return parse_amount(match.group("amount")) if match else None

    def extract_totals(self, lines: list[str]) -> BillTotals:
        """Find subtotal, tax amount and grand total.

        Among several total-labelled lines the largest value wins, which
        keeps a subtotal-like line from being taken as the grand total.
        """
        totals = BillTotals()

        for line in lines:
            if _SUBTOTAL_LABEL.search(line):
                amount = trailing_amount(line)
                if amount is not None:
                    totals.subtotal = amount
            elif _GRAND_TOTAL_LABEL.search(line) or (
                _TOTAL_LABEL.search(line) and not _TAX_LABEL.search(line)
            ):
                amounts = amounts_in(line)
                if amounts and amounts[-1] > totals.total_amount:
                    totals.total_amount = amounts[-1]
            elif _TAX_LABEL.search(line):
                amount = trailing_amount(line)
                if amount is not None:
                    totals.tax_amount = amount
            else:
                match = _BARE_AMOUNT.match(line)
                if match:
                    amount = parse_amount(match.group(1) or match.group(2))
                    if amount > _BARE_AMOUNT_MIN and amount > totals.total_amount:
                        totals.total_amount = amount

        if totals.subtotal == 0 and totals.total_amount > 0 and totals.tax_amount > 0:
            totals.subtotal = round(totals.total_amount - totals.tax_amount, 2)

        logger.debug("Totals: %s", totals)
        return totals

    def extract_tax_info(self, lines: list[str]) -> TaxInfo:
        info = TaxInfo()
        for line in lines:
            match = _TAX_RATE_PATTERN.search(line)
            if match:
                info.rate = float(match.group(1))
        return info


_default_extractor = BillExtractor()


def extract_bill(lines: Sequence[LineToken | str]) -> BillRecord:
    """Extract a bill record using the default rule table."""
    return _default_extractor.extract_bill(lines)
