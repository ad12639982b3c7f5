"""Structured records produced by the bill and prescription extractors."""

from dataclasses import asdict, dataclass, field
from enum import StrEnum


class UnitKind(StrEnum):
    """Packaging unit a purchased medicine is stocked in."""

    STRIP = "strip"
    BOTTLE = "bottle"
    VIAL = "vial"
    TUBE = "tube"


@dataclass(frozen=True)
class LineToken:
    """One trimmed, non-empty line of recognized text."""

    text: str
    index: int


def split_lines(text: str) -> list[LineToken]:
    """Split recognized text into ordered, trimmed, non-empty line tokens."""
    stripped = (line.strip() for line in text.splitlines())
    return [LineToken(text=line, index=i) for i, line in enumerate(s for s in stripped if s)]


@dataclass
class Supplier:
    name: str = ""
    address: str = ""
    phone: str = ""
    tax_id: str = ""


@dataclass
class BillTotals:
    subtotal: float = 0.0
    tax_amount: float = 0.0
    total_amount: float = 0.0


@dataclass
class TaxInfo:
    rate: float = 0.0


@dataclass
class MedicineLine:
    """A purchased medicine extracted from one bill line.

    ``total_price`` is always ``round(quantity * unit_price, 2)``.
    """

    name: str
    quantity: int
    unit_price: float
    total_price: float
    unit_kind: UnitKind = UnitKind.STRIP
    batch_number: str | None = None
    expiry_date: str | None = None
    source_line: str = ""
    rule: str = ""


@dataclass
class BillRecord:
    supplier: Supplier = field(default_factory=Supplier)
    bill_number: str = ""
    bill_date: str = ""
    line_items: list[MedicineLine] = field(default_factory=list)
    totals: BillTotals = field(default_factory=BillTotals)
    tax_info: TaxInfo = field(default_factory=TaxInfo)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class PrescriptionLine:
    name: str
    dosage: str | None = None
    instructions: str | None = None
    inferred_quantity: int = 1
    source_line: str = ""


@dataclass
class PrescriptionRecord:
    doctor: str | None = None
    patient: str | None = None
    date: str | None = None
    medicines: list[PrescriptionLine] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)
