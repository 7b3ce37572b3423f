"""Domain models for the order-to-receipt pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum


class PaperWidth(str, Enum):
    NARROW = "narrow"
    MEDIUM = "medium"
    WIDE = "wide"

    @property
    def chars(self) -> int:
        return _PAPER_GEOMETRY[self][0]

    @property
    def dots(self) -> int:
        return _PAPER_GEOMETRY[self][1]

    @property
    def label(self) -> str:
        return _PAPER_GEOMETRY[self][2]


# chars per line, printable dots (203 dpi), roll label
_PAPER_GEOMETRY: dict[PaperWidth, tuple[int, int, str]] = {
    PaperWidth.NARROW: (32, 384, "58mm"),
    PaperWidth.MEDIUM: (42, 512, "76mm"),
    PaperWidth.WIDE: (48, 576, "80mm"),
}


class PrinterRole(str, Enum):
    KITCHEN = "kitchen"
    COUNTER = "counter"
    BAR = "bar"


class TransportKind(str, Enum):
    USB = "usb"
    NETWORK = "network"
    QUEUED = "queued"


class TaxMode(str, Enum):
    DISABLED = "disabled"
    SINGLE = "single"
    SPLIT = "split"


class DiscountKind(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DocumentKind(str, Enum):
    TICKET = "ticket"
    BILL = "bill"
    TEST = "test"


class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class OrderLine:
    """One product+portion entry in an active order."""

    line_id: str
    product_id: str
    name: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal = Decimal("0")
    code: str = ""
    portion: str = "single"
    notes: str = ""
    custom_price: bool = False
    sent_to_kitchen: bool = False
    printed_quantity: int = 0

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def display_name(self) -> str:
        if self.portion and self.portion != "single":
            return f"{self.name} ({self.portion})"
        return self.name


@dataclass(frozen=True)
class DeltaLine:
    """The part of an order line the kitchen has not seen yet."""

    line_id: str
    name: str
    portion: str
    quantity: int
    unit_price: Decimal
    tax_rate: Decimal
    notes: str
    printed_through: int

    @property
    def display_name(self) -> str:
        if self.portion and self.portion != "single":
            return f"{self.name} ({self.portion})"
        return self.name


@dataclass(frozen=True)
class Discount:
    kind: DiscountKind
    value: Decimal
    reason: str = ""


@dataclass(frozen=True)
class TaxComponent:
    """One printed tax line, e.g. CGST @ 2.5%."""

    label: str
    rate: Decimal | None
    amount: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_amount: Decimal
    tax_by_rate: dict[Decimal, Decimal]
    tax_total: Decimal
    tax_components: tuple[TaxComponent, ...]
    unrounded_total: Decimal
    final_amount: Decimal
    round_off: Decimal
    tax_mode: TaxMode = TaxMode.SPLIT
    discount: Discount | None = None


@dataclass(frozen=True)
class BusinessIdentity:
    name: str
    address: str = ""
    phone: str = ""
    tax_id: str = ""
    license_id: str = ""
    footer: str = "THANKS FOR VISIT"
    pure_veg: bool = True
    currency_symbol: str = "Rs."


@dataclass(frozen=True)
class DocumentRow:
    """One item row; ticket rows carry no prices."""

    name: str
    quantity: int
    unit_price: Decimal | None = None
    amount: Decimal | None = None
    notes: str = ""


@dataclass(frozen=True)
class TotalsEntry:
    label: str
    value: str
    emphasis: bool = False


@dataclass(frozen=True)
class PrintableDocument:
    """A fully laid-out ticket or bill, bound to a paper width class."""

    kind: DocumentKind
    paper: PaperWidth
    number: str
    table_label: str
    printed_at: datetime
    rows: tuple[DocumentRow, ...]
    identity: BusinessIdentity | None = None
    header_lines: tuple[str, ...] = ()
    banner: tuple[str, str] | None = None
    totals: tuple[TotalsEntry, ...] = ()
    footer_lines: tuple[str, ...] = ()
    reprint: bool = False

    @property
    def total_quantity(self) -> int:
        return sum(row.quantity for row in self.rows)


@dataclass
class PrinterDescriptor:
    printer_id: str
    name: str
    transport: TransportKind
    role: PrinterRole = PrinterRole.COUNTER
    paper: PaperWidth = PaperWidth.WIDE
    vendor_id: int | None = None
    product_id: int | None = None
    host: str | None = None
    port: int | None = None
    manufacturer: str = ""
    is_active: bool = True
    is_default: bool = False

    @property
    def address(self) -> str:
        if self.transport is TransportKind.USB:
            return f"usb:{(self.vendor_id or 0):04x}:{(self.product_id or 0):04x}"
        if self.transport is TransportKind.NETWORK:
            return f"tcp:{self.host}:{self.port}"
        return f"queue:{self.role.value}"


@dataclass(frozen=True)
class DiscoveredPrinter:
    """A device seen on a bus or network, not yet configured."""

    name: str
    transport: TransportKind
    vendor_id: int | None = None
    product_id: int | None = None
    host: str | None = None
    port: int | None = None
    manufacturer: str = ""


@dataclass
class PrintJob:
    job_id: str
    bill_id: str
    kind: DocumentKind
    printer_role: PrinterRole
    payload: str
    status: JobStatus
    origin: str
    created_at: datetime
    processed_at: datetime | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class PrintResult:
    """Outcome of a print request, shown to the operator."""

    success: bool
    method: str
    message: str = ""
    reason: str | None = None
    hints: tuple[str, ...] = ()
    job_id: str | None = None
    duplicate: bool = False
    details: dict[str, str] = field(default_factory=dict)
