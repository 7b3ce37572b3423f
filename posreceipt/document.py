"""Build immutable printable documents from order state and totals."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Iterable, Sequence

from posreceipt.errors import EmptyDocument
from posreceipt.models import (
    BusinessIdentity,
    DeltaLine,
    DiscountKind,
    DocumentKind,
    DocumentRow,
    OrderLine,
    OrderTotals,
    PaperWidth,
    PrintableDocument,
    TotalsEntry,
)

# Round-off below this is not worth a line on the bill.
ROUND_OFF_EPSILON = Decimal("0.01")


def format_amount(amount: Decimal) -> str:
    return f"{amount:.2f}"


def format_rate_value(value: Decimal) -> str:
    return format(Decimal(value).normalize(), "f")


def short_bill_number(bill_number: str) -> str:
    """Drop any prefix such as ``BILL-2024-``; the counter suffix is what gets printed."""
    return bill_number.split("-")[-1]


def identity_lines(identity: BusinessIdentity) -> tuple[str, ...]:
    lines = [identity.name.upper() or "RESTAURANT"]
    if identity.address:
        lines.extend(part.strip() for part in identity.address.split(",") if part.strip())
    if identity.phone:
        lines.append(f"Mobile : {identity.phone}")
    return tuple(lines)


def totals_entries(totals: OrderTotals, currency_symbol: str = "Rs.") -> tuple[TotalsEntry, ...]:
    entries = [TotalsEntry(f"Total {currency_symbol.upper()} :", format_amount(totals.subtotal))]

    if totals.discount_amount > 0:
        discount = totals.discount
        if discount is not None and discount.kind is DiscountKind.PERCENTAGE:
            label = f"Discount ({format_rate_value(discount.value)}%) :"
        else:
            label = "Discount :"
        entries.append(TotalsEntry(label, f"-{format_amount(totals.discount_amount)}"))

    for component in totals.tax_components:
        entries.append(TotalsEntry(f"{component.label} :", format_amount(component.amount)))

    if abs(totals.round_off) >= ROUND_OFF_EPSILON:
        sign = "-" if totals.round_off < 0 else "+"
        entries.append(TotalsEntry("Round Off :", f"{sign}{format_amount(abs(totals.round_off))}"))

    entries.append(TotalsEntry(f"Net {currency_symbol} :", format_amount(totals.final_amount), emphasis=True))
    return tuple(entries)


def closing_lines(identity: BusinessIdentity) -> tuple[str, ...]:
    lines = []
    if identity.license_id:
        lines.append(f"FSSAI LIC No : {identity.license_id}")
    if identity.tax_id:
        lines.append(f"GSTIN : {identity.tax_id}")
    if identity.footer:
        lines.append(identity.footer)
    return tuple(lines)


def build_bill_document(
    lines: Sequence[OrderLine],
    totals: OrderTotals,
    identity: BusinessIdentity,
    *,
    bill_number: str,
    table_label: str,
    paper: PaperWidth = PaperWidth.WIDE,
    printed_at: datetime | None = None,
    show_portion: bool = True,
    reprint: bool = False,
) -> PrintableDocument:
    """Lay out the customer bill. An empty bill is not printable."""
    if not lines:
        raise EmptyDocument("Cannot print a bill with no items")

    rows = tuple(
        DocumentRow(
            name=line.display_name if show_portion else line.name,
            quantity=line.quantity,
            unit_price=line.unit_price,
            amount=line.line_total,
            notes=line.notes,
        )
        for line in lines
    )
    return PrintableDocument(
        kind=DocumentKind.BILL,
        paper=paper,
        number=short_bill_number(bill_number),
        table_label=table_label,
        printed_at=printed_at or datetime.now(),
        rows=rows,
        identity=identity,
        header_lines=identity_lines(identity),
        banner=("TAX INVOICE", "PURE VEG" if identity.pure_veg else ""),
        totals=totals_entries(totals, identity.currency_symbol),
        footer_lines=closing_lines(identity),
        reprint=reprint,
    )


def build_ticket_document(
    delta: Iterable[DeltaLine],
    *,
    kot_number: str,
    table_label: str,
    paper: PaperWidth = PaperWidth.WIDE,
    printed_at: datetime | None = None,
) -> PrintableDocument:
    """Lay out a kitchen ticket from pending delta lines; no prices are carried."""
    rows = tuple(
        DocumentRow(name=f"{idx}. {item.display_name}", quantity=item.quantity, notes=item.notes)
        for idx, item in enumerate(delta, start=1)
    )
    if not rows:
        raise EmptyDocument("Nothing new to send to the kitchen", hints=("Add or increase items first",))
    return PrintableDocument(
        kind=DocumentKind.TICKET,
        paper=paper,
        number=kot_number,
        table_label=table_label,
        printed_at=printed_at or datetime.now(),
        rows=rows,
    )
