"""Fixed character-grid layout for tickets and the text-mode bill."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from posreceipt.document import format_amount
from posreceipt.models import DocumentKind, PaperWidth, PrintableDocument

# Description/qty/rate/amount column widths; three single-space gutters fill the rest of the line.
_BILL_COLUMNS: dict[PaperWidth, tuple[int, int, int, int]] = {
    PaperWidth.NARROW: (13, 3, 6, 7),
    PaperWidth.MEDIUM: (20, 4, 7, 8),
    PaperWidth.WIDE: (20, 4, 10, 11),
}
_TOTALS_VALUE_WIDTH = 10
_PARTIAL_RULE_WIDTH = 16


class Align(IntEnum):
    LEFT = 0
    CENTER = 1
    RIGHT = 2


class TextSize(IntEnum):
    NORMAL = 0x00
    DOUBLE_HEIGHT = 0x10
    DOUBLE_WIDTH = 0x20
    DOUBLE = 0x30


@dataclass(frozen=True)
class TextLine:
    text: str
    align: Align = Align.LEFT
    bold: bool = False
    size: TextSize = TextSize.NORMAL


def fit(text: str, width: int) -> str:
    """Right-pad or truncate ``text`` to exactly ``width`` characters."""
    if width <= 0:
        return ""
    return text[:width].ljust(width)


def center_text(text: str, width: int) -> str:
    text = text[:width]
    pad = width - len(text)
    left = pad // 2
    return " " * left + text + " " * (pad - left)


def rule(char: str, width: int) -> str:
    return char * width


def two_columns(left: str, right: str, width: int) -> str:
    right = right[:width]
    max_left = max(0, width - len(right) - 1)
    left = left[:max_left]
    gap = max(1, width - len(left) - len(right)) if right else 0
    return (left + " " * gap + right)[:width] if right else left


def four_columns(cols: tuple[str, str, str, str], widths: tuple[int, int, int, int]) -> str:
    desc, qty, rate, amount = cols
    return " ".join(
        (
            fit(desc, widths[0]),
            qty[: widths[1]].rjust(widths[1]),
            rate[: widths[2]].rjust(widths[2]),
            amount[: widths[3]].rjust(widths[3]),
        )
    )


def box_line(width: int) -> str:
    return "+" + "_" * (width - 2) + "+"


def box_row(left: str, right: str, width: int) -> str:
    inner = width - 3
    half = inner // 2
    return f"|{center_text(left, half)}|{center_text(right, inner - half)}|"


def totals_line(label: str, value: str, width: int) -> str:
    line = f"{label} {value.rjust(_TOTALS_VALUE_WIDTH)}"
    return line[-width:].rjust(width)


def dotted_footer(text: str, width: int) -> str:
    if len(text) >= width:
        return text[:width]
    pad = width - len(text)
    left = pad // 2
    return "." * left + text + "." * (pad - left)


def layout_document(document: PrintableDocument) -> list[TextLine]:
    if document.kind is DocumentKind.BILL:
        return layout_bill(document)
    return layout_ticket(document)


def layout_bill(document: PrintableDocument) -> list[TextLine]:
    width = document.paper.chars
    columns = _BILL_COLUMNS[document.paper]
    out: list[TextLine] = [TextLine(rule("_", width))]

    for idx, line in enumerate(document.header_lines):
        out.append(TextLine(line[:width], Align.CENTER, bold=(idx == 0)))

    if document.banner is not None:
        out.append(TextLine(box_line(width)))
        out.append(TextLine(box_row(document.banner[0], document.banner[1], width)))
        out.append(TextLine(box_line(width)))

    if document.reprint:
        out.append(TextLine("** REPRINT **", Align.CENTER, bold=True))

    out.append(TextLine(two_columns(f"Bill No: {document.number}", document.table_label, width), bold=True))
    out.append(TextLine(rule("_", width)))
    out.append(
        TextLine(
            two_columns(
                f"Date : {document.printed_at:%d/%m/%Y}",
                f"Time : {document.printed_at:%I:%M %p}",
                width,
            ),
            bold=True,
        )
    )
    out.append(TextLine(rule("_", width)))
    out.append(TextLine(four_columns(("Desc", "QTY", "Rate", "Amount"), columns), bold=True))
    out.append(TextLine(rule(".", width)))

    for row in document.rows:
        out.append(
            TextLine(
                four_columns(
                    (
                        row.name.upper(),
                        str(row.quantity),
                        format_amount(row.unit_price) if row.unit_price is not None else "",
                        format_amount(row.amount) if row.amount is not None else "",
                    ),
                    columns,
                )
            )
        )
        if row.notes:
            out.append(TextLine(f"  {row.notes}"[:width]))

    out.append(TextLine(""))
    out.append(TextLine(" " * (width - _PARTIAL_RULE_WIDTH) + rule(".", _PARTIAL_RULE_WIDTH)))
    for entry in document.totals:
        out.append(TextLine(totals_line(entry.label, entry.value, width), Align.RIGHT, bold=entry.emphasis))
    out.append(TextLine(rule("_", width)))

    footer = list(document.footer_lines)
    closing = footer.pop() if footer else ""
    for line in footer:
        out.append(TextLine(line[:width], Align.CENTER))
    if closing:
        out.append(TextLine(dotted_footer(closing, width), Align.CENTER))
    out.append(TextLine(rule("_", width)))
    return out


def layout_ticket(document: PrintableDocument) -> list[TextLine]:
    width = document.paper.chars
    # Double-width characters take two cells.
    big_width = width // 2
    out = [
        TextLine(document.table_label.upper()[:big_width], Align.CENTER, bold=True, size=TextSize.DOUBLE),
        TextLine(rule("-", width)),
        TextLine(f"KOT #: {document.number}"[:width]),
        TextLine(
            two_columns(
                f"Date: {document.printed_at:%d/%m/%Y}",
                f"Time: {document.printed_at:%I:%M %p}",
                width,
            )
        ),
        TextLine(rule("-", width)),
        TextLine(two_columns("ITEM", "QTY", width), bold=True),
        TextLine(rule("-", width)),
    ]
    for row in document.rows:
        out.append(TextLine(two_columns(row.name, f"x{row.quantity}", width)))
        if row.notes:
            out.append(TextLine(f"   >> {row.notes}"[:width]))
    out.append(TextLine(rule("-", width)))
    out.append(TextLine(f"TOTAL ITEMS: {document.total_quantity}", Align.CENTER, bold=True))
    return out
