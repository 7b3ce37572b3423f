"""ESC/POS command encoding.

Everything here is a pure transformation from laid-out content to bytes; the
transport is never touched.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from escpos.constants import ESC, GS, HW_INIT, PAPER_FULL_CUT, PAPER_PART_CUT, TXT_STYLE

from posreceipt.config import RASTER_MAX_BLOCK_ROWS, RASTER_THRESHOLD
from posreceipt.models import PaperWidth, PrintableDocument
from posreceipt.text_layout import Align, TextLine, TextSize, layout_document, rule

LF = b"\n"
LINE_SPACING_DEFAULT = ESC + b"2"
CASH_DRAWER_PULSE = ESC + b"p" + bytes((0x00, 0x19, 0xFA))
RASTER_HEADER = GS + b"v0"
TEXT_FEED_LINES = 3
RASTER_FEED_LINES = 4

_ALIGN_CODES = {
    Align.LEFT: TXT_STYLE["align"]["left"],
    Align.CENTER: TXT_STYLE["align"]["center"],
    Align.RIGHT: TXT_STYLE["align"]["right"],
}


class EscPosBuilder:
    """Accumulates ESC/POS commands into a byte buffer."""

    def __init__(self, encoding: str = "cp437") -> None:
        self._buffer = bytearray()
        self.encoding = encoding
        self.initialize()

    def initialize(self) -> EscPosBuilder:
        self._buffer += HW_INIT
        self._buffer += LINE_SPACING_DEFAULT
        return self

    def align(self, alignment: Align) -> EscPosBuilder:
        self._buffer += _ALIGN_CODES[alignment]
        return self

    def bold(self, on: bool) -> EscPosBuilder:
        self._buffer += TXT_STYLE["bold"][on]
        return self

    def size(self, size: TextSize) -> EscPosBuilder:
        self._buffer += GS + b"!" + bytes((int(size),))
        return self

    def line_spacing(self, dots: int) -> EscPosBuilder:
        self._buffer += ESC + b"3" + bytes((dots & 0xFF,))
        return self

    def reset_line_spacing(self) -> EscPosBuilder:
        self._buffer += LINE_SPACING_DEFAULT
        return self

    def text(self, text: str) -> EscPosBuilder:
        self._buffer += text.encode(self.encoding, errors="replace")
        return self

    def line(self, text: str = "") -> EscPosBuilder:
        return self.text(text).newline()

    def newline(self, count: int = 1) -> EscPosBuilder:
        self._buffer += LF * count
        return self

    def feed(self, lines: int = 3) -> EscPosBuilder:
        self._buffer += ESC + b"d" + bytes((lines & 0xFF,))
        return self

    def cut(self, partial: bool = True) -> EscPosBuilder:
        self._buffer += PAPER_PART_CUT if partial else PAPER_FULL_CUT
        return self

    def raster(self, width_bytes: int, height: int, data: bytes, mode: int = 0) -> EscPosBuilder:
        """GS v 0 m xL xH yL yH d1...dk"""
        if len(data) != width_bytes * height:
            raise ValueError(f"raster data is {len(data)} bytes, expected {width_bytes * height}")
        self._buffer += RASTER_HEADER + bytes(
            (
                mode & 0xFF,
                width_bytes & 0xFF,
                (width_bytes >> 8) & 0xFF,
                height & 0xFF,
                (height >> 8) & 0xFF,
            )
        )
        self._buffer += data
        return self

    def cash_drawer(self) -> EscPosBuilder:
        self._buffer += CASH_DRAWER_PULSE
        return self

    def build(self) -> bytes:
        return bytes(self._buffer)


def encode_text(lines: Iterable[TextLine], feed: int = TEXT_FEED_LINES, cut: bool = True) -> bytes:
    """Encode styled text lines, emitting control codes only when the style changes."""
    builder = EscPosBuilder()
    align, bold, size = Align.LEFT, False, TextSize.NORMAL
    for line in lines:
        if line.align != align:
            builder.align(line.align)
            align = line.align
        if line.bold != bold:
            builder.bold(line.bold)
            bold = line.bold
        if line.size != size:
            builder.size(line.size)
            size = line.size
        builder.line(line.text)
    if size != TextSize.NORMAL:
        builder.size(TextSize.NORMAL)
    if bold:
        builder.bold(False)
    if align != Align.LEFT:
        builder.align(Align.LEFT)
    builder.feed(feed)
    if cut:
        builder.cut()
    return builder.build()


def encode_document_text(document: PrintableDocument) -> bytes:
    return encode_text(layout_document(document))


def pack_image(image: object, threshold: int = RASTER_THRESHOLD) -> tuple[int, int, bytes]:
    """Threshold an image to black/white and pack one bit per dot, MSB first, row-major.

    Returns ``(width_bytes, height, data)``; rows are padded to a whole byte.
    """
    gray = image.convert("L")
    # Dark pixels become set bits, which the printer burns as dots.
    mono = gray.point(lambda value: 255 if value < threshold else 0, mode="1")
    width_bytes = (mono.width + 7) // 8
    return width_bytes, mono.height, mono.tobytes()


def encode_raster(image: object, max_block_rows: int = RASTER_MAX_BLOCK_ROWS) -> bytes:
    """Encode a rendered canvas as raster blocks followed by a feed and partial cut."""
    width_bytes, height, data = pack_image(image)
    builder = EscPosBuilder()
    builder.line_spacing(0)
    row = 0
    while row < height:
        rows = min(max_block_rows, height - row)
        start = row * width_bytes
        builder.raster(width_bytes, rows, data[start : start + rows * width_bytes])
        row += rows
    builder.reset_line_spacing()
    builder.feed(RASTER_FEED_LINES)
    builder.cut()
    return builder.build()


def cash_drawer_command() -> bytes:
    """Pulse drawer pin 2 (ESC p 0 25 250); independent of any document."""
    return EscPosBuilder().cash_drawer().build()


def self_test_lines(
    title: str,
    printer_label: str,
    paper: PaperWidth = PaperWidth.WIDE,
    now: datetime | None = None,
) -> list[TextLine]:
    now = now or datetime.now()
    width = paper.chars
    return [
        TextLine(title.upper()[: width // 2], Align.CENTER, bold=True, size=TextSize.DOUBLE),
        TextLine(rule("-", width), Align.CENTER),
        TextLine(printer_label[:width], Align.CENTER),
        TextLine("Printer Connected!", Align.CENTER, bold=True),
        TextLine(f"{now:%d/%m/%Y %I:%M:%S %p}", Align.CENTER),
        TextLine(rule("-", width), Align.CENTER),
    ]


def encode_self_test(
    title: str,
    printer_label: str,
    paper: PaperWidth = PaperWidth.WIDE,
    now: datetime | None = None,
) -> bytes:
    return encode_text(self_test_lines(title, printer_label, paper, now))
