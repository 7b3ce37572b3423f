"""Bitmap bill rendering with Pillow.

The canvas is sized to the printable dot width of the paper class, drawn with
a vertical cursor, then cropped to the cursor so no blank tail is fed.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from posreceipt.config import PRINTER_BOLD_FONT_PATH, PRINTER_FONT_PATH, PRINTER_FONT_SIZE, PRINTER_TITLE_FONT_SIZE
from posreceipt.document import format_amount
from posreceipt.errors import EmptyDocument
from posreceipt.models import DocumentKind, PaperWidth, PrintableDocument

logger = logging.getLogger(__name__)

_PADDING = 14
_SECTION_GAP = 12
_BORDER_PX = 2
_THIN_PX = 1
_BANNER_HEIGHT = 35
_DASH_PX = 6
_NOTE_INDENT_PX = 12
_FONT_OVERRIDE_ENV = "POS_PRINTER_FONT_PATH"
_LINUX_FONT_FALLBACKS = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/TTF/DejaVuSansMono.ttf",
    "/usr/share/fonts/dejavu/DejaVuSansMono.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Regular.ttf",
    "/usr/share/fonts/liberation/LiberationMono-Regular.ttf",
)
_BOLD_FALLBACKS = (
    "/usr/share/fonts/truetype/dejavu/DejaVuSansMono-Bold.ttf",
    "/usr/share/fonts/TTF/DejaVuSansMono-Bold.ttf",
    "/usr/share/fonts/truetype/liberation/LiberationMono-Bold.ttf",
)


def resolve_font_path(bold: bool = False) -> str | None:
    """
    Resolve a monospace font file for receipt rendering.

    Resolution order:
    1. POS_PRINTER_FONT_PATH (if set)
    2. PRINTER_FONT_PATH / PRINTER_BOLD_FONT_PATH
    3. Known Linux fallbacks

    Returns ``None`` when nothing usable exists; callers then use Pillow's
    built-in font.
    """
    env_override = os.environ.get(_FONT_OVERRIDE_ENV, "").strip()
    candidates: list[str] = []
    if bold:
        candidates.append(PRINTER_BOLD_FONT_PATH)
        candidates.extend(_BOLD_FALLBACKS)
    if env_override:
        candidates.append(env_override)
    candidates.append(PRINTER_FONT_PATH)
    candidates.extend(_LINUX_FONT_FALLBACKS)

    seen: set[str] = set()
    for candidate in candidates:
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        if Path(candidate).is_file():
            return candidate
    return None


def load_font(size: int, bold: bool = False) -> object:
    from PIL import ImageFont

    path = resolve_font_path(bold)
    if path is None:
        logger.debug("no TrueType font found, using Pillow default")
        return ImageFont.load_default()
    return ImageFont.truetype(path, size)


@dataclass
class _Fonts:
    normal: object
    bold: object
    title: object
    line_height: int


def _fonts_for(paper: PaperWidth) -> _Fonts:
    scale = paper.dots / PaperWidth.WIDE.dots
    size = max(12, int(round(PRINTER_FONT_SIZE * scale)))
    title_size = max(14, int(round(PRINTER_TITLE_FONT_SIZE * scale)))
    return _Fonts(
        normal=load_font(size),
        bold=load_font(size, bold=True),
        title=load_font(title_size, bold=True),
        line_height=size + 6,
    )


def _text_width(draw: object, text: str, font: object) -> int:
    bbox = draw.textbbox((0, 0), text, font=font)
    return bbox[2] - bbox[0]


def _fit_text_to_px(draw: object, text: str, font: object, max_width_px: int) -> str:
    if _text_width(draw, text, font) <= max_width_px:
        return text
    ellipsis = ".."
    trimmed = text
    while trimmed:
        candidate = f"{trimmed}{ellipsis}"
        if _text_width(draw, candidate, font) <= max_width_px:
            return candidate
        trimmed = trimmed[:-1]
    return ellipsis


class _Canvas:
    """A white 1-bit canvas with a vertical cursor."""

    def __init__(self, width: int, height: int, fonts: _Fonts) -> None:
        from PIL import Image, ImageDraw

        self.width = width
        self.image = Image.new("1", (width, height), color=1)
        self.draw = ImageDraw.Draw(self.image)
        self.fonts = fonts
        self.y = _PADDING

    @property
    def right(self) -> int:
        return self.width - _PADDING

    def text_left(self, text: str, x: int, font: object) -> None:
        self.draw.text((x, self.y), text, font=font, fill=0)

    def text_right(self, text: str, x_right: int, font: object) -> None:
        self.draw.text((x_right - _text_width(self.draw, text, font), self.y), text, font=font, fill=0)

    def text_center(self, text: str, center_x: int, font: object) -> None:
        self.draw.text((center_x - _text_width(self.draw, text, font) // 2, self.y), text, font=font, fill=0)

    def advance(self, px: int | None = None) -> None:
        self.y += self.fonts.line_height if px is None else px

    def solid_rule(self, x0: int | None = None, thickness: int = _BORDER_PX) -> None:
        x0 = _PADDING if x0 is None else x0
        self.draw.rectangle((x0, self.y, self.right, self.y + thickness - 1), fill=0)

    def dashed_rule(self, x0: int | None = None) -> None:
        x = _PADDING if x0 is None else x0
        while x < self.right:
            self.draw.line((x, self.y, min(x + _DASH_PX, self.right), self.y), fill=0, width=_THIN_PX)
            x += _DASH_PX * 2

    def crop(self, height: int) -> object:
        return self.image.crop((0, 0, self.width, min(height, self.image.height)))


def _estimate_height(document: PrintableDocument, line_height: int) -> int:
    text_rows = (
        len(document.header_lines)
        + len(document.rows) * 2
        + len(document.totals)
        + len(document.footer_lines)
        + 16
    )
    return _PADDING * 2 + _BANNER_HEIGHT + _SECTION_GAP * 12 + text_rows * line_height


def _draw_header(canvas: _Canvas, document: PrintableDocument) -> None:
    center = canvas.width // 2
    for idx, line in enumerate(document.header_lines):
        font = canvas.fonts.title if idx == 0 else canvas.fonts.normal
        canvas.text_center(line, center, font)
        canvas.advance()
    canvas.solid_rule()
    canvas.advance(canvas.fonts.line_height // 2)


def _draw_banner(canvas: _Canvas, document: PrintableDocument) -> None:
    if document.banner is None:
        return
    left, right = document.banner
    top = canvas.y
    canvas.draw.rectangle((_PADDING, top, canvas.right, top + _BANNER_HEIGHT), outline=0, width=_BORDER_PX)
    middle = canvas.width // 2
    canvas.draw.line((middle, top, middle, top + _BANNER_HEIGHT), fill=0, width=_THIN_PX)
    canvas.y = top + (_BANNER_HEIGHT - canvas.fonts.line_height) // 2 + 2
    canvas.text_center(left, canvas.width // 4, canvas.fonts.bold)
    if right:
        canvas.text_center(right, (canvas.width // 4) * 3, canvas.fonts.bold)
    canvas.y = top + _BANNER_HEIGHT + _SECTION_GAP


def _draw_bill_info(canvas: _Canvas, document: PrintableDocument) -> None:
    bold = canvas.fonts.bold
    canvas.solid_rule()
    canvas.advance(_SECTION_GAP)
    if document.reprint:
        canvas.text_center("** REPRINT **", canvas.width // 2, bold)
        canvas.advance()
    canvas.text_left(f"Bill No: {document.number}", _PADDING, bold)
    canvas.text_right(document.table_label, canvas.right, bold)
    canvas.advance()
    canvas.solid_rule(thickness=_THIN_PX)
    canvas.advance(_SECTION_GAP // 2)
    canvas.text_left(f"Date:   {document.printed_at:%d/%m/%Y}", _PADDING, bold)
    canvas.text_right(f"{document.printed_at:%I:%M %p}", canvas.right, bold)
    canvas.advance()
    canvas.solid_rule()
    canvas.advance(_SECTION_GAP // 2)


def _draw_items(canvas: _Canvas, document: PrintableDocument) -> None:
    qty_x = _PADDING + int(canvas.width * 0.52)
    rate_x = _PADDING + int(canvas.width * 0.66)
    amount_x = canvas.right
    bold, normal = canvas.fonts.bold, canvas.fonts.normal

    canvas.text_left("Description", _PADDING, bold)
    canvas.text_right("QTY", qty_x, bold)
    canvas.text_right("Rate", rate_x, bold)
    canvas.text_right("Amount", amount_x, bold)
    canvas.advance()
    canvas.dashed_rule()
    canvas.advance(_SECTION_GAP // 2)

    qty_width = _text_width(canvas.draw, "000", normal)
    name_room = qty_x - qty_width - _PADDING - 8
    for row in document.rows:
        canvas.text_left(_fit_text_to_px(canvas.draw, row.name, normal, name_room), _PADDING, normal)
        canvas.text_right(str(row.quantity), qty_x, normal)
        if row.unit_price is not None:
            canvas.text_right(format_amount(row.unit_price), rate_x, normal)
        if row.amount is not None:
            canvas.text_right(format_amount(row.amount), amount_x, normal)
        canvas.advance()
        if row.notes:
            note = _fit_text_to_px(canvas.draw, f">> {row.notes}", normal, canvas.right - _PADDING - _NOTE_INDENT_PX)
            canvas.text_left(note, _PADDING + _NOTE_INDENT_PX, normal)
            canvas.advance()
    canvas.advance(canvas.fonts.line_height // 2)


def _draw_totals(canvas: _Canvas, document: PrintableDocument) -> None:
    label_x = _PADDING + int(canvas.width * 0.38)
    canvas.dashed_rule(label_x)
    canvas.advance(_SECTION_GAP // 2)
    for entry in document.totals:
        font = canvas.fonts.bold if entry.emphasis else canvas.fonts.normal
        if entry.emphasis:
            canvas.solid_rule(label_x, thickness=_THIN_PX)
            canvas.advance(_SECTION_GAP // 3)
        canvas.text_left(entry.label, label_x, font)
        canvas.text_right(entry.value, canvas.right, font)
        canvas.advance()


def _draw_footer(canvas: _Canvas, document: PrintableDocument) -> None:
    canvas.solid_rule()
    canvas.advance(_SECTION_GAP)
    center = canvas.width // 2
    for line in document.footer_lines:
        canvas.text_center(line, center, canvas.fonts.normal)
        canvas.advance()


def render_bill_raster(document: PrintableDocument) -> object:
    """Render a bill document to a cropped 1-bit Pillow image."""
    if document.kind is not DocumentKind.BILL:
        raise ValueError(f"raster rendering is only used for bills, got {document.kind.value}")
    if not document.rows:
        raise EmptyDocument("Cannot print a bill with no items")

    fonts = _fonts_for(document.paper)
    canvas = _Canvas(document.paper.dots, _estimate_height(document, fonts.line_height), fonts)

    _draw_header(canvas, document)
    canvas.advance(_SECTION_GAP)
    _draw_banner(canvas, document)
    _draw_bill_info(canvas, document)
    canvas.advance(_SECTION_GAP)
    _draw_items(canvas, document)
    _draw_totals(canvas, document)
    canvas.advance(_SECTION_GAP)
    _draw_footer(canvas, document)

    height = canvas.y + _PADDING
    canvas.draw.rectangle((0, 0, canvas.width - 1, height - 1), outline=0, width=_BORDER_PX)
    return canvas.crop(height)
