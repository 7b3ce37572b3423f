"""Operator console: build an order, send KOTs and print the bill."""

from __future__ import annotations

import logging
from typing import Callable

from rich.text import Text
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.css.query import NoMatches
from textual.events import Key
from textual.reactive import reactive
from textual.widgets import Header, Static

from posreceipt.config import DEBUG_LOG_PATH, PRINTER_STATUS_INTERVAL_SECONDS
from posreceipt.discount_modal import DiscountModal
from posreceipt.discovery import auto_add, discover_usb_printers
from posreceipt.document import format_amount, totals_entries
from posreceipt.errors import PosError
from posreceipt.menu import CATEGORY_NAMES, MenuItem, search_menu
from posreceipt.models import Discount, DiscountKind, OrderLine, PrinterRole, PrintResult, TaxMode
from posreceipt.order import OrderSession
from posreceipt.persistence import bootstrap_schema, default_printer_for_role
from posreceipt.pipeline import PrintPipeline
from posreceipt.transport import check_printer_dependencies, transport_for

logger = logging.getLogger(__name__)

_TAX_MODE_CYCLE = (TaxMode.SPLIT, TaxMode.SINGLE, TaxMode.DISABLED)
_MONITORED_ROLES = (PrinterRole.COUNTER, PrinterRole.KITCHEN)


def configure_logging(path: str = DEBUG_LOG_PATH, level: int = logging.DEBUG) -> None:
    """Send log records to a file; the terminal belongs to the console UI."""
    logging.basicConfig(
        filename=path,
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def badge_style(category: str) -> str:
    """Return a consistent badge style for category tags."""
    if category == "S":
        return "bold #ffffff on #b23a48"
    if category == "B":
        return "bold #ffffff on #2f6db5"
    return "bold #0b1f0f on #5fbf72"


def format_order_line(line: OrderLine) -> Text:
    """Render a line with its kitchen state: new, partly sent (+n pending) or sent."""
    text = Text()
    text.append(f"{line.quantity} x {line.display_name}")
    text.append(f"  {format_amount(line.line_total)}", style="dim")
    if not line.sent_to_kitchen:
        text.append(" NEW", style="bold #0b1f0f on #f2c14e")
    elif line.quantity > line.printed_quantity:
        text.append(f" +{line.quantity - line.printed_quantity}", style="bold #0b1f0f on #f2c14e")
    else:
        text.append(" KOT", style="bold #ffffff on #4a4a4a")
    if line.notes:
        text.append(f"\n      >> {line.notes}", style="italic")
    return text


def format_discount(discount: Discount) -> str:
    if discount.kind is DiscountKind.PERCENTAGE:
        return f"{discount.value}%"
    return format_amount(discount.value)


def format_result(result: PrintResult) -> str:
    if result.success:
        return result.message or f"Printed via {result.method}"
    hint = f" ({result.hints[0]})" if result.hints else ""
    return f"{result.message}{hint}"


def printer_status_line(roles: tuple[PrinterRole, ...] = _MONITORED_ROLES) -> str:
    """Probe the default printer of each role and summarise what the operator should know."""
    parts = []
    for role in roles:
        label = role.value.title()
        printer = default_printer_for_role(role)
        if printer is None:
            parts.append(f"{label}: not configured")
            continue
        transport = transport_for(printer)
        if transport is None:
            parts.append(f"{label}: queued")
            continue
        status = transport.probe()
        if not status.connected:
            logger.info("%s printer %s is %s: %s", role.value, printer.name, status.state, status.message)
        parts.append(f"{label}: {status.message}")
    return " | ".join(parts)


class PosConsoleApp(App):
    """A Textual app for building an order and printing its tickets and bill."""

    TITLE = "POS Receipt"
    SUB_TITLE = "Orders / KOT / Bill"

    CSS = """
    Screen {
        layout: vertical;
    }

    #main-layout {
        height: 1fr;
    }

    #orders-pane {
        width: 3fr;
        border: round $primary;
        padding: 1;
    }

    #search-pane {
        width: 2fr;
        border: round $secondary;
        padding: 1;
    }

    #search-bar {
        border: heavy $secondary;
        padding: 0 1;
        margin-bottom: 1;
        height: 6;
    }

    #results {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #orders-list {
        height: 1fr;
        border: tall $surface;
        padding: 0 1;
    }

    #totals {
        height: auto;
        padding: 0 1;
    }

    .pane-title {
        text-style: bold;
        margin-bottom: 1;
    }
    """

    input_state = reactive("normal")
    category = reactive("M")
    search_query = reactive("")
    selected_index = reactive(0)
    line_selected_index = reactive(None)

    BINDINGS = [
        ("tab", "cycle_results(1)", "Next result"),
        ("up", "cycle_results(-1)", "Previous result"),
        ("down", "cycle_results(1)", "Next result"),
        ("enter", "register_selected", "Register item"),
        ("backspace", "backspace_query", "Delete query char"),
        Binding("ctrl+k", "print_kot", "Print KOT", priority=True),
        Binding("ctrl+b", "print_bill", "Print bill", priority=True),
        Binding("ctrl+d", "discount", "Discount", priority=True),
        Binding("ctrl+g", "cycle_tax_mode", "GST mode", priority=True),
        Binding("ctrl+o", "open_drawer", "Drawer"),
        Binding("ctrl+t", "test_print", "Test print"),
        ("ctrl+c", "cancel_active_mode", "Exit active mode"),
        ("ctrl+q", "quit", "Quit"),
    ]

    def __init__(
        self,
        session: OrderSession | None = None,
        pipeline: PrintPipeline | None = None,
    ) -> None:
        super().__init__()
        self.session = session or OrderSession(table_number="1")
        self.pipeline = pipeline or PrintPipeline()
        self.system_status = ""
        self.printer_status = ""

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="orders-pane"):
                yield Static(id="order-title", classes="pane-title")
                yield Static("(no items yet)", id="orders-list")
                yield Static(id="totals")
            with Vertical(id="search-pane"):
                yield Static(id="search-bar")
                yield Static(id="results")

    def on_mount(self) -> None:
        bootstrap_schema()
        added, _ = auto_add(discover_usb_printers())
        if added:
            logger.info("auto-added %d printer(s)", added)
        _, msg = check_printer_dependencies()
        self.system_status = msg
        logger.info("console started for %s, printer status: %s", self.session.table_label, msg)
        self._refresh_all()
        self._check_printers()
        self.set_interval(PRINTER_STATUS_INTERVAL_SECONDS, self._check_printers)

    def _check_printers(self) -> None:
        # Network probes block for up to a second, so they run off the UI thread.
        self.run_worker(self._probe_printers, thread=True, exclusive=True, group="printer-status", exit_on_error=False)

    def _probe_printers(self) -> None:
        line = printer_status_line()
        self.call_from_thread(self._show_printer_status, line)

    def _show_printer_status(self, line: str) -> None:
        self.printer_status = line
        self._refresh_search_bar()

    def _modal_open(self) -> bool:
        return isinstance(self.screen, DiscountModal)

    def on_key(self, event: Key) -> None:
        if self._modal_open():
            return

        if not event.is_printable or not event.character or len(event.character) != 1 or not event.character.isalnum():
            return

        key = event.character.lower()
        if self.input_state == "normal":
            if key == "j":
                self._move_line_selection(1)
                event.stop()
                return

            if key == "k":
                self._move_line_selection(-1)
                event.stop()
                return

            if key == "i":
                self._change_selected_quantity(1)
                event.stop()
                return

            if key == "x":
                self._change_selected_quantity(-1)
                event.stop()
                return

            if key == "d":
                self._remove_selected_line()
                event.stop()
                return

            if key.upper() not in CATEGORY_NAMES:
                return

            self.category = key.upper()
            self.input_state = "active"
            self.search_query = ""
            self.selected_index = 0
            self._refresh_search()
            event.stop()
            return

        self.search_query += event.character
        self.selected_index = 0
        self._refresh_search()
        event.stop()

    def action_cancel_active_mode(self) -> None:
        if self._modal_open() or self.input_state == "normal":
            return

        self.input_state = "normal"
        self.search_query = ""
        self.selected_index = 0
        self._refresh_search()

    def action_cycle_results(self, delta: int) -> None:
        if self._modal_open() or self.input_state != "active":
            return

        results = self._filtered_results()
        if not results:
            self.selected_index = 0
            self._refresh_results(results)
            return
        self.selected_index = (self.selected_index + delta) % len(results)
        self._refresh_results(results)

    def action_register_selected(self) -> None:
        if self._modal_open() or self.input_state != "active":
            return

        results = self._filtered_results()
        if not results:
            return

        item = results[self.selected_index]
        line = self.session.add_item(
            item.product_id,
            item.name,
            item.price,
            tax_rate=item.tax_rate,
            portion=item.portion,
            code=item.code,
        )
        self.line_selected_index = self.session.lines.index(line)
        self._refresh_orders()

    def action_backspace_query(self) -> None:
        if self._modal_open() or self.input_state != "active":
            return

        if not self.search_query:
            return
        self.search_query = self.search_query[:-1]
        self.selected_index = 0
        self._refresh_search()

    def action_discount(self) -> None:
        if self._modal_open() or self.session.is_empty:
            return
        self.push_screen(
            DiscountModal(self.session.set_discount, self.session.clear_discount, self.session.discount),
            lambda _: self._refresh_orders(),
        )

    def action_cycle_tax_mode(self) -> None:
        if self._modal_open():
            return
        idx = _TAX_MODE_CYCLE.index(self.session.tax_mode)
        self.session.tax_mode = _TAX_MODE_CYCLE[(idx + 1) % len(_TAX_MODE_CYCLE)]
        self._set_status(f"GST mode: {self.session.tax_mode.value}")
        self._refresh_orders()

    def action_print_kot(self) -> None:
        if self._modal_open():
            return
        if self.input_state != "normal":
            self._set_status("Print only in NORMAL mode (Ctrl+C to exit active)")
            return
        self._run_print("KOT", lambda: self.pipeline.print_kitchen_ticket(self.session))

    def action_print_bill(self) -> None:
        if self._modal_open():
            return
        if self.input_state != "normal":
            self._set_status("Print only in NORMAL mode (Ctrl+C to exit active)")
            return
        if self.session.is_empty:
            self._set_status("Nothing to bill")
            return
        self._run_print("Bill", lambda: self.pipeline.print_bill(self.session))

    def action_open_drawer(self) -> None:
        self._run_print("Drawer", lambda: self.pipeline.open_cash_drawer())

    def action_test_print(self) -> None:
        self._run_print("Test print", lambda: self.pipeline.test_print(PrinterRole.COUNTER))

    def _run_print(self, label: str, job: Callable[[], PrintResult]) -> None:
        try:
            result = job()
        except PosError as exc:
            logger.warning("%s rejected (%s): %s", label, exc.reason, exc.message)
            self._set_status(f"{label}: {exc.message}")
            return
        self._set_status(f"{label}: {format_result(result)}")
        self._refresh_orders()

    def _set_status(self, message: str) -> None:
        self.system_status = message
        self._refresh_search()

    def _filtered_results(self) -> list[MenuItem]:
        return search_menu(self.category, self.search_query)

    def _refresh_all(self) -> None:
        self._refresh_orders()
        self._refresh_search()

    def _move_line_selection(self, delta: int) -> None:
        if self.session.is_empty:
            return

        total = len(self.session.lines)
        if self.line_selected_index is None:
            self.line_selected_index = 0 if delta > 0 else total - 1
        else:
            self.line_selected_index = (self.line_selected_index + delta) % total
        self._refresh_orders()

    def _selected_line(self) -> OrderLine | None:
        if self.line_selected_index is None:
            return None
        if not (0 <= self.line_selected_index < len(self.session.lines)):
            return None
        return self.session.lines[self.line_selected_index]

    def _change_selected_quantity(self, step: int) -> None:
        line = self._selected_line()
        if line is None:
            return
        discount = self.session.discount
        try:
            if line.quantity + step < 1:
                self.session.remove_line(line.line_id)
            else:
                self.session.update_quantity(line.line_id, line.quantity + step)
        except PosError as exc:
            self._set_status(exc.message)
            return
        self._note_dropped_discount(discount)
        self._refresh_orders()

    def _remove_selected_line(self) -> None:
        line = self._selected_line()
        if line is None:
            return
        discount = self.session.discount
        try:
            self.session.remove_line(line.line_id)
        except PosError as exc:
            self._set_status(exc.message)
            return
        self._note_dropped_discount(discount)
        self._refresh_orders()

    def _note_dropped_discount(self, before: Discount | None) -> None:
        if before is not None and self.session.discount is None:
            self._set_status(f"Discount {format_discount(before)} removed: it exceeds the new subtotal")

    def _visible_rows(self, widget: Static) -> int:
        height = widget.size.height
        if height <= 0:
            return 8
        return max(1, height)

    def _window_bounds(self, total: int, rows: int, selected: int | None) -> tuple[int, int]:
        if total <= 0:
            return (0, 0)

        rows = max(1, rows)
        if total <= rows:
            return (0, total)

        if selected is None:
            start = 0
        else:
            start = max(0, selected - rows // 2)
            start = min(start, total - rows)

        return (start, start + rows)

    def _refresh_orders(self) -> None:
        try:
            title_widget = self.query_one("#order-title", Static)
            orders_widget = self.query_one("#orders-list", Static)
            totals_widget = self.query_one("#totals", Static)
        except NoMatches:
            return
        title_widget.update(f"Order {self.session.table_label}")
        lines = self.session.lines
        if not lines:
            self.line_selected_index = None
            orders_widget.update("(no items yet)")
            totals_widget.update("")
            return

        if self.line_selected_index is not None and self.line_selected_index >= len(lines):
            self.line_selected_index = len(lines) - 1

        # Order lines can wrap onto a note row, so budget two rows each.
        visible_rows = max(1, self._visible_rows(orders_widget) // 2)
        start, end = self._window_bounds(len(lines), visible_rows, self.line_selected_index)

        text = Text()
        if start > 0:
            text.append("⋮\n", style="dim")
        for idx in range(start, end):
            if idx > start:
                text.append("\n")
            text.append("➤ " if idx == self.line_selected_index else "  ")
            text.append(f"{idx + 1}. ")
            text.append_text(format_order_line(lines[idx]))
        if end < len(lines):
            text.append("\n⋮", style="dim")
        orders_widget.update(text)

        try:
            entries = totals_entries(self.session.totals())
        except PosError as exc:
            logger.warning("totals unavailable for %s: %s", self.session.table_label, exc.message)
            totals_widget.update(Text(exc.message, style="bold red"))
            return
        totals = Text()
        for entry in entries:
            if totals:
                totals.append("\n")
            totals.append(f"{entry.label} {entry.value}", style="bold" if entry.emphasis else "")
        totals_widget.update(totals)

    def _refresh_search(self) -> None:
        self._refresh_search_bar()
        if self.input_state == "normal":
            self._refresh_results([])
            return
        self._refresh_results(self._filtered_results())

    def _refresh_search_bar(self) -> None:
        try:
            bar = self.query_one("#search-bar", Static)
        except NoMatches:
            return
        if self.input_state == "normal":
            status = self.system_status or "Ready"
            printers = self.printer_status or "Printers: checking..."
            bar.update(f"S/M/B search. J/K select, I/X qty, D remove.\nCtrl+K KOT, Ctrl+B bill, Ctrl+D discount.\n{status}\n{printers}")
            return

        text = Text()
        text.append(self.category, style=badge_style(self.category))
        text.append(f" {CATEGORY_NAMES[self.category]}: {self.search_query}")
        bar.update(text)

    def _refresh_results(self, results: list[MenuItem]) -> None:
        try:
            results_widget = self.query_one("#results", Static)
        except NoMatches:
            return
        if self.input_state == "normal":
            results_widget.update("")
            return

        if not results:
            results_widget.update("No results")
            return

        if self.selected_index >= len(results):
            self.selected_index = 0

        visible_rows = self._visible_rows(results_widget)
        start, end = self._window_bounds(len(results), visible_rows, self.selected_index)

        text = Text()
        if start > 0:
            text.append("⋮\n", style="dim")
        for idx in range(start, end):
            if idx > start:
                text.append("\n")
            pointer = "➤ " if idx == self.selected_index else "  "
            item = results[idx]
            text.append(f"{pointer}{item.code} {item.label}  {format_amount(item.price)}")
        if end < len(results):
            text.append("\n⋮", style="dim")
        results_widget.update(text)
