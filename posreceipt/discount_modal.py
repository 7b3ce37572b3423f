"""Discount entry modal screen."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Callable

from textual.app import ComposeResult
from textual.containers import Container
from textual.events import Key
from textual.screen import ModalScreen
from textual.widgets import Static

from posreceipt.errors import InvalidDiscount
from posreceipt.models import Discount, DiscountKind


class DiscountModal(ModalScreen[Discount | None]):
    """Prompt for a percentage or fixed discount on the current order.

    ``apply`` validates and stores the discount; its rejection message is shown
    in place so the operator can correct the value.
    """

    CSS = """
    DiscountModal {
        align: center middle;
        background: $background 60%;
    }

    #discount-dialog {
        width: 56;
        height: auto;
        border: round $secondary;
        background: $panel;
        padding: 1 2;
    }

    #discount-title {
        text-style: bold;
        margin-bottom: 1;
        color: white;
    }

    #discount-kind {
        color: white;
        margin-bottom: 1;
    }

    #discount-value {
        border: heavy $secondary;
        padding: 0 1;
        color: white;
        margin-bottom: 1;
    }

    #discount-error {
        color: #ffb3b3;
        margin-bottom: 1;
    }

    #discount-help {
        color: #dddddd;
    }
    """

    def __init__(
        self,
        apply: Callable[[DiscountKind, Decimal], Discount],
        clear: Callable[[], None],
        current: Discount | None = None,
    ) -> None:
        super().__init__()
        self._apply_discount = apply
        self._clear_discount = clear
        self.kind = current.kind if current is not None else DiscountKind.PERCENTAGE
        self.value = str(current.value) if current is not None else ""
        self.error = ""

    def compose(self) -> ComposeResult:
        with Container(id="discount-dialog"):
            yield Static("Discount", id="discount-title")
            yield Static(id="discount-kind")
            yield Static(id="discount-value")
            yield Static(id="discount-error")
            yield Static(
                "P percent, F fixed. Enter apply (empty clears). Backspace delete. Esc cancel.",
                id="discount-help",
            )

    def on_mount(self) -> None:
        self._refresh_content()

    def on_key(self, event: Key) -> None:
        if event.key in {"escape", "ctrl+c"}:
            self.dismiss(None)
            event.stop()
            return

        if event.key == "enter":
            self._confirm()
            event.stop()
            return

        if event.key == "backspace":
            if self.value:
                self.value = self.value[:-1]
                self.error = ""
                self._refresh_content()
            event.stop()
            return

        if not event.is_printable or not event.character:
            return

        char = event.character.lower()
        if char in {"p", "f"}:
            self.kind = DiscountKind.PERCENTAGE if char == "p" else DiscountKind.FIXED
        elif char.isdigit() or (char == "." and "." not in self.value):
            if len(self.value) < 8:
                self.value += char
        else:
            return
        self.error = ""
        self._refresh_content()
        event.stop()

    def _confirm(self) -> None:
        if not self.value:
            self._clear_discount()
            self.dismiss(None)
            return

        try:
            amount = Decimal(self.value)
        except InvalidOperation:
            self.error = "Enter a number."
            self._refresh_content()
            return

        try:
            discount = self._apply_discount(self.kind, amount)
        except InvalidDiscount as exc:
            self.error = exc.message
            self._refresh_content()
            return

        self.dismiss(discount)

    def _refresh_content(self) -> None:
        kind_widget = self.query_one("#discount-kind", Static)
        value_widget = self.query_one("#discount-value", Static)
        error_widget = self.query_one("#discount-error", Static)
        kind_widget.update("Percentage (%)" if self.kind is DiscountKind.PERCENTAGE else "Fixed amount")
        suffix = "%" if self.kind is DiscountKind.PERCENTAGE else ""
        value_widget.update(f"{self.value}{suffix}" if self.value else "")
        error_widget.update(self.error or "")
