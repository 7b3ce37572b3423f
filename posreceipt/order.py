"""Active order session and kitchen-delta tracking."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Iterator
from uuid import uuid4

from posreceipt.calculator import compute_totals, discount_amount, subtotal_of
from posreceipt.errors import InvalidDiscount, InvalidQuantity, LineLocked, UnknownLine
from posreceipt.models import DeltaLine, Discount, DiscountKind, OrderLine, OrderTotals, TaxMode

logger = logging.getLogger(__name__)


@dataclass
class OrderSession:
    """The canonical line list for one table or parcel order.

    All mutation goes through the methods below so the printed-quantity
    invariants hold: ``0 <= printed_quantity <= quantity``, printed quantity
    never decreases, and unsent lines have nothing printed.
    """

    order_id: str = field(default_factory=lambda: uuid4().hex)
    table_number: str | None = None
    token_number: int | None = None
    bill_number: str | None = None
    tax_mode: TaxMode = TaxMode.SPLIT
    lines: list[OrderLine] = field(default_factory=list)
    discount: Discount | None = None

    @property
    def is_parcel(self) -> bool:
        return self.table_number is None and self.token_number is not None

    @property
    def table_label(self) -> str:
        if self.is_parcel:
            return f"Token: {self.token_number}"
        return f"T. No: {self.table_number or '-'}"

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def line(self, line_id: str) -> OrderLine:
        for line in self.lines:
            if line.line_id == line_id:
                return line
        raise UnknownLine(f"No line {line_id!r} in order {self.order_id}")

    def add_item(
        self,
        product_id: str,
        name: str,
        unit_price: Decimal,
        quantity: int = 1,
        *,
        tax_rate: Decimal = Decimal("0"),
        portion: str = "single",
        code: str = "",
        notes: str = "",
        custom_price: bool = False,
    ) -> OrderLine:
        """Add ``quantity`` of a product, merging into a matching line where allowed."""
        _check_quantity(quantity)
        if not custom_price:
            match = self._merge_target(product_id, portion)
            if match is not None:
                match.quantity += quantity
                logger.debug("merged %s x%d into line %s", product_id, quantity, match.line_id)
                self._revalidate_discount()
                return match

        line = OrderLine(
            line_id=uuid4().hex,
            product_id=product_id,
            name=name,
            code=code,
            portion=portion,
            quantity=quantity,
            unit_price=Decimal(unit_price),
            tax_rate=Decimal(tax_rate),
            notes=notes,
            custom_price=custom_price,
        )
        self.lines.append(line)
        self._revalidate_discount()
        return line

    def _merge_target(self, product_id: str, portion: str) -> OrderLine | None:
        candidates = [
            line
            for line in self.lines
            if line.product_id == product_id and line.portion == portion and not line.custom_price
        ]
        # Unsent lines first; a sent line may still grow and its increase becomes the next delta.
        for line in candidates:
            if not line.sent_to_kitchen:
                return line
        return candidates[0] if candidates else None

    def update_quantity(self, line_id: str, quantity: int) -> OrderLine:
        _check_quantity(quantity)
        line = self.line(line_id)
        if quantity < line.quantity and line.printed_quantity > 0:
            raise LineLocked(
                f"{line.name}: {line.printed_quantity} already sent to kitchen, cannot reduce to {quantity}"
            )
        line.quantity = quantity
        self._revalidate_discount()
        return line

    def increment(self, line_id: str, step: int = 1) -> OrderLine:
        line = self.line(line_id)
        return self.update_quantity(line_id, line.quantity + step)

    def set_note(self, line_id: str, notes: str) -> OrderLine:
        line = self.line(line_id)
        if line.sent_to_kitchen:
            raise LineLocked(f"{line.name}: notes cannot change after the kitchen ticket")
        line.notes = notes.strip()
        return line

    def remove_line(self, line_id: str) -> OrderLine:
        line = self.line(line_id)
        if line.sent_to_kitchen:
            raise LineLocked(f"{line.name} was already sent to the kitchen and cannot be removed")
        self.lines.remove(line)
        self._revalidate_discount()
        return line

    def pending_delta(self) -> Iterator[DeltaLine]:
        """Yield what the kitchen has not been told about yet."""
        for line in self.lines:
            owed = line.quantity - line.printed_quantity if line.sent_to_kitchen else line.quantity
            if owed <= 0:
                continue
            yield DeltaLine(
                line_id=line.line_id,
                name=line.name,
                portion=line.portion,
                quantity=owed,
                unit_price=line.unit_price,
                tax_rate=line.tax_rate,
                notes=line.notes,
                printed_through=line.quantity,
            )

    def commit_kitchen_send(self, delta: Iterable[DeltaLine] | None = None) -> int:
        """Record a successful kitchen print. Returns the number of lines updated.

        With ``delta`` only the printed lines are advanced, and only up to the
        quantity they had when the ticket was built; quantity added while the
        ticket was printing stays pending.
        """
        if delta is None:
            delta = list(self.pending_delta())
        updated = 0
        for item in delta:
            try:
                line = self.line(item.line_id)
            except UnknownLine:
                logger.warning("committed line %s no longer in order %s", item.line_id, self.order_id)
                continue
            printed = min(max(line.printed_quantity, item.printed_through), line.quantity)
            line.sent_to_kitchen = True
            line.printed_quantity = printed
            updated += 1
        return updated

    def load_lines(self, lines: Iterable[OrderLine]) -> None:
        """Restore lines from a saved bill; anything sent is treated as fully printed."""
        restored = []
        for line in lines:
            line.printed_quantity = line.quantity if line.sent_to_kitchen else 0
            restored.append(line)
        self.lines = restored
        self._revalidate_discount()

    def set_discount(self, kind: DiscountKind, value: Decimal, reason: str = "") -> Discount:
        """Validate and apply a discount; a rejected discount leaves the order undiscounted."""
        candidate = Discount(kind=kind, value=Decimal(value), reason=reason.strip())
        try:
            discount_amount(subtotal_of(self.lines), candidate)
        except InvalidDiscount:
            self.discount = None
            raise
        self.discount = candidate
        return candidate

    def clear_discount(self) -> None:
        self.discount = None

    def _revalidate_discount(self) -> None:
        """Drop a discount the changed lines can no longer carry."""
        if self.discount is None:
            return
        try:
            discount_amount(subtotal_of(self.lines), self.discount)
        except InvalidDiscount as exc:
            self.discount = None
            logger.warning("discount removed from order %s: %s", self.order_id, exc.message)

    def totals(self) -> OrderTotals:
        return compute_totals(self.lines, self.discount, self.tax_mode)


def _check_quantity(quantity: int) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise InvalidQuantity(f"Quantity must be a whole number >= 1, got {quantity!r}")
