from decimal import Decimal

import pytest

from conftest import make_line
from posreceipt.errors import InvalidDiscount, InvalidQuantity, LineLocked, UnknownLine
from posreceipt.models import DiscountKind, TaxMode
from posreceipt.order import OrderSession


def _session_with(*lines) -> OrderSession:
    session = OrderSession(table_number="4")
    session.lines = list(lines)
    return session


def test_pending_delta_covers_new_lines_and_increases():
    pending = make_line("pending", quantity=3)
    sent = make_line("sent", quantity=5, sent_to_kitchen=True, printed_quantity=5)
    session = _session_with(pending, sent)

    session.update_quantity("sent", 7)
    delta = list(session.pending_delta())

    assert [(d.line_id, d.quantity) for d in delta] == [("pending", 3), ("sent", 2)]
    assert [d.printed_through for d in delta] == [3, 7]


def test_fully_sent_order_has_no_delta():
    session = _session_with(make_line(quantity=2, sent_to_kitchen=True, printed_quantity=2))

    assert list(session.pending_delta()) == []


def test_commit_marks_lines_sent_and_clears_delta():
    session = OrderSession(table_number="1")
    line = session.add_item("tea", "Tea", Decimal("20"), 2)

    assert session.commit_kitchen_send() == 1
    assert line.sent_to_kitchen
    assert line.printed_quantity == 2
    assert list(session.pending_delta()) == []


def test_commit_with_delta_keeps_later_increase_pending():
    session = OrderSession(table_number="1")
    line = session.add_item("tea", "Tea", Decimal("20"), 2)
    delta = list(session.pending_delta())

    # Quantity grows while the ticket is printing.
    session.increment(line.line_id)
    session.commit_kitchen_send(delta)

    assert line.printed_quantity == 2
    assert [(d.line_id, d.quantity) for d in session.pending_delta()] == [(line.line_id, 1)]


def test_failed_print_leaves_delta_intact():
    session = OrderSession(table_number="1")
    session.add_item("tea", "Tea", Decimal("20"), 2)
    before = list(session.pending_delta())

    # No commit: a failed transfer never touches the tracker.
    assert list(session.pending_delta()) == before


def test_decrease_rejected_once_printed():
    session = _session_with(make_line("a", quantity=5, sent_to_kitchen=True, printed_quantity=5))

    with pytest.raises(LineLocked) as excinfo:
        session.update_quantity("a", 4)

    assert excinfo.value.reason == "line_locked"
    assert session.line("a").quantity == 5


def test_decrease_allowed_before_kitchen():
    session = _session_with(make_line("a", quantity=5))

    session.update_quantity("a", 2)

    assert session.line("a").quantity == 2


def test_increase_allowed_after_kitchen():
    session = _session_with(make_line("a", quantity=5, sent_to_kitchen=True, printed_quantity=5))

    session.update_quantity("a", 6)

    assert session.line("a").quantity == 6
    assert session.line("a").printed_quantity == 5


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
def test_invalid_quantities_rejected(quantity):
    session = _session_with(make_line("a", quantity=2))

    with pytest.raises(InvalidQuantity):
        session.update_quantity("a", quantity)


def test_remove_line_rejected_once_sent():
    session = _session_with(make_line("a", quantity=1, sent_to_kitchen=True, printed_quantity=1))

    with pytest.raises(LineLocked):
        session.remove_line("a")
    assert not session.is_empty


def test_remove_unsent_line():
    session = _session_with(make_line("a"), make_line("b"))

    session.remove_line("a")

    assert [line.line_id for line in session.lines] == ["b"]


def test_unknown_line():
    with pytest.raises(UnknownLine):
        OrderSession().line("missing")


def test_add_item_merges_same_product_and_portion():
    session = OrderSession(table_number="2")
    first = session.add_item("dal", "Dal Makhani", Decimal("150"), portion="half")
    again = session.add_item("dal", "Dal Makhani", Decimal("150"), 2, portion="half")
    full = session.add_item("dal", "Dal Makhani", Decimal("280"), portion="full")

    assert again is first
    assert first.quantity == 3
    assert full is not first
    assert len(session.lines) == 2


def test_add_item_prefers_unsent_line_then_grows_sent_line():
    session = OrderSession(table_number="2")
    sent = session.add_item("naan", "Butter Naan", Decimal("45"), 2)
    session.commit_kitchen_send()

    merged = session.add_item("naan", "Butter Naan", Decimal("45"))

    assert merged is sent
    assert sent.quantity == 3
    assert [(d.line_id, d.quantity) for d in session.pending_delta()] == [(sent.line_id, 1)]


def test_custom_priced_lines_never_merge():
    session = OrderSession(table_number="2")
    a = session.add_item("special", "Chef Special", Decimal("300"), custom_price=True)
    b = session.add_item("special", "Chef Special", Decimal("300"), custom_price=True)

    assert a is not b
    assert len(session.lines) == 2


def test_notes_locked_after_kitchen():
    session = _session_with(make_line("a", sent_to_kitchen=True, printed_quantity=1))

    with pytest.raises(LineLocked):
        session.set_note("a", "less spicy")


def test_load_lines_treats_sent_lines_as_printed():
    session = OrderSession(table_number="7")
    session.load_lines([make_line("a", quantity=3, sent_to_kitchen=True), make_line("b", quantity=2)])

    assert session.line("a").printed_quantity == 3
    assert session.line("b").printed_quantity == 0
    assert [(d.line_id, d.quantity) for d in session.pending_delta()] == [("b", 2)]


def test_rejected_discount_leaves_order_undiscounted():
    session = _session_with(make_line("a", quantity=1, price="100"))
    session.set_discount(DiscountKind.FIXED, Decimal("10"))

    with pytest.raises(InvalidDiscount):
        session.set_discount(DiscountKind.FIXED, Decimal("150"))

    assert session.discount is None
    assert session.totals().discount_amount == Decimal("0")


def test_session_totals_use_discount_and_tax_mode():
    session = _session_with(make_line("a", quantity=2, price="100", rate="5"))
    session.tax_mode = TaxMode.SINGLE
    session.set_discount(DiscountKind.PERCENTAGE, Decimal("10"), "loyal customer")

    totals = session.totals()

    assert totals.final_amount == Decimal("189")
    assert len(totals.tax_components) == 1
    session.clear_discount()
    assert session.totals().final_amount == Decimal("210")


def test_table_label_for_parcel_and_table():
    assert OrderSession(token_number=12).table_label == "Token: 12"
    assert OrderSession(table_number="A3").table_label == "T. No: A3"


def test_removing_lines_drops_discount_that_no_longer_fits():
    session = OrderSession(table_number="3")
    session.add_item("tea", "Tea", Decimal("100"))
    coffee = session.add_item("coffee", "Coffee", Decimal("100"))
    session.set_discount(DiscountKind.FIXED, Decimal("150"))

    session.remove_line(coffee.line_id)

    assert session.discount is None
    assert session.totals().final_amount == Decimal("100")


def test_reducing_quantity_drops_discount_that_no_longer_fits():
    session = OrderSession(table_number="3")
    tea = session.add_item("tea", "Tea", Decimal("100"), 3)
    session.set_discount(DiscountKind.FIXED, Decimal("250"))

    session.update_quantity(tea.line_id, 2)

    assert session.discount is None
    assert session.totals().discount_amount == Decimal("0")


def test_discount_kept_while_it_still_fits():
    session = OrderSession(table_number="3")
    tea = session.add_item("tea", "Tea", Decimal("100"), 3)
    session.set_discount(DiscountKind.FIXED, Decimal("150"))
    session.update_quantity(tea.line_id, 2)
    session.set_discount(DiscountKind.PERCENTAGE, Decimal("50"))

    session.update_quantity(tea.line_id, 1)

    assert session.discount.kind is DiscountKind.PERCENTAGE
    assert session.totals().final_amount == Decimal("50")
