"""Bill totals: subtotal, proportional discount, per-rate tax and round-off.

All arithmetic is done in :class:`~decimal.Decimal`. Per-line discount shares
and per-line tax are kept at full precision while summing; the printed money
figures (subtotal, discount, each tax component) are then quantized to the
paisa, and only the final amount is rounded to a whole unit. The difference
between the two is reported as an explicit signed round-off.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Sequence

from posreceipt.errors import InvalidDiscount
from posreceipt.models import Discount, DiscountKind, OrderLine, OrderTotals, TaxComponent, TaxMode

CENT = Decimal("0.01")
UNIT = Decimal("1")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def subtotal_of(lines: Iterable[OrderLine]) -> Decimal:
    return sum((line.unit_price * line.quantity for line in lines), ZERO)


def discount_amount(subtotal: Decimal, discount: Discount | None) -> Decimal:
    """Resolve a discount descriptor against ``subtotal``.

    Raises :class:`InvalidDiscount` for negative values and for discounts
    that would exceed the subtotal.
    """
    if discount is None:
        return ZERO
    value = Decimal(discount.value)
    if value < ZERO:
        raise InvalidDiscount(f"Discount cannot be negative: {value}", reason="negative_discount")
    if subtotal == ZERO:
        return ZERO
    if discount.kind is DiscountKind.PERCENTAGE:
        if value > HUNDRED:
            raise InvalidDiscount(f"Discount {value}% is above 100%", reason="discount_exceeds_subtotal")
        amount = subtotal * value / HUNDRED
    else:
        amount = value
    if amount > subtotal:
        raise InvalidDiscount(
            f"Discount {amount} exceeds subtotal {subtotal}",
            reason="discount_exceeds_subtotal",
        )
    return amount


def discount_shares(lines: Sequence[OrderLine], amount: Decimal) -> list[Decimal]:
    """Split ``amount`` across lines in proportion to each line total."""
    subtotal = subtotal_of(lines)
    if subtotal == ZERO or amount == ZERO:
        return [ZERO for _ in lines]
    return [line.line_total / subtotal * amount for line in lines]


def tax_by_rate(lines: Sequence[OrderLine], amount: Decimal) -> dict[Decimal, Decimal]:
    """Tax per rate bucket after each line's share of the discount."""
    buckets: dict[Decimal, Decimal] = {}
    for line, share in zip(lines, discount_shares(lines, amount)):
        taxable = line.line_total - share
        rate = Decimal(line.tax_rate)
        buckets[rate] = buckets.get(rate, ZERO) + taxable * rate / HUNDRED
    return buckets


def _dominant_rate(buckets: dict[Decimal, Decimal]) -> Decimal | None:
    rates = [rate for rate, amount in buckets.items() if amount != ZERO]
    if len(rates) == 1:
        return rates[0]
    return None


def _format_rate(rate: Decimal) -> str:
    return format(rate.normalize(), "f")


def _tax_components(mode: TaxMode, total: Decimal, buckets: dict[Decimal, Decimal]) -> tuple[TaxComponent, ...]:
    if mode is TaxMode.DISABLED:
        return ()
    rate = _dominant_rate(buckets)
    if mode is TaxMode.SINGLE:
        label = f"GST @ {_format_rate(rate)}%" if rate is not None else "GST"
        return (TaxComponent(label=label, rate=rate, amount=total),)

    half_rate = rate / 2 if rate is not None else None
    first = to_money(total / 2)
    second = total - first
    suffix = f" @ {_format_rate(half_rate)}%" if half_rate is not None else ""
    return (
        TaxComponent(label=f"CGST{suffix}", rate=half_rate, amount=first),
        TaxComponent(label=f"SGST{suffix}", rate=half_rate, amount=second),
    )


def compute_totals(
    lines: Sequence[OrderLine],
    discount: Discount | None = None,
    tax_mode: TaxMode = TaxMode.SPLIT,
) -> OrderTotals:
    """Compute the bill totals for ``lines``. Pure; performs no I/O."""
    lines = list(lines)
    subtotal = subtotal_of(lines)
    raw_discount = discount_amount(subtotal, discount)

    if tax_mode is TaxMode.DISABLED or subtotal == ZERO:
        buckets: dict[Decimal, Decimal] = {}
        tax_total = ZERO
    else:
        buckets = tax_by_rate(lines, raw_discount)
        tax_total = to_money(sum(buckets.values(), ZERO))

    components = _tax_components(tax_mode, tax_total, buckets)
    money_subtotal = to_money(subtotal)
    money_discount = to_money(raw_discount)
    unrounded = money_subtotal - money_discount + tax_total
    final = unrounded.quantize(UNIT, rounding=ROUND_HALF_UP)

    return OrderTotals(
        subtotal=money_subtotal,
        discount_amount=money_discount,
        tax_by_rate={rate: to_money(amount) for rate, amount in buckets.items()},
        tax_total=tax_total,
        tax_components=components,
        unrounded_total=unrounded,
        final_amount=final,
        round_off=final - unrounded,
        tax_mode=tax_mode,
        discount=discount if money_discount > ZERO else None,
    )
