# core/money.py

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from core.constants import DiscountType

TWOPLACES = Decimal('0.01')
ZERO = Decimal('0.00')
HUNDRED = Decimal('100.00')


def to_money(value):
    """Parse a value into a Decimal quantized to two places"""
    if value is None or value == '':
        return ZERO
    try:
        return Decimal(str(value)).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValueError(f"Invalid money value: {value!r}")


def clamp(value, low, high):
    return max(low, min(value, high))


def discount_amount(total, discount_type, discount_value):
    """
    Discount for a total.

    Percentages are clamped to [0, 100] and fixed amounts to [0, total], so the
    result never exceeds the total. Unknown discount types give no discount.
    """
    total = to_money(total)
    value = to_money(discount_value)

    if discount_type == DiscountType.PERCENTAGE:
        percentage = clamp(value, ZERO, HUNDRED)
        discount = to_money(total * percentage / HUNDRED)
    elif discount_type == DiscountType.AMOUNT:
        discount = clamp(value, ZERO, total)
    else:
        discount = ZERO

    return min(discount, total)


def final_amount(total, discount):
    return max(ZERO, to_money(total) - to_money(discount))
