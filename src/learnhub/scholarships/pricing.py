"""Discount arithmetic.

Pure functions, no I/O. Amounts are Decimal and rounded to cents with
ROUND_HALF_UP; the discount is always clamped to [0, base_price].
"""

from decimal import ROUND_HALF_UP, Decimal

from learnhub.core.errors import PriceQuote

from .models import DiscountType, Scholarship


CENTS = Decimal("0.01")
ZERO = Decimal(0)
HUNDRED = Decimal(100)


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Normalize a numeric value to a 2-decimal Decimal."""
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def discount_amount(
    discount_type: DiscountType,
    discount_value: Decimal,
    base_price: Decimal,
) -> Decimal:
    """Discount for a base price.

    PERCENTAGE gives `base * value / 100`; FIXED gives `min(value, base)`.
    Negative inputs are treated as zero.

    Examples:
        >>> discount_amount(DiscountType.PERCENTAGE, Decimal(50), Decimal(500))
        Decimal('250.00')
        >>> discount_amount(DiscountType.FIXED, Decimal(800), Decimal(500))
        Decimal('500.00')
    """
    base = max(to_money(base_price), ZERO)
    value = max(Decimal(str(discount_value)), ZERO)

    if discount_type == DiscountType.PERCENTAGE:
        raw = base * value / HUNDRED
    else:
        raw = min(value, base)

    return min(max(to_money(raw), ZERO), base)


def compute_discount(scholarship: Scholarship, base_price: Decimal) -> PriceQuote:
    """Pricing breakdown of a scholarship applied to a base price."""
    base = max(to_money(base_price), ZERO)
    discount = discount_amount(
        scholarship.discount_type, scholarship.discount_value, base
    )
    return PriceQuote(
        original_price=base,
        discount_amount=discount,
        final_price=max(ZERO, base - discount),
    )


def full_price(base_price: Decimal) -> PriceQuote:
    """Quote without any discount."""
    base = max(to_money(base_price), ZERO)
    return PriceQuote(original_price=base, discount_amount=ZERO, final_price=base)
