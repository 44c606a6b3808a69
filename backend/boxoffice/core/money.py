from decimal import Decimal, ROUND_FLOOR, ROUND_HALF_UP

Money = Decimal

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(CENT, rounding=ROUND_HALF_UP)


def floor_money(x) -> Money:
    """Whole-unit floor, used for percentage discounts."""
    return D(x).quantize(Decimal("1"), rounding=ROUND_FLOOR).quantize(CENT)
