# allocation_admin/utils/money.py

from decimal import Decimal, ROUND_HALF_UP

Money = Decimal


def D(x) -> Money:
    return x if isinstance(x, Decimal) else Decimal(str(x or "0"))


def round_money(x) -> Money:
    return D(x).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def to_float(x):
    """Money for JSON: None stays None, everything else is rounded to cents."""
    if x is None:
        return None
    return float(round_money(x))


def format_money(x, symbol="$") -> str:
    return f"{symbol}{round_money(x):,.2f}"
