"""Money helpers using Decimal with JPY precision rules."""

from decimal import ROUND_HALF_UP, Decimal

MONEY_PRECISION = Decimal("1")


def quantize_money(value: Decimal) -> Decimal:
    """Return value rounded to whole yen with HALF_UP strategy."""

    return value.quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def parse_money(value: str | int) -> Decimal:
    """Parse and normalize input money value into Decimal."""

    return quantize_money(Decimal(value))


def format_money(value: Decimal) -> str:
    """Render money as a plain integer string."""

    return f"{quantize_money(value):f}"


def format_yen(value: Decimal | int) -> str:
    """Render money with thousands separators and yen suffix."""

    return f"{quantize_money(Decimal(value)):,f}円"
