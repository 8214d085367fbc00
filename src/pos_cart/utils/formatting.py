"""Money and size formatting."""

import math
from decimal import ROUND_HALF_UP, Decimal


def quantize_money(amount: Decimal, decimals: int = 2) -> Decimal:
    """Round half-up to ``decimals`` places."""
    exponent = Decimal(1).scaleb(-decimals)
    return Decimal(amount).quantize(exponent, rounding=ROUND_HALF_UP)


def format_price(amount: Decimal, symbol: str = "$", decimals: int = 2) -> str:
    value = quantize_money(amount, decimals)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{decimals}f}"


def format_bytes(size: int) -> str:
    """Format a byte count as B/KB/MB/GB with two decimals."""
    units = ["B", "KB", "MB", "GB"]
    size = max(size, 0)
    power = int(math.floor(math.log(size, 1024))) if size else 0
    power = min(power, len(units) - 1)
    return f"{round(size / (1024**power), 2)} {units[power]}"
