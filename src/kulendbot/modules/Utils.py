from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any, name: str = "value") -> Decimal:
    """
    Converts an exchange or config value to Decimal.

    Floats go through str() so that 0.1 stays 0.1.

    Raises:
        ValueError: if the value is empty or not a finite number.
    """
    if value is None or (isinstance(value, str) and value.strip() == ""):
        raise ValueError(f"{name} is empty")
    try:
        d = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"{name}: '{value}' is not a number") from None
    if not d.is_finite():
        raise ValueError(f"{name}: '{value}' is not a finite number")
    return d


def floor_amount(amount: Decimal) -> Decimal:
    """Floors an amount to whole currency units, never below zero."""
    if amount <= 0:
        return Decimal(0)
    return amount.to_integral_value(rounding=ROUND_FLOOR)


def format_amount_currency(amount: Any, currency: str) -> str:
    """
    Formats an amount with its currency unit, e.g. "80 USDT".

    Stablecoins and fiat get 3 decimal places, anything else 6.
    Trailing zeros are stripped.
    """
    if amount is None:
        return f"0 {currency}"

    precision = 3 if currency.upper() in ("USD", "USDT", "USDC") else 6
    rounded = Decimal(str(amount)).quantize(Decimal(10) ** -precision, rounding=ROUND_HALF_UP)
    formatted = f"{rounded:f}".rstrip("0").rstrip(".")
    if not formatted or formatted == "-0":
        formatted = "0"
    return f"{formatted} {currency}"


def format_rate_pct(rate: Any) -> str:
    """Formats a daily rate as a percentage, 0.0005 -> "0.05000%"."""
    if rate is None:
        return "0.00000%"
    return f"{Decimal(str(rate)) * 100:.5f}%"
