"""
Formatting helpers for receipts and terminal responses.

Amounts use a comma thousands separator and always two decimals
(e.g. ₱1,250.00), the way prices are printed on receipts.
"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import datetime
from typing import Union, Optional

DEFAULT_CURRENCY_SYMBOL = '₱'


def num(value: Union[int, float, Decimal, str, None]) -> str:
    """
    Format an amount with thousands separators and two decimals.

    Examples:
        num(1500) -> "1,500.00"
        num("1234567.5") -> "1,234,567.50"
        num(-12.5) -> "-12.50"
        num(None) -> "-"
    """
    if value is None or value == "":
        return "-"
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "-"
    if not amount.is_finite():
        return "-"
    amount = amount.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)
    return f"{amount:,.2f}"


def money(value: Union[int, float, Decimal, str, None], symbol: Optional[str] = None) -> str:
    """
    Format an amount with the currency symbol.

    The sign goes before the symbol so a negative change reads "-₱50.00".

    Examples:
        money(250) -> "₱250.00"
        money(-50, symbol='$') -> "-$50.00"
    """
    symbol = DEFAULT_CURRENCY_SYMBOL if symbol is None else symbol
    formatted = num(value)
    if formatted == "-":
        return formatted
    if formatted.startswith('-'):
        return f"-{symbol}{formatted[1:]}"
    return f"{symbol}{formatted}"


def receipt_datetime(value: Optional[datetime]) -> str:
    """
    Date and time as printed on receipts.

    Examples:
        receipt_datetime(datetime(2026, 10, 18, 14, 5)) -> "Oct 18, 2026 02:05 PM"
    """
    if value is None:
        return "-"
    return value.strftime('%b %d, %Y %I:%M %p')
