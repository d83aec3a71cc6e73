from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation


def _to_decimal(value: str | int | float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return Decimal(str(value).strip())


def to_erc20_raw(amount_tokens: str | int | float | Decimal, decimals: int) -> int:
    try:
        amt = _to_decimal(amount_tokens)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {amount_tokens}") from exc
    if amt < 0:
        raise ValueError("Amount must be non-negative")
    scale = Decimal(10) ** int(decimals)
    return int((amt * scale).to_integral_value(rounding=ROUND_DOWN))


def from_erc20_raw(amount_raw: int, decimals: int) -> Decimal:
    return Decimal(int(amount_raw)) / (Decimal(10) ** int(decimals))


def format_amount(amount_raw: int, decimals: int, symbol: str | None = None) -> str:
    text = f"{from_erc20_raw(amount_raw, decimals):,.6f}"
    return f"{text} {symbol}" if symbol else text
