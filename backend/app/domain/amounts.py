"""Exact parsing and display helpers for on-chain integer amounts."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_DOWN, localcontext
from typing import Any

from .models import MetricUnavailable

UINT256_MAX = 2**256 - 1
UINT256_DIGITS = len(str(UINT256_MAX))


def parse_amount(value: Any, *, field: str) -> int | MetricUnavailable:
    """Parse an unsigned 256-bit decimal string (or int) in smallest units.

    Floats, signs, fractions and out-of-range values are rejected rather than
    rounded so a bad payload never masquerades as a real amount.
    """

    if isinstance(value, bool):
        return MetricUnavailable(field, f"boolean is not an amount: {value!r}")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        candidate = value.strip()
        if not candidate.isdigit() or not candidate.isascii():
            return MetricUnavailable(field, f"not an unsigned integer string: {value!r}")
        digits = candidate.lstrip("0") or "0"
        if len(digits) > UINT256_DIGITS:
            return MetricUnavailable(field, f"outside uint256 range: {len(digits)} digits")
        parsed = int(digits)
    else:
        return MetricUnavailable(field, f"unsupported amount type: {type(value).__name__}")

    if parsed < 0 or parsed > UINT256_MAX:
        return MetricUnavailable(field, f"outside uint256 range: {value!r}")
    return parsed


def parse_timestamp(value: Any) -> int | None:
    """Unix seconds from an indexer field; ``None`` when absent or malformed."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return None


def sum_amounts(values: list[int | MetricUnavailable], *, field: str) -> int | MetricUnavailable:
    total = 0
    for value in values:
        if isinstance(value, MetricUnavailable):
            return MetricUnavailable(field, value.reason)
        total += value
    return total


def format_units(value: int | MetricUnavailable | None, decimals: int) -> str | None:
    """Render a smallest-unit integer as a decimal string (``formatUnits``).

    Trailing zeros are stripped; ``None`` is returned for unknown values.
    """

    if value is None or isinstance(value, MetricUnavailable):
        return None
    with localcontext() as ctx:
        ctx.prec = 100
        try:
            scaled = Decimal(value).scaleb(-decimals)
            text = format(scaled.quantize(Decimal(1).scaleb(-decimals), rounding=ROUND_DOWN), "f")
        except InvalidOperation:
            return None
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


__all__ = [
    "UINT256_MAX",
    "format_units",
    "parse_amount",
    "parse_timestamp",
    "sum_amounts",
]
