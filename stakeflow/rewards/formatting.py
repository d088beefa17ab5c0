"""Unit conversion and display formatting for token amounts, rates and times."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from stakeflow.data.constants import (
    DEFAULT_TOKEN_SYMBOL,
    SECONDS_PER_DAY,
    SECONDS_PER_HOUR,
    SECONDS_PER_MINUTE,
    TOKEN_DECIMALS,
)

_ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")


def from_base_units(amount: int, decimals: int = TOKEN_DECIMALS) -> float:
    """Convert integral base units (wei) to a token amount."""
    return float(Decimal(amount) / (Decimal(10) ** decimals))


def to_base_units(amount: str | float | Decimal, decimals: int = TOKEN_DECIMALS) -> int:
    """Parse a user-entered token amount into integral base units.

    Excess precision beyond *decimals* is truncated, never rounded up, so
    a user is never asked to stake more than they typed.
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Not a number: {amount!r}") from None
    if not value.is_finite():
        raise ValueError(f"Not a finite amount: {amount!r}")
    return int(value * (Decimal(10) ** decimals))


def format_percentage(value: float) -> str:
    return f"{value:.2f}%"


def format_duration(seconds: float) -> str:
    """Compact duration, e.g. ``3d 4h``, ``5h 12m`` or ``7m``."""
    seconds = max(0, int(seconds))
    days = seconds // SECONDS_PER_DAY
    hours = (seconds % SECONDS_PER_DAY) // SECONDS_PER_HOUR
    minutes = (seconds % SECONDS_PER_HOUR) // SECONDS_PER_MINUTE
    if days > 0:
        return f"{days}d {hours}h"
    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def format_large_number(value: float) -> str:
    """Abbreviate with K/M/B suffixes."""
    if value >= 1e9:
        return f"{value / 1e9:.2f}B"
    if value >= 1e6:
        return f"{value / 1e6:.2f}M"
    if value >= 1e3:
        return f"{value / 1e3:.2f}K"
    return f"{value:.2f}"


def format_token(amount: float, symbol: str = DEFAULT_TOKEN_SYMBOL) -> str:
    return f"{amount:,.2f} {symbol}"


def format_reward(amount: float, symbol: str = DEFAULT_TOKEN_SYMBOL) -> str:
    """Token amount with more decimals for small values (rewards accrue slowly)."""
    if amount < 0.01:
        decimals = 6
    elif amount < 0.1:
        decimals = 4
    elif amount < 1:
        decimals = 3
    else:
        decimals = 2
    return f"{amount:,.{decimals}f} {symbol}"


def format_usd(value: float) -> str:
    return f"${value:,.2f}"


def is_valid_address(address: str) -> bool:
    return bool(_ADDRESS_RE.match(address or ""))


def truncate_address(address: str, start: int = 6, end: int = 4) -> str:
    if not address:
        return ""
    if len(address) <= start + end:
        return address
    return f"{address[:start]}...{address[-end:]}"
