import time
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from ..constants import WEI_PER_ETHER

Number = Union[int, float, str, Decimal]


def format_address(address: Optional[str]) -> str:
    if not address:
        return ""
    return f"{address[:6]}...{address[-4:]}"


def format_eth(amount: Optional[Number]) -> str:
    """
    Display form of an ETH amount: at most 4 decimals, with a trailing ".0000" dropped.
    """
    if not amount:
        return "0 ETH"
    try:
        parsed = Decimal(str(amount))
    except InvalidOperation:
        return "0 ETH"
    formatted = f"{parsed:.4f}"
    if formatted.endswith(".0000"):
        formatted = formatted[:-5]
    return f"{formatted} ETH"


def format_ether(wei: Union[int, str]) -> str:
    """wei -> decimal ether string, always with a fractional part ("1.0", "0.25")."""
    value = Decimal(int(wei)) / Decimal(WEI_PER_ETHER)
    text = format(value.normalize(), "f")
    if "." not in text:
        text += ".0"
    return text


def parse_ether(value: Number) -> int:
    """decimal ether -> wei. Rejects negatives and anything finer than 1 wei."""
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid ether amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid ether amount: {value!r}")
    if amount < 0:
        raise ValueError("Ether amount cannot be negative")
    wei = amount * WEI_PER_ETHER
    if wei != wei.to_integral_value():
        raise ValueError("Ether amount has more than 18 decimals")
    return int(wei)


def format_date(timestamp: Union[int, float]) -> str:
    """Unix seconds -> local date string."""
    return datetime.fromtimestamp(int(timestamp)).strftime("%Y-%m-%d %H:%M:%S")


def format_date_from_ms(timestamp_ms: Union[int, float]) -> str:
    return format_date(int(timestamp_ms) // 1000)


def is_expired(deadline: int, now: Optional[float] = None) -> bool:
    current = int(now if now is not None else time.time())
    return current > deadline


def get_time_remaining(deadline: int, now: Optional[float] = None) -> str:
    current = int(now if now is not None else time.time())
    remaining = deadline - current

    if remaining <= 0:
        return "Expired"

    days = remaining // 86400
    hours = (remaining % 86400) // 3600
    minutes = (remaining % 3600) // 60

    if days > 0:
        return f"{days}d {hours}h remaining"
    if hours > 0:
        return f"{hours}h {minutes}m remaining"
    return f"{minutes}m remaining"


def safe_to_number(value: Any, default: Union[int, float] = 0) -> Union[int, float]:
    """Best-effort numeric conversion for RPC values (ints, hex strings, decimals)."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return value
    try:
        text = str(value).strip()
        if text.lower().startswith("0x"):
            return int(text, 16)
        number = Decimal(text)
        return int(number) if number == number.to_integral_value() else float(number)
    except (InvalidOperation, ValueError):
        return default


def format_gas_in_millions(value: Any, default: Union[int, float] = 0) -> str:
    number = safe_to_number(value, default)
    return f"{number / 1_000_000:.2f}M"


def format_gwei(wei: Union[int, float]) -> str:
    return f"{Decimal(int(wei)) / Decimal(10**9):.2f}"
