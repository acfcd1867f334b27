"""Display helpers for chat timestamps, money and file sizes."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Union

from pocketledger.models.finance import utcnow


def _parse(ts: Union[datetime, str, None]) -> Optional[datetime]:
    if ts is None or ts == "":
        return None
    if isinstance(ts, str):
        ts = datetime.fromisoformat(ts.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def format_chat_timestamp(
    ts: Union[datetime, str, None],
    now: Optional[datetime] = None,
) -> str:
    """
    Relative time for a chat bubble.

    "Just now", "45s ago", "12m ago", "3h ago", "2d ago", then "Jan 5"
    within the same year and "Jan 5, 2023" otherwise. Empty input gives "".
    """
    timestamp = _parse(ts)
    if timestamp is None:
        return ""
    now = now or utcnow()

    seconds = int((now - timestamp).total_seconds())
    if seconds < 30:
        return "Just now"
    if seconds < 60:
        return f"{seconds}s ago"

    minutes = seconds // 60
    if minutes < 60:
        return f"{minutes}m ago"

    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"

    days = hours // 24
    if days < 7:
        return f"{days}d ago"

    if timestamp.year == now.year:
        return f"{timestamp:%b} {timestamp.day}"
    return f"{timestamp:%b} {timestamp.day}, {timestamp.year}"


def format_full_timestamp(ts: Union[datetime, str, None]) -> str:
    """Tooltip text, e.g. "Monday, January 15, 2024 at 02:30:45 PM"."""
    timestamp = _parse(ts)
    if timestamp is None:
        return ""
    return (
        f"{timestamp:%A}, {timestamp:%B} {timestamp.day}, {timestamp.year} "
        f"at {timestamp:%I:%M:%S %p}"
    )


def format_money(amount: Decimal) -> str:
    """$1,234.50 style, with a leading minus for negatives."""
    sign = "-" if amount < 0 else ""
    return f"{sign}${abs(amount):,.2f}"


def format_file_size(size: Optional[int]) -> str:
    """1.46 KB style, binary units, trailing zeros dropped."""
    if not size:
        return "0 Bytes"
    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size)
    unit = 0
    while value >= 1024 and unit < len(units) - 1:
        value /= 1024
        unit += 1
    return f"{round(value, 2):g} {units[unit]}"
