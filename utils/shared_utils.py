"""
Shared utility functions for routers and services
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Current time as naive UTC, matching how timestamps are stored."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def isoformat_or_none(value: Optional[datetime]) -> Optional[str]:
    """Serialize a stored naive-UTC timestamp as ISO-8601 with a Z suffix."""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"
