"""
shared/utils/dates.py
Timezone normalization. Every instant is handled as aware UTC; naive values
(SQLite round-trips, clients omitting an offset) are taken to be UTC.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
