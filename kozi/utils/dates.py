from __future__ import annotations
from datetime import date, datetime, timezone
from typing import Any, Optional

def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()

def iso_date_or_none(value: Any) -> Optional[str]:
    """Coerce a date-ish value (ISO string, datetime, date) to 'YYYY-MM-DD'."""
    if not value:
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    s = str(value).strip()
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00")).date().isoformat()
    except ValueError:
        pass
    # "2024-05-01 10:00:00.000" and similar: trust a leading ISO date
    try:
        return date.fromisoformat(s[:10]).isoformat()
    except ValueError:
        return None
