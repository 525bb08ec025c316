# =======================================================================================
# library_kiosk/utils/time_utils.py - Timestamp Helpers
# =======================================================================================
from datetime import datetime, timezone
from typing import Optional

# Fixed-width UTC format: lexical order of stored strings == chronological order.
_ISO_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utcnow() -> datetime:
    """Timezone-aware 'now' in UTC."""
    return datetime.now(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """
    Serialize a datetime to the ledger's storage format.
    Naive datetimes are treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime(_ISO_FORMAT)


def parse_iso(value) -> Optional[datetime]:
    """
    Parse an ISO-8601 string (or pass through a datetime) into an aware UTC datetime.

    - None / "" -> None
    - trailing 'Z' and explicit offsets are accepted
    - naive values are interpreted as UTC
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        s = str(value).strip()
        if not s:
            return None
        if s.endswith("Z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)
