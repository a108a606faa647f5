"""Date formats found in provider responses."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Optional


def parse_iso8601(value: Optional[str]) -> Optional[datetime]:
    """Parse ``2009-10-12T17:50:30.000Z`` style timestamps; None for blanks."""
    if not value:
        return None
    value = value.strip()
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_rfc1123(value: Optional[str]) -> Optional[datetime]:
    """Parse ``Sun, 06 Nov 1994 08:49:37 GMT`` style timestamps; None for blanks."""
    if not value:
        return None
    parsed = parsedate_to_datetime(value.strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
