"""
Datetime utilities.

Timezone-aware timestamps for ledger rows and their JSON form.
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        Current datetime in UTC with timezone awareness
    """
    return datetime.now(UTC)


def to_iso(value: datetime | None) -> str | None:
    """ISO 8601 string for API responses, None stays None."""
    return value.isoformat() if value else None
