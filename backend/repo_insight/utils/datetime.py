import logging
from datetime import datetime, timezone

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(dt_value, default_now: bool = True) -> datetime | None:
    """
    Parse datetime from API response to aware UTC datetime.

    Handles:
    - ISO string with timezone (e.g., "2024-01-01T00:00:00Z")
    - datetime object with or without timezone (naive values are taken as UTC)
    - None or invalid -> current UTC time (if default_now=True) or None
    """
    if dt_value is None:
        return utc_now() if default_now else None

    if isinstance(dt_value, str):
        try:
            dt = datetime.fromisoformat(dt_value.replace("Z", "+00:00"))
        except (ValueError, AttributeError):
            logger.warning(f"Failed to parse datetime string: {dt_value}")
            return utc_now() if default_now else None
        return ensure_aware_utc(dt)

    if isinstance(dt_value, datetime):
        return ensure_aware_utc(dt_value)

    logger.warning(f"Unexpected datetime type: {type(dt_value)}")
    return utc_now() if default_now else None


def ensure_aware_utc(dt_value: datetime | None) -> datetime | None:
    """
    Ensure a datetime is timezone-aware UTC.

    Useful when reading records written by clients that stored naive
    datetimes, so they can be compared against utc_now().
    """
    if dt_value is None:
        return None

    if dt_value.tzinfo is None:
        return dt_value.replace(tzinfo=timezone.utc)
    return dt_value.astimezone(timezone.utc)
