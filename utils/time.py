from datetime import datetime, timezone


def get_current_utc_time() -> datetime:
    """
    Current UTC time truncated to millisecond precision.

    MongoDB stores datetimes with millisecond resolution, so truncating here
    keeps the value we hand back to callers identical to the stored one.
    """
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
