from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite drops tzinfo, so everything stays naive)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)
