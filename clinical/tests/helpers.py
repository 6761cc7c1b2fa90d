from datetime import datetime, timezone as dt_timezone


def at(hour: int, minute: int = 0, day: int = 6) -> datetime:
    """An aware datetime on a fixed test day (2025-01-``day``)."""
    return datetime(2025, 1, day, hour, minute, tzinfo=dt_timezone.utc)
