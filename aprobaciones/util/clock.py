from datetime import datetime, UTC


def utc_now() -> datetime:
    # Naive UTC: SQLite no conserva tzinfo y las comparaciones deben ser homogéneas.
    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
