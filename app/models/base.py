from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


def utcnow() -> datetime:
    # SQLite no guarda tz: trabajamos siempre con UTC naive
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_local_naive(value: datetime) -> datetime:
    """Hora local sin tz, como se guardan recogidas y effective_from."""
    if value.tzinfo is None:
        return value
    return value.astimezone().replace(tzinfo=None)
