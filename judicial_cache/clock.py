"""Time helpers shared by the stores."""

from datetime import datetime, timezone
from typing import Annotated, Callable, Optional

from pydantic import AfterValidator

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive timestamps (SQLite drops tzinfo on read)."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# Timestamp field for result models; always UTC-aware whatever the driver returns
UtcDateTime = Annotated[datetime, AfterValidator(as_utc)]
