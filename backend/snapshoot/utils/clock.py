from datetime import datetime, timezone
from typing import Callable, Optional


def utc_now_ms() -> datetime:
    """Current UTC time truncated to the millisecond precision BSON dates keep."""
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=(now.microsecond // 1000) * 1000)


def as_utc(value: datetime) -> datetime:
    # Motor returns naive datetimes unless the client is tz_aware
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class MonotonicClock:
    """
    Hands out creation timestamps that never go backwards, even if the wall
    clock does. Equal timestamps are allowed; callers break ties by ObjectId.
    """

    def __init__(self, source: Optional[Callable[[], datetime]] = None) -> None:
        self._source = source or utc_now_ms
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        current = as_utc(self._source())
        if self._last is not None and current < self._last:
            current = self._last
        self._last = current
        return current


# one clock per process, shared by every repository over the messages collection
message_clock = MonotonicClock()
