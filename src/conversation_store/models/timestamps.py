"""UTC timestamps that sort correctly as strings.

Cosmos compares ISO strings lexicographically, so every timestamp is written
with a fixed width (always six fractional digits, always ``Z``).
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Annotated

from pydantic import PlainSerializer

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


Timestamp = Annotated[datetime, PlainSerializer(format_timestamp, return_type=str, when_used="json")]


class MonotonicClock:
    """Wall clock that never returns the same instant twice.

    Message order is reconstructed from ``created_at``, so two appends in the
    same microsecond must still get distinct, increasing timestamps.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._last = datetime.min.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        with self._lock:
            current = datetime.now(timezone.utc)
            if current <= self._last:
                current = self._last + timedelta(microseconds=1)
            self._last = current
            return current


_clock = MonotonicClock()


def utcnow() -> datetime:
    """Current UTC time, strictly increasing within the process."""
    return _clock.now()
