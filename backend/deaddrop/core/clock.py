from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    # Timestamps are stored naive in UTC
    return datetime.now(timezone.utc).replace(tzinfo=None)
