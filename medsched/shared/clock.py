"""Clock helpers.

All scheduling times are naive datetimes in the single canonical local time
zone. Services accept a ``clock`` callable so tests can freeze time.
"""

from datetime import datetime
from typing import Callable

Clock = Callable[[], datetime]


def local_now() -> datetime:
    """Current wall-clock time, truncated to whole seconds"""
    return datetime.now().replace(microsecond=0)
