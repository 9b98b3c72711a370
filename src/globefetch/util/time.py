from __future__ import annotations

import time
from datetime import datetime


def now_local() -> datetime:
    return datetime.now().astimezone()


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


def local_clock_stamp(when: datetime | None = None) -> str:
    return (when or now_local()).strftime("%Y%m%d%H%M%S")
