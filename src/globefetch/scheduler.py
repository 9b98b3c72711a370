from __future__ import annotations

import logging
import sched
import time
from typing import Callable

LOGGER = logging.getLogger(__name__)


class Scheduler:
    """Deferred execution on the calling thread.

    Jobs run one after another inside :meth:`run`, so a job that schedules its
    successor only when it finishes never overlaps with it.
    """

    def __init__(self, timefunc: Callable[[], float] = time.monotonic, delayfunc: Callable[[float], None] = time.sleep) -> None:
        self._sched = sched.scheduler(timefunc, delayfunc)

    def call_later(self, delay: float, fn: Callable[[], None]) -> None:
        self._sched.enter(max(delay, 0.0), 0, fn)

    @property
    def pending(self) -> int:
        return len(self._sched.queue)

    def run(self) -> None:
        self._sched.run()

    def cancel_all(self) -> None:
        for event in self._sched.queue:
            self._sched.cancel(event)
        LOGGER.debug("Cancelled all scheduled work")
