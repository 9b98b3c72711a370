from __future__ import annotations

import json
from typing import Callable, Dict, List, Tuple, Union

import pytest


class FakeResponse:
    def __init__(self, status_code: int = 200, body: bytes = b"", chunk: int = 4) -> None:
        self.status_code = status_code
        self.body = body
        self.chunk = chunk
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), self.chunk):
            yield self.body[start : start + self.chunk]

    def close(self) -> None:
        self.closed = True


Reply = Union[FakeResponse, Exception]


class FakeSession:
    """Routes GETs by URL (query string ignored) to queued replies.

    The last reply for a route is reused once the queue is down to one.
    """

    def __init__(self, routes: Dict[str, List[Reply]] | None = None) -> None:
        self.routes: Dict[str, List[Reply]] = routes or {}
        self.calls: List[str] = []

    def get(self, url: str, timeout=None, stream: bool = False) -> FakeResponse:
        self.calls.append(url)
        key = url.split("?", 1)[0]
        queue = self.routes[key]
        reply = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    def calls_to(self, base: str) -> int:
        return sum(1 for url in self.calls if url.split("?", 1)[0] == base)


class RecordingScheduler:
    def __init__(self) -> None:
        self.scheduled: List[Tuple[float, Callable[[], None]]] = []

    def call_later(self, delay: float, fn: Callable[[], None]) -> None:
        self.scheduled.append((delay, fn))

    def run_next(self) -> float:
        delay, fn = self.scheduled.pop(0)
        fn()
        return delay

    def cancel_all(self) -> None:
        self.scheduled.clear()

    @property
    def delays(self) -> List[float]:
        return [delay for delay, _ in self.scheduled]


def index_body(*timestamps: int) -> bytes:
    return json.dumps({"timestamps_int": list(timestamps)}).encode()


@pytest.fixture
def scheduler() -> RecordingScheduler:
    return RecordingScheduler()


@pytest.fixture
def ready_events() -> List[str]:
    return []
