from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

from .errors import GlobeFetchError, UpstreamUnavailable
from .models import CycleOutcome, DedupState, FetchPlan
from .scheduler import Scheduler
from .storage.artifacts import ArtifactStore
from .util.http import DEFAULT_TIMEOUT, Fetcher

LOGGER = logging.getLogger(__name__)

ReadySink = Callable[[str], None]


class PollStrategy(Protocol):
    poll_delay: float
    failure_delay: float

    @property
    def repeats(self) -> bool:  # pragma: no cover - structural contract
        ...

    def resolve_next(self, dedup: DedupState) -> Optional[FetchPlan]:  # pragma: no cover - structural contract
        ...


def _severity(exc: Exception) -> int:
    if isinstance(exc, UpstreamUnavailable):
        return logging.WARNING
    return logging.ERROR


class Poller:
    """Runs poll cycles for one strategy, one at a time.

    A cycle resolves a fetch plan, downloads it, hands the bytes to the store
    and tells the sink where the canonical artifact lives. Whatever happens,
    the cycle ends by choosing the delay until the next one; the next cycle is
    only armed after the current one has returned.
    """

    def __init__(
        self,
        strategy: PollStrategy,
        fetcher: Fetcher,
        store: ArtifactStore,
        dedup: DedupState,
        sink: ReadySink,
        scheduler: Scheduler,
        image_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.strategy = strategy
        self.fetcher = fetcher
        self.store = store
        self.dedup = dedup
        self.sink = sink
        self.scheduler = scheduler
        self.image_timeout = image_timeout

    def arm(self, delay: float = 0.0) -> None:
        self.scheduler.call_later(delay, self._tick)

    def _tick(self) -> None:
        try:
            outcome = self.run_cycle()
            delay = outcome.delay
        except Exception:  # pragma: no cover - keep polling through programming errors
            LOGGER.exception("Poll cycle crashed")
            delay = self.strategy.failure_delay
        if self.strategy.repeats:
            LOGGER.debug("Next poll in %.1fs", delay)
            self.arm(delay)

    def run_cycle(self) -> CycleOutcome:
        try:
            plan = self.strategy.resolve_next(self.dedup)
        except GlobeFetchError as exc:
            LOGGER.log(_severity(exc), "Resolving next image failed, retrying in %gs: %s", self.strategy.failure_delay, exc)
            return CycleOutcome(delay=self.strategy.failure_delay, error=str(exc))

        if plan is None:
            return CycleOutcome(delay=self.strategy.poll_delay)

        try:
            data = self.fetcher.fetch(plan.url, timeout=self.image_timeout)
            result = self.store.persist(data, plan.source_url, self.dedup, archive_stem=plan.archive_stem)
        except GlobeFetchError as exc:
            LOGGER.log(_severity(exc), "Image cycle failed for %s: %s", plan.source_url, exc)
            return CycleOutcome(delay=self.strategy.poll_delay, fetched=True, error=str(exc))

        self._notify(result.canonical_ref)
        return CycleOutcome(delay=self.strategy.poll_delay, fetched=True, reference=result.canonical_ref)

    def _notify(self, reference: str) -> None:
        try:
            self.sink(reference)
        except Exception:  # pragma: no cover - sink is an external collaborator
            LOGGER.exception("Artifact-ready sink raised for %s", reference)
