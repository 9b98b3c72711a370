from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests

from .config import SessionConfig
from .models import DedupState, PollMode, PollState
from .poller import Poller, PollStrategy, ReadySink
from .scheduler import Scheduler
from .sources.fixed import FixedUrlStrategy, resolve_base_url
from .sources.slider import SLIDER_STYLE, TimestampIndexedStrategy, TimestampResolver
from .storage.artifacts import ArtifactStore
from .util.http import Fetcher, create_session
from .util.logging import setup_logging

LOGGER = logging.getLogger(__name__)

SessionFactory = Callable[[str], requests.Session]


@dataclass
class PollSession:
    mode: PollMode
    config: SessionConfig
    poller: Poller
    dedup: DedupState = field(default_factory=DedupState)


def select_mode(config: SessionConfig) -> PollMode:
    if config.style == SLIDER_STYLE:
        return PollMode.TIMESTAMP_INDEXED
    return PollMode.FIXED_URL


def build_strategy(mode: PollMode, config: SessionConfig, fetcher: Fetcher) -> PollStrategy:
    if mode is PollMode.TIMESTAMP_INDEXED:
        resolver = TimestampResolver(
            fetcher,
            satellite=config.slider_satellite,
            sector=config.slider_sector,
            product=config.slider_product,
            timeout=config.index_timeout,
        )
        return TimestampIndexedStrategy(
            resolver,
            poll_delay=config.index_poll_interval,
            retry_delay=config.retry_delay,
            archive_prefix=config.archive_prefix,
        )
    base_url = resolve_base_url(config.style, config.image_size, config.own_image_path)
    LOGGER.info("Polling fixed URL %s every %gs", base_url, config.update_interval)
    return FixedUrlStrategy(base_url, config.update_interval)


class PollHost:
    """Entry point for the display side: accepts start requests.

    Only the first :meth:`start` creates a session; the session then polls
    until the process exits.
    """

    def __init__(
        self,
        sink: ReadySink,
        scheduler: Optional[Scheduler] = None,
        session_factory: Optional[SessionFactory] = None,
        configure_logging: bool = True,
    ) -> None:
        self.sink = sink
        self.scheduler = scheduler or Scheduler()
        self.session_factory = session_factory
        self.configure_logging = configure_logging
        self.session: Optional[PollSession] = None

    @property
    def state(self) -> PollState:
        return PollState.ACTIVE if self.session is not None else PollState.IDLE

    def start(self, config: SessionConfig) -> PollSession:
        if self.session is not None:
            LOGGER.debug("Poll session already active; ignoring start request")
            return self.session

        if self.configure_logging:
            setup_logging(config.logs_dir, config.log_level_value)

        mode = select_mode(config)
        fetcher = Fetcher((self.session_factory or create_session)(config.user_agent))
        store = ArtifactStore(
            config.images_dir,
            archive=config.enable_image_saving,
            archive_prefix=config.archive_prefix,
            reference_base=config.reference_base,
        )
        dedup = DedupState()
        poller = Poller(
            build_strategy(mode, config, fetcher),
            fetcher,
            store,
            dedup,
            self.sink,
            self.scheduler,
            image_timeout=config.image_timeout,
        )
        self.session = PollSession(mode=mode, config=config, poller=poller, dedup=dedup)
        LOGGER.info("Poll session started in %s mode (style=%s)", mode.value, config.style)
        poller.arm(0.0)
        return self.session
