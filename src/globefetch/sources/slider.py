"""CIRA SLIDER imagery, addressed by integer timestamps.

SLIDER publishes a ``latest_times.json`` index per satellite/sector/product;
the newest frame id is the first entry of ``timestamps_int``. A frame id is
immutable upstream, so comparing ids is enough to detect new imagery without
touching the (much larger) image itself.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..errors import MalformedIndex
from ..models import DedupState, FetchPlan, ResolvedFrame
from ..util.http import INDEX_TIMEOUT, Fetcher

LOGGER = logging.getLogger(__name__)

SLIDER_STYLE = "meteosat"
SLIDER_BASE = "https://slider.cira.colostate.edu/data"
TIMES_URL_TEMPLATE = SLIDER_BASE + "/json/{satellite}/{sector}/{product}/latest_times.json"
IMAGE_URL_TEMPLATE = (
    SLIDER_BASE + "/imagery/{year}/{month}/{day}/{satellite}---{sector}/{product}/{timestamp}/00/000_000.png"
)


def parse_latest_id(payload: bytes | str) -> str:
    try:
        document: Any = json.loads(payload)
        newest = document["timestamps_int"][0]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        raise MalformedIndex(f"Unexpected SLIDER index shape: {exc}") from exc
    if isinstance(newest, bool) or not isinstance(newest, int) or newest < 0:
        raise MalformedIndex(f"SLIDER timestamp is not a non-negative integer: {newest!r}")
    timestamp = str(newest)
    if len(timestamp) < 8:
        raise MalformedIndex(f"SLIDER timestamp too short to carry a date: {timestamp}")
    return timestamp


def build_image_url(timestamp: str, satellite: str, sector: str, product: str) -> str:
    return IMAGE_URL_TEMPLATE.format(
        year=timestamp[0:4],
        month=timestamp[4:6],
        day=timestamp[6:8],
        satellite=satellite,
        sector=sector,
        product=product,
        timestamp=timestamp,
    )


class TimestampResolver:
    def __init__(
        self,
        fetcher: Fetcher,
        satellite: str = "meteosat-0deg",
        sector: str = "full_disk",
        product: str = "geocolor",
        timeout: float = INDEX_TIMEOUT,
    ) -> None:
        self.fetcher = fetcher
        self.satellite = satellite
        self.sector = sector
        self.product = product
        self.timeout = timeout

    @property
    def index_url(self) -> str:
        return TIMES_URL_TEMPLATE.format(satellite=self.satellite, sector=self.sector, product=self.product)

    def resolve_latest(self) -> ResolvedFrame:
        body = self.fetcher.fetch(self.index_url, timeout=self.timeout)
        timestamp = parse_latest_id(body)
        return ResolvedFrame(
            id=timestamp,
            content_url=build_image_url(timestamp, self.satellite, self.sector, self.product),
        )


class TimestampIndexedStrategy:
    """Looks up the newest frame id; yields a plan only when it changed."""

    repeats = True

    def __init__(self, resolver: TimestampResolver, poll_delay: float, retry_delay: float, archive_prefix: str = "globe") -> None:
        self.resolver = resolver
        self.poll_delay = poll_delay
        self.failure_delay = retry_delay
        self.archive_prefix = archive_prefix

    def resolve_next(self, dedup: DedupState) -> Optional[FetchPlan]:
        frame = self.resolver.resolve_latest()
        if frame.id == dedup.last_timestamp_id:
            LOGGER.debug("SLIDER timestamp %s unchanged; skipping image fetch", frame.id)
            return None
        LOGGER.info("New SLIDER timestamp %s (previous %s)", frame.id, dedup.last_timestamp_id)
        dedup.last_timestamp_id = frame.id
        return FetchPlan(
            url=frame.content_url,
            source_url=frame.content_url,
            archive_stem=f"{self.archive_prefix}_{frame.id}",
        )
