"""Static "latest image" URLs served at a stable address.

These upstreams expose no change signal, so every cycle downloads the full
image and freshness is judged afterwards from the bytes themselves.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..models import DedupState, FetchPlan
from ..util.time import epoch_millis

LOGGER = logging.getLogger(__name__)

HI_RES_THRESHOLD = 800

_RAMMB = "https://rammb.cira.colostate.edu/ramsdis/online/images"
_EUMETVIEW = "https://eumetview.eumetsat.int/static-images/latestImages"

FIXED_STYLES: dict[str, str] = {
    "natColor": f"{_RAMMB}/latest/himawari-8/full_disk_ahi_natural_color.jpg",
    "geoColor": f"{_RAMMB}/latest/himawari-8/full_disk_ahi_true_color.jpg",
    "airMass": f"{_RAMMB}/latest/himawari-8/full_disk_ahi_rgb_airmass.jpg",
    "fullBand": f"{_RAMMB}/latest/himawari-8/himawari-8_band_03_sector_02.gif",
    "europeDiscNat": f"{_EUMETVIEW}/EUMETSAT_MSG_RGBNatColourEnhncd_LowResolution.jpg",
    "europeDiscSnow": f"{_EUMETVIEW}/EUMETSAT_MSG_RGBSolarDay_LowResolution.jpg",
    "centralAmericaDiscNat": "https://cdn.star.nesdis.noaa.gov/GOES16/ABI/FD/GEOCOLOR/678x678.jpg",
}

HI_RES_STYLES: dict[str, str] = {
    **FIXED_STYLES,
    "natColor": f"{_RAMMB}/latest_hi_res/himawari-8/full_disk_ahi_natural_color.jpg",
    "geoColor": f"{_RAMMB}/latest_hi_res/himawari-8/full_disk_ahi_true_color.jpg",
    "airMass": f"{_RAMMB}/latest_hi_res/himawari-8/full_disk_ahi_rgb_airmass.jpg",
    "centralAmericaDiscNat": "https://cdn.star.nesdis.noaa.gov/GOES16/ABI/FD/GEOCOLOR/1808x1808.jpg",
}


def resolve_base_url(style: str, image_size: int, own_image_path: Optional[str] = None) -> str:
    if own_image_path:
        return own_image_path
    table = HI_RES_STYLES if image_size > HI_RES_THRESHOLD else FIXED_STYLES
    try:
        return table[style]
    except KeyError:
        raise ValueError(f"No fixed URL for style {style!r}") from None


def cache_busted(url: str, token: int | None = None) -> str:
    token = epoch_millis() if token is None else token
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{token}"


class FixedUrlStrategy:
    """Every cycle yields a cache-busted fetch of the same base URL."""

    def __init__(self, base_url: str, update_interval: float) -> None:
        self.base_url = base_url
        self.poll_delay = update_interval
        # failures wait for the next regular interval; retry_delay is not consulted
        self.failure_delay = update_interval

    @property
    def repeats(self) -> bool:
        return self.poll_delay > 0

    def resolve_next(self, dedup: DedupState) -> FetchPlan:
        return FetchPlan(url=cache_busted(self.base_url), source_url=self.base_url)
