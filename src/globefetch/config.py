from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from .errors import ConfigurationError
from .sources.fixed import FIXED_STYLES
from .sources.slider import SLIDER_STYLE
from .util.logging import parse_log_level

DEFAULT_USER_AGENT = "globefetch/1.0 (+https://github.com/globefetch/globefetch)"


class SessionConfig(BaseModel):
    """Immutable settings for one poll session.

    Durations are seconds. Field aliases accept the camelCase keys used by
    the display front end, so a start payload can be passed straight through.
    """

    style: str = Field(default="geoColor")
    image_size: int = Field(default=600, alias="imageSize", gt=0)
    own_image_path: Optional[str] = Field(default=None, alias="ownImagePath")
    update_interval: float = Field(default=600.0, alias="updateInterval")
    retry_delay: float = Field(default=30.0, alias="retryDelay", ge=0)
    enable_image_saving: bool = Field(default=False, alias="enableImageSaving")
    log_level: str = Field(default="ERROR", alias="logLevel")

    images_dir: Path = Field(default=Path("images"))
    logs_dir: Optional[Path] = Field(default=None)
    user_agent: str = Field(default=DEFAULT_USER_AGENT)
    index_poll_interval: float = Field(default=60.0, gt=0)
    index_timeout: float = Field(default=15.0, gt=0)
    image_timeout: float = Field(default=30.0, gt=0)
    archive_prefix: str = Field(default="globe", min_length=1)
    reference_base: Optional[str] = Field(default=None)
    slider_satellite: str = Field(default="meteosat-0deg")
    slider_sector: str = Field(default="full_disk")
    slider_product: str = Field(default="geocolor")

    model_config = {
        "populate_by_name": True,
        "frozen": True,
    }

    @field_validator("own_image_path", "reference_base", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("images_dir", "logs_dir")
    @classmethod
    def _expand_home(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        parse_log_level(value)
        return value.upper()

    @model_validator(mode="after")
    def _known_style(self) -> "SessionConfig":
        if self.style == SLIDER_STYLE or self.own_image_path:
            return self
        if self.style not in FIXED_STYLES:
            known = ", ".join(sorted([SLIDER_STYLE, *FIXED_STYLES]))
            raise ValueError(f"Unknown style {self.style!r}; expected one of {known}")
        return self

    @property
    def log_level_value(self) -> int:
        return parse_log_level(self.log_level)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "SessionConfig":
        try:
            return cls(**payload)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc


SETTINGS_ENV = {
    "style": "GLOBE_STYLE",
    "image_size": "GLOBE_IMAGE_SIZE",
    "own_image_path": "GLOBE_OWN_IMAGE_PATH",
    "update_interval": "GLOBE_UPDATE_INTERVAL",
    "retry_delay": "GLOBE_RETRY_DELAY",
    "enable_image_saving": "GLOBE_ENABLE_IMAGE_SAVING",
    "log_level": "GLOBE_LOG_LEVEL",
    "images_dir": "GLOBE_IMAGES_DIR",
    "logs_dir": "GLOBE_LOGS_DIR",
    "user_agent": "GLOBE_USER_AGENT",
    "reference_base": "GLOBE_REFERENCE_BASE",
}


def _cli_or_env(cli_args: dict[str, Any], name: str, env_key: str) -> Any:
    value = cli_args.get(name)
    if value is not None:
        return value
    value = os.getenv(env_key)
    if value is None or value.strip() == "":
        return None
    return value


def load_settings(cli_args: dict[str, Any] | None = None) -> SessionConfig:
    """Merge CLI overrides over ``GLOBE_*`` environment variables (``.env`` aware).

    Raw strings go straight to pydantic, so a malformed value surfaces as a
    :class:`ConfigurationError` like any other validation failure.
    """
    load_dotenv()
    cli_args = cli_args or {}

    data: dict[str, Any] = {}
    for name, env_key in SETTINGS_ENV.items():
        value = _cli_or_env(cli_args, name, env_key)
        if value is not None:
            data[name] = value

    try:
        return SessionConfig(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
