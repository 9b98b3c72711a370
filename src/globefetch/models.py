from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional


class PollMode(str, Enum):
    TIMESTAMP_INDEXED = "timestamp_indexed"
    FIXED_URL = "fixed_url"


class PollState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


@dataclass(slots=True)
class DedupState:
    last_timestamp_id: Optional[str] = None
    last_content_digest: Optional[str] = None


@dataclass(slots=True)
class ResolvedFrame:
    id: str
    content_url: str


@dataclass(slots=True)
class FetchPlan:
    url: str
    source_url: str
    archive_stem: Optional[str] = None


@dataclass(slots=True)
class Artifact:
    data: bytes
    extension: str


@dataclass(slots=True)
class PersistResult:
    was_new: bool
    canonical_ref: str
    canonical_path: Path
    archive_path: Optional[Path] = None


@dataclass(slots=True)
class CycleOutcome:
    delay: float
    fetched: bool = False
    reference: Optional[str] = None
    error: Optional[str] = None
