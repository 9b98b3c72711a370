from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

from ..errors import StorageError
from ..models import Artifact, DedupState, PersistResult
from ..util.time import epoch_millis, local_clock_stamp

LOGGER = logging.getLogger(__name__)

CANONICAL_STEM = "current"
FALLBACK_EXTENSION = ".jpg"
DIGEST_LENGTH = 16
KNOWN_EXTENSIONS = {
    ".jpg": ".jpg",
    ".jpeg": ".jpg",
    ".png": ".png",
    ".gif": ".gif",
    ".webp": ".webp",
}


def derive_extension(url: str) -> str:
    parsed = urlparse(url)
    suffix = Path(parsed.path).suffix.lower()
    if suffix in KNOWN_EXTENSIONS:
        return KNOWN_EXTENSIONS[suffix]
    for value in parse_qs(parsed.query).get("format", []):
        kind, _, subtype = value.lower().partition("/")
        if kind == "image" and f".{subtype}" in KNOWN_EXTENSIONS:
            return KNOWN_EXTENSIONS[f".{subtype}"]
    return FALLBACK_EXTENSION


def content_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()[:DIGEST_LENGTH]


def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


class ArtifactStore:
    """Owns the artifacts directory: one canonical file plus optional archive."""

    def __init__(
        self,
        root: Path,
        archive: bool = False,
        archive_prefix: str = "globe",
        reference_base: Optional[str] = None,
    ) -> None:
        self.root = root
        self.archive = archive
        self.archive_prefix = archive_prefix
        self.reference_base = reference_base.rstrip("/") if reference_base else None

    def _ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create artifacts directory {self.root}: {exc}") from exc

    def _write_atomic(self, target: Path, data: bytes) -> None:
        tmp_name: Optional[str] = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{target.name}.", suffix=".part")
            # mkstemp is owner-only; readers run as other users
            os.fchmod(fd, 0o666 & ~_current_umask())
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, target)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Cannot write {target}: {exc}") from exc

    def _free_slot(self, taken: Path) -> Path:
        """Next unused ``<stem>_<n><ext>`` beside a clock-named archive."""
        counter = 2
        while True:
            candidate = taken.with_name(f"{taken.stem}_{counter}{taken.suffix}")
            if not candidate.exists():
                LOGGER.info("Archive %s taken within the same second; using %s", taken.name, candidate.name)
                return candidate
            counter += 1

    def canonical_path(self, extension: str) -> Path:
        return self.root / f"{CANONICAL_STEM}{extension}"

    def reference_for(self, path: Path, token: int | None = None) -> str:
        token = epoch_millis() if token is None else token
        base = f"{self.reference_base}/{path.name}" if self.reference_base else path.as_posix()
        return f"{base}?{token}"

    def persist(
        self,
        data: bytes,
        source_url: str,
        dedup: DedupState,
        archive_stem: Optional[str] = None,
    ) -> PersistResult:
        """Write the canonical file and, when new and enabled, an archive copy.

        ``archive_stem`` selects name-based dedup (the stem is unique per
        upstream frame); without it the bytes' digest is compared against the
        last digest seen in this session.
        """
        artifact = Artifact(data=data, extension=derive_extension(source_url))
        self._ensure_root()

        digest: Optional[str] = None
        if archive_stem is not None:
            archive_name = f"{archive_stem}{artifact.extension}"
            was_new = not (self.root / archive_name).exists()
        else:
            digest = content_digest(artifact.data)
            was_new = digest != dedup.last_content_digest
            archive_name = f"{self.archive_prefix}_{local_clock_stamp()}_local-clock{artifact.extension}"

        canonical = self.canonical_path(artifact.extension)
        self._write_atomic(canonical, artifact.data)

        archive_path: Optional[Path] = None
        if self.archive and was_new:
            candidate = self.root / archive_name
            if candidate.exists() and digest is not None:
                candidate = self._free_slot(candidate)
            if candidate.exists():
                LOGGER.debug("Archive %s already present; leaving it untouched", candidate.name)
            else:
                self._write_atomic(candidate, artifact.data)
                archive_path = candidate
                LOGGER.info("Image saved: %s", candidate.name)

        if digest is not None:
            if not was_new:
                LOGGER.debug("Content digest %s unchanged", digest)
            dedup.last_content_digest = digest

        return PersistResult(
            was_new=was_new,
            canonical_ref=self.reference_for(canonical),
            canonical_path=canonical,
            archive_path=archive_path,
        )
