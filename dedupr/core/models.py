"""Core data models for the dedup pipeline."""

import threading
from dataclasses import dataclass, field
from enum import Enum


class Resolution(Enum):
    """Outcome of resolving one file against the fingerprint index."""

    CANONICAL = "canonical"
    ALREADY_CANONICAL = "already_canonical"
    LINKED = "linked"
    WOULD_LINK = "would_link"
    RECLAIMED = "reclaimed"
    SKIPPED = "skipped"


class ErrorKind(Enum):
    """Non-fatal error categories collected during a run."""

    IO = "io"
    TRAVERSAL = "traversal"
    STORE = "store"
    PARTIAL_DUPLICATE = "partial_duplicate"
    INTERNAL = "internal"


class LinkStyle(Enum):
    """How the symlink target of a replaced duplicate is spelled."""

    ABSOLUTE = "absolute"
    RELATIVE = "relative"


@dataclass(frozen=True)
class FileRecord:
    """A regular file and the fingerprint of its content."""

    path: str
    fingerprint: bytes

    @property
    def hex(self) -> str:
        return self.fingerprint.hex()


@dataclass(frozen=True)
class ResolutionOutcome:
    """What the resolver decided for a single record."""

    record: FileRecord
    resolution: Resolution
    canonical_path: str
    size: int = 0


@dataclass(frozen=True)
class ErrorEvent:
    """A per-file or per-directory failure that did not stop the run."""

    kind: ErrorKind
    path: str
    message: str


@dataclass
class RunReport:
    """Thread-safe aggregate of everything a run did."""

    directories_scanned: int = 0
    files_found: int = 0
    files_hashed: int = 0
    bytes_reclaimed: int = 0
    resolutions: dict[Resolution, int] = field(
        default_factory=lambda: {r: 0 for r in Resolution}
    )
    errors: list[ErrorEvent] = field(default_factory=list)
    cancelled: bool = False
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def count_directory(self) -> None:
        with self._lock:
            self.directories_scanned += 1

    def count_file(self) -> None:
        with self._lock:
            self.files_found += 1

    def count_hashed(self) -> None:
        with self._lock:
            self.files_hashed += 1

    def add_outcome(self, outcome: ResolutionOutcome) -> None:
        with self._lock:
            self.resolutions[outcome.resolution] += 1
            if outcome.resolution is Resolution.LINKED:
                self.bytes_reclaimed += outcome.size

    def add_error(self, kind: ErrorKind, path: str, message: str) -> None:
        with self._lock:
            self.errors.append(ErrorEvent(kind=kind, path=path, message=message))

    def errors_of(self, kind: ErrorKind) -> list[ErrorEvent]:
        with self._lock:
            return [e for e in self.errors if e.kind is kind]

    @property
    def has_data_loss(self) -> bool:
        """True if a duplicate was deleted without its link being created."""
        return bool(self.errors_of(ErrorKind.PARTIAL_DUPLICATE))

    def summary(self) -> dict[str, int]:
        """Flat counters for display."""
        with self._lock:
            result = {
                "directories_scanned": self.directories_scanned,
                "files_found": self.files_found,
                "files_hashed": self.files_hashed,
                "bytes_reclaimed": self.bytes_reclaimed,
                "errors": len(self.errors),
            }
            for resolution, count in self.resolutions.items():
                result[resolution.value] = count
        return result
