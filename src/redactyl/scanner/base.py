"""Core data types shared by the scanner, detectors and reporting layers."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

FINGERPRINT_METADATA_KEY = "redactyl_fingerprint"


class Severity(Enum):
    """Severity of a finding.

    Members compare by rank so ``Severity.HIGH > Severity.LOW`` holds.
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Numeric rank used for ordering and fail-on thresholds."""
        return _SEVERITY_RANK[self]

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


@dataclass(frozen=True)
class Finding:
    """A single candidate secret produced by a detector.

    Attributes:
        path: Repo-relative POSIX path, or a virtual path such as
            ``outer.zip::inner.tar::file.txt`` for nested content.
        line: 1-based line number within the scanned content.
        match: The matched text.
        detector: Id of the detector that produced the finding.
        severity: Severity level.
        confidence: Detector confidence in ``[0, 1]``.
        metadata: Free-form string metadata. The key
            ``redactyl_fingerprint`` is reserved for a precomputed fingerprint.
    """

    path: str
    line: int
    match: str
    detector: str
    severity: Severity
    confidence: float
    metadata: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the JSON record consumed by reporting and baselines."""
        result: dict[str, Any] = {
            "path": self.path,
            "line": self.line,
            "match": self.match,
            "detector": self.detector,
            "severity": self.severity.value,
            "confidence": self.confidence,
        }
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Finding:
        """Rebuild a finding from :meth:`to_dict` output."""
        return cls(
            path=data["path"],
            line=int(data["line"]),
            match=data["match"],
            detector=data["detector"],
            severity=Severity(data["severity"]),
            confidence=float(data.get("confidence", 0.0)),
            metadata=dict(data.get("metadata") or {}),
        )


@dataclass(frozen=True)
class SourceFile:
    """A unit of content handed to the scan pipeline."""

    path: str
    data: bytes
    metadata: dict[str, str] = field(default_factory=dict)
    cacheable: bool = False


@dataclass
class ArtifactStats:
    """Abort counters for budgeted traversal.

    Each counter is incremented once per aborted scope (an archive whose
    entry, byte or depth budget ran out, or a scan whose time budget ran out).
    """

    bytes: int = 0
    entries: int = 0
    depth: int = 0
    time: int = 0
    _lock: threading.Lock = field(
        default_factory=threading.Lock, repr=False, compare=False
    )

    def increment(self, kind: str) -> None:
        """Increment the counter named ``kind`` (thread-safe)."""
        with self._lock:
            setattr(self, kind, getattr(self, kind) + 1)

    @property
    def total(self) -> int:
        return self.bytes + self.entries + self.depth + self.time

    def to_dict(self) -> dict[str, int]:
        return {
            "bytes": self.bytes,
            "entries": self.entries,
            "depth": self.depth,
            "time": self.time,
        }


@dataclass
class ScanResult:
    """Aggregated output of one scan.

    Attributes:
        findings: Findings sorted by (path, line).
        files_scanned: Files that went through the detector pipeline
            (or would have, in dry-run mode).
        duration: Wall-clock duration in seconds.
        files_cached: Files skipped because their digest was unchanged.
        artifact_stats: Budget abort counters.
    """

    findings: list[Finding] = field(default_factory=list)
    files_scanned: int = 0
    duration: float = 0.0
    files_cached: int = 0
    artifact_stats: ArtifactStats = field(default_factory=ArtifactStats)

    @property
    def duration_ms(self) -> int:
        return int(self.duration * 1000)

    @property
    def aborted(self) -> bool:
        """True when any budget cut the scan short."""
        return self.artifact_stats.total > 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "findings": [f.to_dict() for f in self.findings],
            "files_scanned": self.files_scanned,
            "files_cached": self.files_cached,
            "duration_ms": self.duration_ms,
            "artifact_stats": self.artifact_stats.to_dict(),
        }
