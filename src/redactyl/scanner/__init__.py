"""Scanning module for redactyl.

This module turns a scan root into findings:
- Source providers: working tree, staged blobs, recent commits, base diff
- Archive and artifact expansion with virtual paths
- Incremental content-hash cache
- ScanEngine, which runs the detector pipeline on a worker pool
"""

from redactyl.scanner.base import (
    ArtifactStats,
    Finding,
    ScanResult,
    Severity,
    SourceFile,
)
from redactyl.scanner.engine import (
    CachePolicy,
    ScanConfig,
    ScanEngine,
    detector_ids,
    scan,
    scan_with_stats,
)

__all__ = [
    "ArtifactStats",
    "CachePolicy",
    "Finding",
    "ScanConfig",
    "ScanEngine",
    "ScanResult",
    "Severity",
    "SourceFile",
    "detector_ids",
    "scan",
    "scan_with_stats",
]
