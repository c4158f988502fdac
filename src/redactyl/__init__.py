"""Find accidentally committed credentials before they leave your machine.

redactyl helps you:
- Scan the working tree, staged changes, recent history or a branch diff
- Look inside nested archives, container images, Helm charts and manifests
- Skip unchanged files between runs with a content-hash cache
- Suppress accepted findings with a fingerprint baseline
"""

__version__ = "0.1.0"

from redactyl.scanner.base import Finding, ScanResult, Severity
from redactyl.scanner.engine import ScanConfig, ScanEngine, scan, scan_with_stats

__all__ = [
    "Finding",
    "ScanConfig",
    "ScanEngine",
    "ScanResult",
    "Severity",
    "__version__",
    "scan",
    "scan_with_stats",
]
