"""Baseline fingerprints for accepted findings.

A baseline file records findings that were reviewed and accepted so later
scans only report what is new. Entries are fingerprints:
``sha256(path|detector|match)`` as hex, or a precomputed value carried in
``Finding.metadata["redactyl_fingerprint"]``. Baselines written by older
releases stored the unhashed ``path|detector|match`` string; those legacy
keys are still honored.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path

from redactyl.errors import BaselineError
from redactyl.scanner.base import FINGERPRINT_METADATA_KEY, Finding, Severity

DEFAULT_BASELINE_FILE = "redactyl.baseline.json"

_FAIL_LEVELS = {"low": 1, "medium": 2, "high": 3}
_DEFAULT_FAIL_LEVEL = 2


@dataclass
class Baseline:
    """Set of accepted fingerprints."""

    items: dict[str, bool] = field(default_factory=dict)

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> Baseline:
        return cls(items={finding_key(f): True for f in findings})

    def merge(self, other: Baseline) -> Baseline:
        return Baseline(items={**self.items, **other.items})

    def to_dict(self) -> dict[str, dict[str, bool]]:
        return {"items": dict(sorted(self.items.items()))}

    def __contains__(self, finding: object) -> bool:
        return isinstance(finding, Finding) and is_baselined(finding, self.items)

    def __len__(self) -> int:
        return len(self.items)


def _fingerprint(path: str, detector: str, match: str) -> str:
    return hashlib.sha256(f"{path}|{detector}|{match}".encode()).hexdigest()


def finding_key(finding: Finding) -> str:
    """Stable fingerprint of a finding that does not store the raw match.

    A non-empty ``redactyl_fingerprint`` metadata value takes precedence.
    """
    precomputed = finding.metadata.get(FINGERPRINT_METADATA_KEY)
    if precomputed:
        return precomputed
    return _fingerprint(finding.path, finding.detector, finding.match)


def legacy_finding_key(finding: Finding) -> str:
    """The unhashed key format used by early baseline files."""
    return f"{finding.path}|{finding.detector}|{finding.match}"


def is_baselined(finding: Finding, items: Mapping[str, bool] | None) -> bool:
    """True if the current or legacy key of ``finding`` is in ``items``."""
    if not items:
        return False
    return bool(items.get(finding_key(finding)) or items.get(legacy_finding_key(finding)))


def filter_new_findings(findings: Iterable[Finding], baseline: Baseline) -> list[Finding]:
    """Return findings not covered by ``baseline``, preserving order."""
    return [f for f in findings if not is_baselined(f, baseline.items)]


def load_baseline(path: Path | str) -> Baseline:
    """Load a baseline file.

    A missing file is an empty baseline.

    Raises:
        BaselineError: The file exists but is not a valid baseline.
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Baseline()
    except OSError as e:
        raise BaselineError(f"Cannot read baseline {path}: {e}") from e

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        raise BaselineError(f"Invalid baseline {path}: {e}") from e
    if not isinstance(raw, dict) or not isinstance(raw.get("items", {}), dict):
        raise BaselineError(f"Invalid baseline {path}: expected an object with 'items'")
    return Baseline(items={str(k): bool(v) for k, v in (raw.get("items") or {}).items()})


def write_baseline(path: Path | str, baseline: Baseline) -> None:
    path = Path(path)
    try:
        path.write_text(json.dumps(baseline.to_dict(), indent=2) + "\n", encoding="utf-8")
    except OSError as e:
        raise BaselineError(f"Cannot write baseline {path}: {e}") from e


def save_baseline(path: Path | str, findings: Iterable[Finding]) -> Baseline:
    """Replace the baseline at ``path`` with fingerprints of ``findings``."""
    baseline = Baseline.from_findings(findings)
    write_baseline(path, baseline)
    return baseline


def update_baseline(path: Path | str, findings: Iterable[Finding], merge: bool = False) -> Baseline:
    """Write a baseline for ``findings``, optionally keeping existing entries.

    Args:
        path: Baseline file.
        findings: Findings to accept.
        merge: Union with the current file instead of replacing it.

    Returns:
        The baseline as written.
    """
    if not merge:
        return save_baseline(path, findings)
    baseline = load_baseline(path).merge(Baseline.from_findings(findings))
    write_baseline(path, baseline)
    return baseline


def should_fail(findings: Iterable[Finding], fail_on: str | Severity) -> bool:
    """True if any finding is at or above the ``fail_on`` level.

    Unknown levels fall back to ``medium``.
    """
    level = fail_on.value if isinstance(fail_on, Severity) else str(fail_on).lower()
    threshold = _FAIL_LEVELS.get(level, _DEFAULT_FAIL_LEVEL)
    return any(f.severity.rank >= threshold for f in findings)
