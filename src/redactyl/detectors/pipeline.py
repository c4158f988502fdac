"""Detector pipeline: run, verify, and filter findings for one file."""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from typing import TYPE_CHECKING

from redactyl.detectors.registry import DEFAULT_REGISTRY, DetectorRegistry
from redactyl.detectors.verify import VerifyMode, verify_findings
from redactyl.scanner.base import Finding

if TYPE_CHECKING:
    from redactyl.scanner.engine import ScanConfig

logger = logging.getLogger(__name__)


def parse_id_list(value: str | Iterable[str] | None) -> frozenset[str]:
    """Normalize a comma-separated string or iterable of ids to a set."""
    if value is None:
        return frozenset()
    items = value.split(",") if isinstance(value, str) else value
    return frozenset(item.strip() for item in items if item and item.strip())


def dedupe(findings: Iterable[Finding]) -> list[Finding]:
    """Drop repeated ``(path, detector, match)`` triples, keeping the first."""
    seen: set[tuple[str, str, str]] = set()
    unique: list[Finding] = []
    for finding in findings:
        key = (finding.path, finding.detector, finding.match)
        if key in seen:
            continue
        seen.add(key)
        unique.append(finding)
    return unique


def run_all(
    path: str, data: bytes, registry: DetectorRegistry | None = None
) -> list[Finding]:
    """Run every registered detector against one file.

    A detector that raises is logged and skipped; the others still run.
    """
    registry = registry or DEFAULT_REGISTRY
    raw: list[Finding] = []
    for detector in registry:
        try:
            raw.extend(detector.detect(path, data))
        except Exception as e:
            logger.debug("Detector %s failed on %s: %s", detector.id, path, e)
    return dedupe(raw)


def filter_by_confidence(findings: list[Finding], min_confidence: float) -> list[Finding]:
    """Keep findings with ``confidence >= min_confidence``.

    A threshold of zero or less disables the filter.
    """
    if min_confidence <= 0:
        return findings
    return [f for f in findings if f.confidence >= min_confidence]


def filter_by_ids(
    findings: list[Finding],
    enable: str | Collection[str] | None = None,
    disable: str | Collection[str] | None = None,
) -> list[Finding]:
    """Apply detector allow/deny lists.

    When the allow-list is non-empty it alone decides; otherwise ids in the
    deny-list are removed.
    """
    allow = parse_id_list(enable)
    deny = parse_id_list(disable)
    if allow:
        return [f for f in findings if f.detector in allow]
    if deny:
        return [f for f in findings if f.detector not in deny]
    return findings


class Pipeline:
    """The per-file detection pipeline.

    Composes :func:`run_all`, :func:`verify_findings`,
    :func:`filter_by_confidence` and :func:`filter_by_ids`, in that order.
    """

    def __init__(
        self,
        registry: DetectorRegistry | None = None,
        verify_mode: VerifyMode = VerifyMode.OFF,
        min_confidence: float = 0.0,
        enable: str | Collection[str] | None = None,
        disable: str | Collection[str] | None = None,
    ) -> None:
        self.registry = registry or DEFAULT_REGISTRY
        self.verify_mode = verify_mode
        self.min_confidence = min_confidence
        self.enable = parse_id_list(enable)
        self.disable = parse_id_list(disable)

    @classmethod
    def from_config(
        cls, config: ScanConfig, registry: DetectorRegistry | None = None
    ) -> Pipeline:
        return cls(
            registry=registry,
            verify_mode=config.verify_mode,
            min_confidence=config.min_confidence,
            enable=config.enable_detectors,
            disable=config.disable_detectors,
        )

    def raw(self, path: str, data: bytes) -> list[Finding]:
        """Detector output before any filter."""
        return run_all(path, data, self.registry)

    def filter(self, findings: list[Finding]) -> list[Finding]:
        """Apply verification and the confidence and id filters."""
        findings = verify_findings(findings, self.verify_mode)
        findings = filter_by_confidence(findings, self.min_confidence)
        return filter_by_ids(findings, self.enable, self.disable)

    def run(self, path: str, data: bytes) -> list[Finding]:
        return self.filter(self.raw(path, data))
