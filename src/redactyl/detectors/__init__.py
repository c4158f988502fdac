"""Secret detectors and the per-file detection pipeline."""

from redactyl.detectors.base import Detector, calculate_entropy
from redactyl.detectors.context import ContextDetector, ContextPattern, EntropyContextDetector
from redactyl.detectors.patterns import RegexDetector, SecretPattern
from redactyl.detectors.pipeline import (
    Pipeline,
    dedupe,
    filter_by_confidence,
    filter_by_ids,
    run_all,
)
from redactyl.detectors.registry import DEFAULT_REGISTRY, DetectorRegistry, detector_ids
from redactyl.detectors.verify import RULES, VerificationRule, VerifyMode, verify_findings

__all__ = [
    "DEFAULT_REGISTRY",
    "RULES",
    "ContextDetector",
    "ContextPattern",
    "Detector",
    "DetectorRegistry",
    "EntropyContextDetector",
    "Pipeline",
    "RegexDetector",
    "SecretPattern",
    "VerificationRule",
    "VerifyMode",
    "calculate_entropy",
    "dedupe",
    "detector_ids",
    "filter_by_confidence",
    "filter_by_ids",
    "run_all",
    "verify_findings",
]
