"""Ordered, id-addressable set of detectors."""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from redactyl.detectors.base import Detector
from redactyl.detectors.context import build_context_detectors
from redactyl.detectors.patterns import build_pattern_detectors


class DetectorRegistry:
    """Registry for managing detectors.

    Registration order is preserved and is the order in which detectors run.
    """

    def __init__(self, detectors: Iterable[Detector] = ()) -> None:
        self._detectors: dict[str, Detector] = {}
        for detector in detectors:
            self.register(detector)

    def register(self, detector: Detector) -> None:
        """Register a detector. Duplicate ids are rejected."""
        if detector.id in self._detectors:
            raise ValueError(f"Detector {detector.id} already registered")
        self._detectors[detector.id] = detector

    def get(self, detector_id: str) -> Detector | None:
        return self._detectors.get(detector_id)

    def ids(self) -> list[str]:
        return list(self._detectors)

    def __iter__(self) -> Iterator[Detector]:
        return iter(self._detectors.values())

    def __len__(self) -> int:
        return len(self._detectors)

    def __contains__(self, detector_id: object) -> bool:
        return detector_id in self._detectors


def build_default_registry() -> DetectorRegistry:
    """Build a registry holding every built-in detector."""
    return DetectorRegistry([*build_pattern_detectors(), *build_context_detectors()])


DEFAULT_REGISTRY = build_default_registry()


def detector_ids() -> list[str]:
    """Ids of the built-in detectors, in run order."""
    return DEFAULT_REGISTRY.ids()
