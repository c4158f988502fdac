"""Detector interface and shared text helpers."""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from collections.abc import Iterator

from redactyl.scanner.base import Finding, Severity


class Detector(ABC):
    """Base class for all detectors.

    A detector is a pure function of ``(path, data)``. Implementations must
    not keep per-call state on the instance: the engine calls ``detect``
    concurrently from several worker threads.
    """

    id: str
    description: str = ""
    severity: Severity = Severity.MEDIUM
    confidence: float = 0.5

    @abstractmethod
    def detect(self, path: str, data: bytes) -> list[Finding]:
        """Inspect ``data`` and return zero or more findings."""

    def finding(self, path: str, line: int, match: str, **metadata: str) -> Finding:
        return Finding(
            path=path,
            line=line,
            match=match,
            detector=self.id,
            severity=self.severity,
            confidence=self.confidence,
            metadata=dict(metadata),
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r})"


def decode(data: bytes) -> str:
    """Decode file content for pattern matching, never failing."""
    return data.decode("utf-8", errors="replace")


def split_lines(text: str) -> list[str]:
    """Split on newlines only, dropping a trailing carriage return per line."""
    return [line[:-1] if line.endswith("\r") else line for line in text.split("\n")]


def iter_lines(text: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, line)`` pairs, 1-based."""
    for index, line in enumerate(split_lines(text), start=1):
        yield index, line


def line_of_offset(text: str, offset: int) -> int:
    """Return the 1-based line number containing character ``offset``."""
    return text.count("\n", 0, offset) + 1


def calculate_entropy(text: str) -> float:
    """Calculate Shannon entropy of a string.

    Higher entropy indicates more randomness, which is characteristic of secrets.
    Typical thresholds:
    - < 3.0: Low entropy (common words, patterns)
    - 3.0-4.0: Medium entropy
    - 4.0-5.0: High entropy (possible secrets)
    - > 5.0: Very high entropy (likely secrets)

    Args:
        text: The string to analyze.

    Returns:
        Shannon entropy value (bits per character).
    """
    if not text:
        return 0.0

    freq: dict[str, int] = {}
    for char in text:
        freq[char] = freq.get(char, 0) + 1

    entropy = 0.0
    length = len(text)
    for count in freq.values():
        prob = count / length
        entropy -= prob * math.log2(prob)

    return entropy
