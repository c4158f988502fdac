"""Context-sensitive detectors.

Some credentials have no distinctive prefix: a Twilio auth token is 32 hex
characters, a Qdrant key is an opaque 32 to 64 character string. Matching
those shapes alone would flag every hash in a repository, so these
detectors only accept a candidate when a vendor marker (or an env-var style
key name) appears within a few lines of it.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from redactyl.detectors.base import Detector, calculate_entropy, decode, split_lines
from redactyl.scanner.base import Finding, Severity

DEFAULT_WINDOW = 3

_HEX32 = r"(?<![A-Fa-f0-9])([a-fA-F0-9]{32})(?![A-Fa-f0-9])"
_UUID = (
    r"(?<![A-Fa-f0-9-])"
    r"([0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12})"
    r"(?![A-Fa-f0-9-])"
)
_GENERIC_KEY_32_TO_64 = r"(?<![A-Za-z0-9_-])([A-Za-z0-9_-]{32,64})(?![A-Za-z0-9_-])"


@dataclass(frozen=True)
class ContextPattern:
    """A candidate shape plus the marker that must surround it.

    Attributes:
        id: Detector id.
        description: Human-readable description.
        context: Marker regex; at least one line within ``window`` lines of
            the candidate must match it.
        candidate: Token regex. The first capture group is the match.
        severity: Severity for accepted candidates.
        confidence: Confidence for accepted candidates.
        window: Line distance allowed between marker and candidate.
        min_entropy: Minimum Shannon entropy of the candidate, 0 disables.
    """

    id: str
    description: str
    context: re.Pattern[str]
    candidate: re.Pattern[str]
    severity: Severity
    confidence: float
    window: int = DEFAULT_WINDOW
    min_entropy: float = 0.0


class ContextDetector(Detector):
    def __init__(self, definition: ContextPattern) -> None:
        self.definition = definition
        self.id = definition.id
        self.description = definition.description
        self.severity = definition.severity
        self.confidence = definition.confidence

    def detect(self, path: str, data: bytes) -> list[Finding]:
        lines = split_lines(decode(data))
        markers = [i for i, line in enumerate(lines) if self.definition.context.search(line)]
        if not markers:
            return []

        findings: list[Finding] = []
        window = self.definition.window
        min_entropy = self.definition.min_entropy
        for i, line in enumerate(lines):
            if not any(abs(i - m) <= window for m in markers):
                continue
            for m in self.definition.candidate.finditer(line):
                value = m.group(1)
                if min_entropy and calculate_entropy(value) < min_entropy:
                    continue
                findings.append(self.finding(path, i + 1, value))
        return findings


class EntropyContextDetector(Detector):
    """High-entropy values assigned to secret-looking key names.

    Matches ``SOME_SECRET = value`` and ``"api_token": "value"`` forms where
    the value is long and random enough to be a credential. The key name is
    the context, so the value must sit on the same line.
    """

    id = "entropy_context"
    description = "High-entropy value assigned to a secret-like key"
    severity = Severity.MEDIUM
    confidence = 0.6

    pattern = re.compile(
        r"(?i)(?<![a-z0-9])[a-z0-9_.-]*"
        r"(?:secret|token|password|passwd|private[_-]?key|api[_-]?key|access[_-]?key)"
        r"[a-z0-9_.-]*['\"]?\s*[:=]\s*['\"]?([A-Za-z0-9+/_=.-]{20,})"
    )
    min_entropy = 3.5

    def detect(self, path: str, data: bytes) -> list[Finding]:
        findings: list[Finding] = []
        for index, line in enumerate(split_lines(decode(data)), start=1):
            for m in self.pattern.finditer(line):
                value = m.group(1)
                if calculate_entropy(value) >= self.min_entropy:
                    findings.append(self.finding(path, index, value))
        return findings


CONTEXT_PATTERNS: list[ContextPattern] = [
    ContextPattern(
        id="twilio_auth_token",
        description="Twilio Auth Token",
        context=re.compile(r"(?i)twilio"),
        candidate=re.compile(_HEX32),
        severity=Severity.HIGH,
        confidence=0.8,
    ),
    ContextPattern(
        id="datadog_api_key",
        description="Datadog API Key",
        context=re.compile(r"(?i)datadog|(?<![a-z0-9])dd[_-]?(?:api|app)[_-]?key"),
        candidate=re.compile(_HEX32),
        severity=Severity.HIGH,
        confidence=0.8,
    ),
    ContextPattern(
        id="heroku_api_key",
        description="Heroku API Key",
        context=re.compile(r"(?i)heroku"),
        candidate=re.compile(_UUID),
        severity=Severity.HIGH,
        confidence=0.8,
    ),
    ContextPattern(
        id="qdrant_api_key",
        description="Qdrant API Key",
        context=re.compile(r"(?i)qdrant"),
        candidate=re.compile(_GENERIC_KEY_32_TO_64),
        severity=Severity.HIGH,
        confidence=0.9,
        min_entropy=3.0,
    ),
    ContextPattern(
        id="weaviate_api_key",
        description="Weaviate API Key",
        context=re.compile(r"(?i)weaviate"),
        candidate=re.compile(_GENERIC_KEY_32_TO_64),
        severity=Severity.HIGH,
        confidence=0.9,
        min_entropy=3.0,
    ),
]


def build_context_detectors() -> list[Detector]:
    detectors: list[Detector] = [ContextDetector(definition) for definition in CONTEXT_PATTERNS]
    detectors.append(EntropyContextDetector())
    return detectors
