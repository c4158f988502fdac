"""Built-in pattern detectors.

Each pattern targets a credential format with a distinctive prefix or
shape. Patterns are matched line by line; the first capture group (when
present) is reported as the match.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace

from redactyl.detectors.base import Detector, decode, iter_lines, line_of_offset
from redactyl.scanner.base import Finding, Severity


@dataclass(frozen=True)
class SecretPattern:
    """A regex pattern for detecting secrets.

    Attributes:
        id: Unique detector id (e.g., "aws_access_key").
        description: Human-readable description of what this pattern detects.
        pattern: Compiled regex pattern. Should have a capture group for the secret.
        severity: Severity level when this pattern matches.
        confidence: Confidence attached to every match.
    """

    id: str
    description: str
    pattern: re.Pattern[str]
    severity: Severity
    confidence: float


class RegexDetector(Detector):
    """Line-oriented detector driven by a single :class:`SecretPattern`."""

    def __init__(self, definition: SecretPattern) -> None:
        self.definition = definition
        self.id = definition.id
        self.description = definition.description
        self.severity = definition.severity
        self.confidence = definition.confidence

    def accept(self, value: str) -> bool:
        """Hook for subclasses to veto a raw match."""
        return True

    def detect(self, path: str, data: bytes) -> list[Finding]:
        findings: list[Finding] = []
        for line_no, line in iter_lines(decode(data)):
            for m in self.definition.pattern.finditer(line):
                value = m.group(1) if m.groups() else m.group(0)
                if value and self.accept(value):
                    findings.append(self.finding(path, line_no, value))
        return findings


_PLACEHOLDER_MARKERS = ("xxxx", "example", "placeholder", "changeme", "your_", "your-")


class GenericAssignmentDetector(RegexDetector):
    """Generic ``api_key = value`` assignments, minus obvious placeholders."""

    def accept(self, value: str) -> bool:
        lowered = value.lower()
        if any(marker in lowered for marker in _PLACEHOLDER_MARKERS):
            return False
        return len(set(value)) > 4


_PEM_BEGIN = re.compile(r"-----BEGIN ((?:[A-Z0-9]+ )*)PRIVATE KEY(?: BLOCK)?-----")
_PEM_END = re.compile(r"-----END ((?:[A-Z0-9]+ )*)PRIVATE KEY(?: BLOCK)?-----")


class PrivateKeyBlockDetector(Detector):
    """PEM/OpenSSH/PGP private key blocks.

    The whole content is scanned so the reported line is the one carrying
    the BEGIN marker. Blocks without an END marker (truncated pastes) are
    still reported, with lower confidence.
    """

    id = "private_key_block"
    description = "Private key block"
    severity = Severity.HIGH
    confidence = 0.99

    def detect(self, path: str, data: bytes) -> list[Finding]:
        text = decode(data)
        findings: list[Finding] = []
        for m in _PEM_BEGIN.finditer(text):
            finding = self.finding(path, line_of_offset(text, m.start()), m.group(0))
            if _PEM_END.search(text, m.end()) is None:
                finding = replace(finding, confidence=0.8, metadata={"truncated": "true"})
            findings.append(finding)
        return findings


# Boundaries shared by prefix-style tokens: the token must not be embedded
# inside a longer identifier.
_L = r"(?<![A-Za-z0-9_])"
_R = r"(?![A-Za-z0-9_])"

PATTERNS: list[SecretPattern] = [
    # AWS
    SecretPattern(
        id="aws_access_key",
        description="AWS Access Key ID",
        pattern=re.compile(r"(?<![A-Z0-9])((?:AKIA|ASIA|ABIA|ACCA)[A-Z0-9]{16})(?![A-Z0-9])"),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="aws_secret_key",
        description="AWS Secret Access Key",
        pattern=re.compile(
            r"(?i)(?:aws[_-]?secret[_-]?access[_-]?key|secret[_-]?access[_-]?key)"
            r"['\"]?\s*[=:]\s*['\"]?([A-Za-z0-9/+=]{40})(?![A-Za-z0-9/+=])"
        ),
        severity=Severity.HIGH,
        confidence=0.85,
    ),
    # GitHub / GitLab
    SecretPattern(
        id="github_token",
        description="GitHub Token",
        pattern=re.compile(_L + r"((?:ghp|gho|ghu|ghs|ghr)_[A-Za-z0-9]{36})" + _R),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="github_fine_grained_pat",
        description="GitHub Fine-Grained Personal Access Token",
        pattern=re.compile(_L + r"(github_pat_[A-Za-z0-9]{22}_[A-Za-z0-9]{59})" + _R),
        severity=Severity.HIGH,
        confidence=0.95,
    ),
    SecretPattern(
        id="gitlab_token",
        description="GitLab Personal Access Token",
        pattern=re.compile(r"(?<![A-Za-z0-9_-])(glpat-[A-Za-z0-9_-]{20})(?![A-Za-z0-9_-])"),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    # Slack / Discord
    SecretPattern(
        id="slack_token",
        description="Slack Token",
        pattern=re.compile(_L + r"(xox[abprs]-[A-Za-z0-9-]{10,})"),
        severity=Severity.HIGH,
        confidence=0.85,
    ),
    SecretPattern(
        id="slack_webhook",
        description="Slack Webhook URL",
        pattern=re.compile(
            r"(https://hooks\.slack\.com/services/T[A-Za-z0-9_]+/B[A-Za-z0-9_]+/[A-Za-z0-9_]+)"
        ),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="discord_webhook",
        description="Discord Webhook URL",
        pattern=re.compile(
            r"(https://(?:ptb\.|canary\.)?discord(?:app)?\.com/api/webhooks/[0-9]+/[A-Za-z0-9_-]+)"
        ),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    # Payments / AI / email
    SecretPattern(
        id="stripe_secret",
        description="Stripe Secret Key",
        pattern=re.compile(_L + r"((?:sk|rk)_live_[A-Za-z0-9]{24,})" + _R),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="stripe_webhook_secret",
        description="Stripe Webhook Signing Secret",
        pattern=re.compile(_L + r"(whsec_[A-Za-z0-9]{24,})" + _R),
        severity=Severity.HIGH,
        confidence=0.85,
    ),
    SecretPattern(
        id="openai_api_key",
        description="OpenAI API Key",
        pattern=re.compile(
            r"(?<![A-Za-z0-9_-])(sk-(?:proj-[A-Za-z0-9_-]{40,}|[A-Za-z0-9]{48}))(?![A-Za-z0-9_-])"
        ),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="sendgrid_api_key",
        description="SendGrid API Key",
        pattern=re.compile(_L + r"(SG\.[A-Za-z0-9_-]{16,32}\.[A-Za-z0-9_-]{16,64})" + _R),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    # Cloud / registries
    SecretPattern(
        id="google_api_key",
        description="Google API Key",
        pattern=re.compile(_L + r"(AIza[0-9A-Za-z_-]{35})(?![A-Za-z0-9_-])"),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="npm_token",
        description="NPM Access Token",
        pattern=re.compile(_L + r"(npm_[A-Za-z0-9]{36})" + _R),
        severity=Severity.HIGH,
        confidence=0.9,
    ),
    SecretPattern(
        id="pypi_token",
        description="PyPI API Token",
        pattern=re.compile(r"(pypi-AgEIcHlwaS5vcmc[A-Za-z0-9_-]{50,})"),
        severity=Severity.HIGH,
        confidence=0.95,
    ),
    SecretPattern(
        id="netlify_token",
        description="Netlify Access Token",
        pattern=re.compile(_L + r"(nf_[A-Za-z0-9]{26,})" + _R),
        severity=Severity.HIGH,
        confidence=0.8,
    ),
    SecretPattern(
        id="terraform_cloud_token",
        description="Terraform Cloud / Enterprise Token",
        pattern=re.compile(_L + r"((?:tfe|tfc)\.[A-Za-z0-9]{34,})" + _R),
        severity=Severity.HIGH,
        confidence=0.8,
    ),
    SecretPattern(
        id="digitalocean_pat",
        description="DigitalOcean Personal Access Token",
        pattern=re.compile(_L + r"(dop_v1_[a-f0-9]{64})" + _R),
        severity=Severity.HIGH,
        confidence=0.95,
    ),
    SecretPattern(
        id="dockerhub_pat",
        description="Docker Hub Personal Access Token",
        pattern=re.compile(_L + r"(dckr_pat_[A-Za-z0-9_-]{27,})(?![A-Za-z0-9_-])"),
        severity=Severity.HIGH,
        confidence=0.85,
    ),
    SecretPattern(
        id="okta_api_token",
        description="Okta API Token",
        pattern=re.compile(r"(SSWS [A-Za-z0-9_-]{40,})"),
        severity=Severity.HIGH,
        confidence=0.85,
    ),
    SecretPattern(
        id="newrelic_api_key",
        description="New Relic API Key",
        pattern=re.compile(_L + r"((?:NRAK|NRAL|NRII|NRAA)-[A-Za-z0-9]{27,})" + _R),
        severity=Severity.HIGH,
        confidence=0.85,
    ),
    # Generic
    SecretPattern(
        id="jwt",
        description="JSON Web Token",
        pattern=re.compile(r"(eyJ[A-Za-z0-9_-]+?\.[A-Za-z0-9._-]+?\.[A-Za-z0-9._-]+)"),
        severity=Severity.MEDIUM,
        confidence=0.7,
    ),
]

GENERIC_API_KEY = SecretPattern(
    id="generic_api_key",
    description="Generic API Key Assignment",
    pattern=re.compile(
        r"(?i)(?<![a-z0-9])(?:api[_-]?key|apikey|secret[_-]?key|access[_-]?token"
        r"|auth[_-]?token|client[_-]?secret)['\"]?\s*[:=]\s*['\"]?"
        r"([A-Za-z0-9_\-./+]{16,})"
    ),
    severity=Severity.HIGH,
    confidence=0.6,
)


def build_pattern_detectors() -> list[Detector]:
    """Instantiate every pattern detector in registration order."""
    detectors: list[Detector] = [RegexDetector(definition) for definition in PATTERNS]
    detectors.append(PrivateKeyBlockDetector())
    detectors.append(GenericAssignmentDetector(GENERIC_API_KEY))
    return detectors
