"""Local, network-free verification rules.

In ``safe`` mode each finding whose detector has a rule is re-checked
against a stricter structural shape; findings that fail are dropped.
Rules never perform I/O and never change the matched text.
"""

from __future__ import annotations

import base64
import binascii
import string
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.parse import urlsplit

from redactyl.scanner.base import Finding

BASE62 = string.ascii_letters + string.digits
HEX = "0123456789abcdefABCDEF"


class VerifyMode(Enum):
    """Verification strictness."""

    OFF = "off"
    SAFE = "safe"


class VerificationRule(Protocol):
    """Protocol for all verification rules."""

    def check(self, finding: Finding) -> tuple[Finding, bool]:
        """Return the (possibly normalized) finding and whether it is kept."""
        ...


def _in_alphabet(value: str, alphabet: str) -> bool:
    allowed = set(alphabet)
    return all(ch in allowed for ch in value)


@dataclass(frozen=True)
class PrefixLength:
    """Known prefix followed by a tail of bounded length.

    ``exact_tail`` takes precedence over ``min_tail`` when set.
    """

    prefixes: tuple[str, ...]
    min_tail: int = 0
    exact_tail: int | None = None
    alphabet: str | None = None

    def check(self, finding: Finding) -> tuple[Finding, bool]:
        match = finding.match
        for prefix in self.prefixes:
            if not match.startswith(prefix):
                continue
            tail = match[len(prefix):]
            if self.exact_tail is not None:
                ok = len(tail) == self.exact_tail
            else:
                ok = len(tail) >= self.min_tail
            if ok and self.alphabet is not None:
                ok = _in_alphabet(tail, self.alphabet)
            return finding, ok
        return finding, False


@dataclass(frozen=True)
class HexTail:
    """Prefix followed by exactly ``length`` hex characters."""

    prefix: str
    length: int

    def check(self, finding: Finding) -> tuple[Finding, bool]:
        match = finding.match
        if not match.startswith(self.prefix):
            return finding, False
        tail = match[len(self.prefix):]
        return finding, len(tail) == self.length and _in_alphabet(tail, HEX)


@dataclass(frozen=True)
class Base64Decodes:
    """The whole match decodes as standard base64, padded or not."""

    def check(self, finding: Finding) -> tuple[Finding, bool]:
        value = finding.match
        candidates = [value]
        if len(value) % 4:
            candidates.append(value + "=" * (-len(value) % 4))
        for candidate in candidates:
            try:
                base64.b64decode(candidate, validate=True)
            except (binascii.Error, ValueError):
                continue
            return finding, True
        return finding, False


@dataclass(frozen=True)
class UrlShape:
    """URL on an exact host with a constrained path.

    ``exact_parts`` pins the number of path segments; otherwise
    ``min_parts`` is a floor. ``leading`` must prefix the segment list.
    """

    host: str
    exact_parts: int | None = None
    min_parts: int = 0
    leading: tuple[str, ...] = ()

    def check(self, finding: Finding) -> tuple[Finding, bool]:
        try:
            url = urlsplit(finding.match)
        except ValueError:
            return finding, False
        if url.hostname != self.host:
            return finding, False
        parts = url.path.removeprefix("/").split("/")
        if self.exact_parts is not None and len(parts) != self.exact_parts:
            return finding, False
        if len(parts) < self.min_parts:
            return finding, False
        if tuple(parts[: len(self.leading)]) != self.leading:
            return finding, False
        return finding, True


@dataclass(frozen=True)
class DottedSegments:
    """Three dot-separated segments with fixed middle and minimum last length."""

    middle: int
    min_last: int

    def check(self, finding: Finding) -> tuple[Finding, bool]:
        parts = finding.match.split(".")
        ok = len(parts) == 3 and len(parts[1]) == self.middle and len(parts[2]) >= self.min_last
        return finding, ok


RULES: dict[str, VerificationRule] = {
    "stripe_secret": PrefixLength(("sk_live_",), min_tail=28),
    "openai_api_key": PrefixLength(("sk-",), min_tail=45),
    "slack_webhook": UrlShape("hooks.slack.com", exact_parts=4),
    "discord_webhook": UrlShape("discord.com", min_parts=4, leading=("api", "webhooks")),
    "github_token": PrefixLength(("ghp_", "gho_", "ghu_", "ghs_", "ghr_"), exact_tail=36),
    "aws_access_key": PrefixLength(("AKIA", "ASIA"), exact_tail=16),
    "aws_secret_key": Base64Decodes(),
    "slack_token": PrefixLength(("xox",), min_tail=12),
    "netlify_token": PrefixLength(("nf_",), min_tail=26, alphabet=BASE62),
    "terraform_cloud_token": PrefixLength(("tfe.", "tfc."), min_tail=34, alphabet=BASE62),
    "digitalocean_pat": HexTail("dop_v1_", 64),
    "dockerhub_pat": PrefixLength(("dckr_pat_",), exact_tail=64, alphabet=BASE62),
    "sendgrid_api_key": DottedSegments(middle=16, min_last=32),
    "twilio_auth_token": HexTail("", 32),
    "okta_api_token": PrefixLength(("SSWS ",), min_tail=50),
    "newrelic_api_key": PrefixLength(("NRAK-", "NRAL-", "NRII-", "NRAA-"), min_tail=27),
    "stripe_webhook_secret": PrefixLength(("whsec_",), min_tail=24, alphabet=BASE62),
}


def verify_findings(
    findings: list[Finding],
    mode: VerifyMode = VerifyMode.OFF,
    rules: dict[str, VerificationRule] | None = None,
) -> list[Finding]:
    """Apply verification rules in safe mode.

    Args:
        findings: Findings to check.
        mode: ``OFF`` returns the input unchanged.
        rules: Rule table, defaults to the built-in :data:`RULES`.

    Returns:
        Kept findings, in input order.
    """
    if mode is not VerifyMode.SAFE or not findings:
        return findings

    table = RULES if rules is None else rules
    kept: list[Finding] = []
    for finding in findings:
        rule = table.get(finding.detector)
        if rule is None:
            kept.append(finding)
            continue
        checked, ok = rule.check(finding)
        if ok:
            kept.append(checked)
    return kept
