"""Exception hierarchy for redactyl."""

from __future__ import annotations


class RedactylError(Exception):
    """Base exception for all redactyl errors."""

    pass


class ScanError(RedactylError):
    """The scan could not start (unreadable or missing root)."""

    pass


class ConfigError(RedactylError):
    """A configuration file is malformed or holds invalid values."""

    def __init__(self, message: str, config_path: str | None = None):
        self.config_path = config_path
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.config_path:
            msg += f" (config: {self.config_path})"
        return msg


class ArchiveError(RedactylError):
    """An archive could not be opened or traversed."""

    pass


class ArchiveEntryNotFound(ArchiveError):
    """The requested entry does not exist inside the archive."""

    pass


class BudgetExceeded(ArchiveError):
    """A traversal budget (bytes, entries or depth) was exhausted.

    Attributes:
        kind: Which budget ran out: "bytes", "entries", "depth" or "time".
    """

    def __init__(self, kind: str, message: str | None = None):
        self.kind = kind
        super().__init__(message or f"archive {kind} budget exceeded")


class BaselineError(RedactylError):
    """A baseline file exists but cannot be parsed or written."""

    pass
