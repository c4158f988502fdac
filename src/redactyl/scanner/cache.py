"""Incremental scan cache.

Maps repo-relative paths to an xxHash64 content digest so unchanged files
can be skipped on the next run. The cache lives at
``<root>/.redactylcache.json``.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import xxhash

from redactyl.scanner.base import Finding

logger = logging.getLogger(__name__)

CACHE_FILE_NAME = ".redactylcache.json"
CACHE_VERSION = 1
EMPTY_DIGEST = "0000000000000000"


def fast_hash(data: bytes) -> str:
    """Return the 16-character lowercase hex xxHash64 of ``data``."""
    if not data:
        return EMPTY_DIGEST
    return xxhash.xxh64(data).hexdigest()


@dataclass
class CacheDB:
    """Digest cache for one scan root.

    ``entries`` holds the digests loaded from disk; ``findings`` holds the
    raw findings recorded per path for replay. New digests are buffered by
    :meth:`record` and only written by :meth:`save`. Callers serialize
    access to :meth:`record` (the engine holds its results lock).
    """

    entries: dict[str, str] = field(default_factory=dict)
    findings: dict[str, list[Finding]] = field(default_factory=dict)
    _updates: dict[str, str] = field(default_factory=dict, repr=False)
    _finding_updates: dict[str, list[Finding]] = field(default_factory=dict, repr=False)

    @classmethod
    def load(cls, root: Path | str) -> CacheDB:
        """Load the cache for ``root``. Any failure yields an empty cache."""
        path = Path(root) / CACHE_FILE_NAME
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Cache not loaded from %s: %s", path, e)
            return cls()

        try:
            return cls.from_dict(raw)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.debug("Ignoring malformed cache %s: %s", path, e)
            return cls()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> CacheDB:
        if raw.get("version") != CACHE_VERSION:
            raise ValueError(f"unsupported cache version {raw.get('version')!r}")
        entries = {str(k): str(v) for k, v in (raw.get("entries") or {}).items()}
        findings = {
            str(k): [Finding.from_dict(item) for item in v]
            for k, v in (raw.get("findings") or {}).items()
        }
        return cls(entries=entries, findings=findings)

    def digest(self, path: str) -> str | None:
        return self.entries.get(path)

    def unchanged(self, path: str, digest: str) -> bool:
        return self.entries.get(path) == digest

    def cached_findings(self, path: str) -> list[Finding]:
        return list(self.findings.get(path, ()))

    def record(self, path: str, digest: str, findings: list[Finding] | None = None) -> None:
        """Buffer a digest (and optionally raw findings) for write-back.

        Recording without findings clears any findings stored for ``path``,
        so a later replay never re-emits results for older content.
        """
        self._updates[path] = digest
        self._finding_updates[path] = list(findings) if findings is not None else []

    def to_dict(self) -> dict[str, Any]:
        entries = {**self.entries, **self._updates}
        findings = {**self.findings, **self._finding_updates}
        return {
            "version": CACHE_VERSION,
            "entries": dict(sorted(entries.items())),
            "findings": {
                path: [f.to_dict() for f in items]
                for path, items in sorted(findings.items())
                if items and path in entries
            },
        }

    def save(self, root: Path | str) -> bool:
        """Write the merged cache. Failures are logged and ignored.

        Returns:
            True if the file was written.
        """
        path = Path(root) / CACHE_FILE_NAME
        try:
            path.write_text(json.dumps(self.to_dict(), indent=2) + "\n", encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            logger.debug("Cache not saved to %s: %s", path, e)
            return False
        return True
