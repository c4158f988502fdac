"""Gitignore-style exclusion via ``.redactylignore``."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

import pathspec

logger = logging.getLogger(__name__)

IGNORE_FILE_NAME = ".redactylignore"


class IgnoreMatcher:
    """Matches repo-relative paths against gitignore-syntax patterns."""

    def __init__(self, patterns: Iterable[str] = ()) -> None:
        lines = [
            line
            for line in (p.rstrip("\r\n") for p in patterns)
            if line.strip() and not line.lstrip().startswith("#")
        ]
        self.patterns = lines
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", lines)

    @classmethod
    def load(cls, path: Path | str) -> IgnoreMatcher:
        """Load patterns from ``path``.

        A missing or unreadable file yields a matcher that excludes nothing.
        """
        try:
            text = Path(path).read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.debug("No ignore file at %s: %s", path, e)
            return cls()
        return cls(text.splitlines())

    def match(self, rel_path: str) -> bool:
        if not self.patterns:
            return False
        return self._spec.match_file(rel_path)
