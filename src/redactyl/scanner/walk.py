"""Working-tree walker and the file filters shared by every source."""

from __future__ import annotations

import fnmatch
import logging
import mimetypes
import os
from collections.abc import Iterator, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from redactyl.scanner.base import SourceFile
from redactyl.scanner.cache import CACHE_FILE_NAME
from redactyl.scanner.ignore import IGNORE_FILE_NAME, IgnoreMatcher

if TYPE_CHECKING:
    from redactyl.scanner.engine import ScanConfig

logger = logging.getLogger(__name__)

IGNORE_FILE_MARKER = b"redactyl:ignore-file"
BASELINE_FILE_NAME = "redactyl.baseline.json"

# Files the engine writes itself; never scanned.
ENGINE_FILES = frozenset({CACHE_FILE_NAME, BASELINE_FILE_NAME})

DEFAULT_EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        "node_modules",
        "bower_components",
        "vendor",
        ".venv",
        "venv",
        "__pycache__",
        ".tox",
        ".nox",
        ".mypy_cache",
        ".pytest_cache",
        ".ruff_cache",
        ".idea",
        ".gradle",
        ".terraform",
        "dist",
        "build",
        "target",
        "coverage",
    }
)

DEFAULT_EXCLUDED_FILES = (
    "*.lock",
    "package-lock.json",
    "pnpm-lock.yaml",
    "go.sum",
    "*.min.js",
    "*.min.css",
    "*.map",
)

BINARY_SNIFF_BYTES = 800
PNG_MAGIC = b"\x89PNG\r\n\x1a\n"
_BINARY_MIME_TYPES = frozenset(
    {
        "application/zip",
        "application/x-tar",
        "application/gzip",
        "application/x-gzip",
    }
)


def matches_any(rel_path: str, patterns: Sequence[str]) -> bool:
    """True if ``rel_path`` or its basename matches any glob in ``patterns``."""
    name = rel_path.rsplit("/", 1)[-1]
    return any(
        fnmatch.fnmatchcase(rel_path, pattern) or fnmatch.fnmatchcase(name, pattern)
        for pattern in patterns
    )


def path_allowed(rel_path: str, config: ScanConfig, ignore: IgnoreMatcher) -> bool:
    """Apply include/exclude globs and the ignore file to a relative path."""
    if config.include and not matches_any(rel_path, config.include):
        return False
    if config.exclude and matches_any(rel_path, config.exclude):
        return False
    return not ignore.match(rel_path)


def content_allowed(data: bytes, config: ScanConfig) -> bool:
    """Apply the size cutoff and the ``redactyl:ignore-file`` marker."""
    if config.max_bytes and len(data) > config.max_bytes:
        return False
    return IGNORE_FILE_MARKER not in data


def is_binary(path: str, data: bytes) -> bool:
    """Heuristic binary check on a file's name and leading bytes."""
    head = data[:BINARY_SNIFF_BYTES]
    if b"\x00" in head:
        return True
    mime, _ = mimetypes.guess_type(path)
    if mime:
        major = mime.split("/", 1)[0]
        if major in ("image", "video", "audio") or mime in _BINARY_MIME_TYPES:
            return True
    return head.startswith(PNG_MAGIC) or head.startswith(b"PK")


def _default_excluded_file(name: str) -> bool:
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in DEFAULT_EXCLUDED_FILES)


def iter_paths(config: ScanConfig, ignore: IgnoreMatcher) -> Iterator[tuple[str, Path]]:
    """Yield ``(rel_posix_path, absolute_path)`` for eligible working-tree files.

    Applies directory pruning, default exclusions, globs and the ignore
    file. Content-based checks are left to the caller.
    """
    root = Path(config.root)
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        rel_dir = current.relative_to(root).as_posix()
        rel_dir = "" if rel_dir == "." else rel_dir

        kept = []
        for d in sorted(dirnames):
            rel = f"{rel_dir}/{d}" if rel_dir else d
            if config.default_excludes and d in DEFAULT_EXCLUDED_DIRS:
                continue
            if d == ".git" or ignore.match(rel + "/"):
                continue
            kept.append(d)
        dirnames[:] = kept

        for name in sorted(filenames):
            if name in ENGINE_FILES or name == IGNORE_FILE_NAME:
                continue
            if config.default_excludes and _default_excluded_file(name):
                continue
            full = current / name
            if full.is_symlink():
                continue
            rel = f"{rel_dir}/{name}" if rel_dir else name
            if path_allowed(rel, config, ignore):
                yield rel, full


def walk_tree(config: ScanConfig, ignore: IgnoreMatcher) -> Iterator[SourceFile]:
    """Yield text files of the working tree that pass every filter.

    Unreadable files are skipped and logged at debug level.
    """
    for rel, full in iter_paths(config, ignore):
        try:
            if config.max_bytes and full.stat().st_size > config.max_bytes:
                continue
            data = full.read_bytes()
        except OSError as e:
            logger.debug("Skipping unreadable file %s: %s", rel, e)
            continue
        if not content_allowed(data, config) or is_binary(rel, data):
            continue
        yield SourceFile(path=rel, data=data, cacheable=True)


def count_targets(config: ScanConfig, ignore: IgnoreMatcher | None = None) -> int:
    """Estimate how many working-tree files a scan will visit.

    Only names and sizes are checked, so binary files under the size cutoff
    are still counted.
    """
    if ignore is None:
        ignore = IgnoreMatcher.load(Path(config.root) / IGNORE_FILE_NAME)
    total = 0
    for _rel, full in iter_paths(config, ignore):
        try:
            if config.max_bytes and full.stat().st_size > config.max_bytes:
                continue
        except OSError:
            continue
        total += 1
    return total
