"""Archive expansion and virtual-path resolution.

Content nested inside archives is addressed by a *virtual path*: the
archive's repo-relative path followed by ``::`` and the entry path, repeated
once per nesting level, e.g. ``dist/app.zip::lib/vendor.tar::config.yml``.
The payload of a bare gzip has an empty final segment: ``logs/app.log.gz::``.

Two entry points share one set of readers:

- :func:`resolve_virtual_path` / :func:`extract_from_archive` fetch a
  single leaf's bytes (used to show a finding's source).
- :func:`iter_archive` walks every leaf under byte, entry and depth budgets
  (used by the scan engine).
"""

from __future__ import annotations

import gzip
import io
import logging
import tarfile
import zipfile
import zlib
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from redactyl.errors import ArchiveEntryNotFound, ArchiveError, BudgetExceeded
from redactyl.scanner.base import ArtifactStats

logger = logging.getLogger(__name__)

VIRTUAL_SEP = "::"

# Errors raised by the stdlib readers on corrupt or truncated input.
_READ_ERRORS = (
    tarfile.TarError,
    zipfile.BadZipFile,
    zlib.error,
    gzip.BadGzipFile,
    EOFError,
    OSError,
    ValueError,
)


@dataclass(frozen=True)
class ArchiveLimits:
    """Budgets applied while expanding one top-level archive.

    Attributes:
        max_bytes: Decompressed bytes read across the whole archive tree.
        max_entries: Leaf and container entries visited.
        max_depth: Nesting levels; the top-level archive's own entries are
            depth 1.
    """

    max_bytes: int = 32 * 1024 * 1024
    max_entries: int = 1000
    max_depth: int = 2


def split_virtual_path(vpath: str) -> tuple[str, str]:
    """Split off the outermost component of a virtual path.

    >>> split_virtual_path("outer.zip::inner.tar::file.txt")
    ('outer.zip', 'inner.tar::file.txt')
    """
    outer, _, rest = vpath.partition(VIRTUAL_SEP)
    return outer, rest


def join_virtual_path(*parts: str) -> str:
    return VIRTUAL_SEP.join(p for p in parts if p)


def archive_kind(name: str, data: bytes | None = None) -> str | None:
    """Classify an archive by file name, falling back to magic bytes.

    Returns:
        One of ``"zip"``, ``"tar"``, ``"tgz"``, ``"gzip"`` or None.
    """
    lower = name.lower()
    if lower.endswith((".zip", ".jar", ".war", ".whl", ".nupkg")):
        return "zip"
    if lower.endswith((".tar.gz", ".tgz")):
        return "tgz"
    if lower.endswith(".tar"):
        return "tar"
    if lower.endswith(".gz"):
        return "gzip"
    if data is None:
        return None
    if data[:4] == b"PK\x03\x04":
        return "zip"
    if data[:2] == b"\x1f\x8b":
        return "gzip"
    if len(data) > 262 and data[257:262] == b"ustar":
        return "tar"
    return None


def _normalize_entry(name: str) -> str:
    name = name.replace("\\", "/")
    while name.startswith("./"):
        name = name[2:]
    return name.lstrip("/")


def _entry_matches(entry: str, wanted: str) -> bool:
    entry = _normalize_entry(entry)
    wanted = _normalize_entry(wanted)
    return entry == wanted or entry.endswith("/" + wanted)


class _Budget:
    """Mutable budget counters for one top-level archive."""

    def __init__(self, limits: ArchiveLimits) -> None:
        self.limits = limits
        self.bytes_read = 0
        self.entries = 0

    def charge_entry(self) -> None:
        self.entries += 1
        if self.entries > self.limits.max_entries:
            raise BudgetExceeded("entries")

    def read(self, stream: io.BufferedIOBase | None, size_hint: int = -1) -> bytes:
        """Read a member stream, charging its size against the byte budget."""
        if stream is None:
            return b""
        remaining = self.limits.max_bytes - self.bytes_read
        if size_hint > remaining:
            raise BudgetExceeded("bytes")
        data = stream.read(remaining + 1)
        if len(data) > remaining:
            raise BudgetExceeded("bytes")
        self.bytes_read += len(data)
        return data


def _gunzip(data: bytes, budget: _Budget) -> bytes:
    with gzip.GzipFile(fileobj=io.BytesIO(data)) as gz:
        return budget.read(gz)


def _members(kind: str, data: bytes, budget: _Budget) -> Iterator[tuple[str, bytes]]:
    """Yield ``(entry_name, bytes)`` for regular-file members of one archive."""
    if kind == "zip":
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                budget.charge_entry()
                with zf.open(info) as member:
                    yield info.filename, budget.read(member, info.file_size)
        return

    mode = "r:gz" if kind == "tgz" else "r:"
    with tarfile.open(fileobj=io.BytesIO(data), mode=mode) as tf:
        for info in tf:
            if not info.isfile():
                continue
            budget.charge_entry()
            yield info.name, budget.read(tf.extractfile(info), info.size)


def _extract(name: str, data: bytes, inner: str, budget: _Budget, depth: int) -> bytes:
    if depth > budget.limits.max_depth:
        raise BudgetExceeded("depth")

    kind = archive_kind(name, data)
    if kind is None:
        raise ArchiveError(f"Not an archive: {name}")

    if kind == "gzip":
        try:
            payload = _gunzip(data, budget)
        except BudgetExceeded:
            raise
        except _READ_ERRORS as e:
            raise ArchiveError(f"Failed to decompress {name}: {e}") from e
        if not inner:
            return payload
        # foo.tar.gz spelled as foo.gz; the payload is the archive at the same depth
        return _extract(PurePosixPath(name).stem, payload, inner, budget, depth)

    head, sep, rest = inner.partition(VIRTUAL_SEP)
    if not head:
        raise ArchiveEntryNotFound(f"Empty entry path in {name}")
    try:
        for entry_name, entry_data in _members(kind, data, budget):
            if _entry_matches(entry_name, head):
                if sep:
                    return _extract(entry_name, entry_data, rest, budget, depth + 1)
                return entry_data
    except BudgetExceeded:
        raise
    except _READ_ERRORS as e:
        raise ArchiveError(f"Failed to read {name}: {e}") from e
    raise ArchiveEntryNotFound(f"{head} not found in {name}")


def extract_from_archive(
    archive_path: Path | str, inner: str, limits: ArchiveLimits | None = None
) -> bytes:
    """Return the bytes of ``inner`` (itself possibly a virtual path).

    Args:
        archive_path: Filesystem path of the outermost archive.
        inner: Entry path inside it. Empty is only valid for bare gzip.
        limits: Budgets, defaults to :class:`ArchiveLimits`.

    Raises:
        ArchiveError: The archive is unreadable or not an archive.
        ArchiveEntryNotFound: No entry matches.
        BudgetExceeded: A budget ran out while reading.
    """
    path = Path(archive_path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise ArchiveError(f"Failed to read {path}: {e}") from e
    return _extract(path.name, data, inner, _Budget(limits or ArchiveLimits()), depth=1)


def resolve_virtual_path(
    root: Path | str, vpath: str, limits: ArchiveLimits | None = None
) -> bytes:
    """Resolve a repo-relative virtual path under ``root`` to leaf bytes."""
    outer, sep, rest = vpath.partition(VIRTUAL_SEP)
    path = Path(root) / outer
    if not sep:
        try:
            return path.read_bytes()
        except OSError as e:
            raise ArchiveError(f"Failed to read {path}: {e}") from e
    return extract_from_archive(path, rest, limits)


def _walk(
    vpath: str, name: str, data: bytes, budget: _Budget, stats: ArtifactStats, depth: int
) -> Iterator[tuple[str, bytes]]:
    kind = archive_kind(name, data)
    if kind == "gzip":
        payload = _gunzip(data, budget)
        stem = PurePosixPath(name).stem
        if archive_kind(stem, payload) in ("zip", "tar", "tgz"):
            yield from _walk(vpath, stem, payload, budget, stats, depth)
        else:
            yield vpath + VIRTUAL_SEP, payload
        return
    if kind is None:
        logger.debug("Not an archive: %s", vpath)
        return

    for entry_name, entry_data in _members(kind, data, budget):
        child = join_virtual_path(vpath, _normalize_entry(entry_name))
        if archive_kind(entry_name, entry_data) is None:
            yield child, entry_data
            continue
        if depth + 1 > budget.limits.max_depth:
            # Only the nested archive is skipped; siblings continue.
            stats.increment("depth")
            logger.debug("Depth budget exceeded at %s", child)
            continue
        try:
            yield from _walk(child, entry_name, entry_data, budget, stats, depth + 1)
        except _READ_ERRORS as e:
            logger.debug("Skipping unreadable nested archive %s: %s", child, e)


def iter_archive(
    name: str,
    data: bytes,
    limits: ArchiveLimits | None = None,
    stats: ArtifactStats | None = None,
) -> Iterator[tuple[str, bytes]]:
    """Yield ``(virtual_path, bytes)`` for every leaf of an archive tree.

    ``name`` is the archive's repo-relative path and becomes the first
    virtual-path component. When the byte or entry budget runs out the
    walk stops, the matching ``stats`` counter is incremented once and
    everything already yielded stays valid. Corrupt archives end the walk
    quietly.
    """
    stats = stats if stats is not None else ArtifactStats()
    budget = _Budget(limits or ArchiveLimits())
    try:
        yield from _walk(name, name, data, budget, stats, depth=1)
    except BudgetExceeded as e:
        stats.increment(e.kind)
        logger.debug("Archive %s aborted: %s budget exceeded", name, e.kind)
    except _READ_ERRORS as e:
        logger.debug("Unreadable archive %s: %s", name, e)
