"""Git utilities for redactyl.

This module shells out to the ``git`` binary to read staged blobs, recent
commits and diffs against a base branch. Every failure surfaces as
:class:`GitError`; the scan engine treats that as "no files".
"""

from __future__ import annotations

import logging
import subprocess  # nosec B404
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from redactyl.errors import RedactylError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30

Runner = Callable[[Sequence[str]], bytes]


class GitError(RedactylError):
    """Error executing git command."""

    pass


@dataclass
class CommitEntry:
    """Files touched by one commit, with their content at that commit."""

    hash: str
    files: dict[str, bytes] = field(default_factory=dict)


def _split_names(output: bytes) -> list[str]:
    return [
        line.strip()
        for line in output.decode("utf-8", errors="replace").splitlines()
        if line.strip()
    ]


class GitClient:
    """Thin wrapper over the git CLI.

    Args:
        runner: Callable taking the full argv and returning stdout bytes,
            raising :class:`GitError` on failure. Defaults to running
            ``git`` via subprocess; tests inject fakes here.
        timeout: Per-command timeout in seconds.
    """

    def __init__(self, runner: Runner | None = None, timeout: int = DEFAULT_TIMEOUT) -> None:
        self.timeout = timeout
        self._runner = runner or self._subprocess_runner

    def _subprocess_runner(self, argv: Sequence[str]) -> bytes:
        try:
            result = subprocess.run(  # nosec B603, B607
                list(argv),
                capture_output=True,
                timeout=self.timeout,
            )
        except (subprocess.TimeoutExpired, FileNotFoundError) as e:
            raise GitError(f"git failed: {e}") from e
        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise GitError(f"{' '.join(argv[3:])}: {stderr or 'exit ' + str(result.returncode)}")
        return result.stdout

    def run(self, root: Path | str, *args: str) -> bytes:
        return self._runner(["git", "-C", str(root), *args])

    def staged_diff(self, root: Path | str) -> list[tuple[str, bytes]]:
        """Return ``(path, staged_blob)`` for each staged file.

        Files whose staged blob cannot be read (deletions) get empty content.
        """
        paths = _split_names(self.run(root, "diff", "--name-only", "--cached"))
        files: list[tuple[str, bytes]] = []
        for path in paths:
            try:
                data = self.run(root, "show", f":{path}")
            except GitError:
                data = b""
            files.append((path, data))
        return files

    def last_n_commits(self, root: Path | str, n: int) -> list[CommitEntry]:
        """Return the files changed in each of the ``n`` most recent commits.

        Commits whose file list cannot be read are skipped, as are files
        deleted by the commit.
        """
        if n <= 0:
            return []
        hashes = _split_names(self.run(root, "rev-list", "--max-count", str(n), "HEAD"))
        entries: list[CommitEntry] = []
        for commit in hashes:
            try:
                names = _split_names(self.run(root, "show", commit, "--name-only", "--pretty="))
            except GitError as e:
                logger.debug("Skipping commit %s: %s", commit, e)
                continue
            entry = CommitEntry(hash=commit)
            for path in names:
                try:
                    entry.files[path] = self.run(root, "show", f"{commit}:{path}")
                except GitError:
                    continue
            entries.append(entry)
        return entries

    def diff_against(self, root: Path | str, base: str) -> list[tuple[str, bytes]]:
        """Return ``(path, patch)`` for every file that differs from ``base``."""
        paths = _split_names(self.run(root, "diff", "--name-only", base))
        files: list[tuple[str, bytes]] = []
        for path in paths:
            try:
                data = self.run(root, "diff", base, "--", path)
            except GitError:
                data = b""
            files.append((path, data))
        return files
