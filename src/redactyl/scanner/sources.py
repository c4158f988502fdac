"""Git-backed source providers: staged changes, recent history, base diff.

Each provider yields :class:`SourceFile` objects after the same path and
content filters the working-tree walker applies. A git failure of any kind
yields no files.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import TYPE_CHECKING

from redactyl.scanner.base import SourceFile
from redactyl.scanner.ignore import IgnoreMatcher
from redactyl.scanner.walk import content_allowed, path_allowed
from redactyl.utils.git import GitClient, GitError

if TYPE_CHECKING:
    from redactyl.scanner.engine import ScanConfig

logger = logging.getLogger(__name__)


def _filtered(
    blobs: Iterable[tuple[str, bytes]],
    config: ScanConfig,
    ignore: IgnoreMatcher,
    metadata: dict[str, str] | None = None,
) -> Iterator[SourceFile]:
    for path, data in blobs:
        if not data or not path_allowed(path, config, ignore):
            continue
        if not content_allowed(data, config):
            continue
        yield SourceFile(path=path, data=data, metadata=dict(metadata or {}))


def staged_files(
    config: ScanConfig, ignore: IgnoreMatcher, git: GitClient | None = None
) -> Iterator[SourceFile]:
    """Yield the staged version of every staged file."""
    git = git or GitClient()
    try:
        blobs = git.staged_diff(config.root)
    except GitError as e:
        logger.debug("Staged scan unavailable: %s", e)
        return
    yield from _filtered(blobs, config, ignore)


def history_files(
    config: ScanConfig, ignore: IgnoreMatcher, git: GitClient | None = None
) -> Iterator[SourceFile]:
    """Yield files changed by the last ``config.history_commits`` commits.

    Each file carries the commit hash in ``metadata["commit"]``.
    """
    git = git or GitClient()
    try:
        commits = git.last_n_commits(config.root, config.history_commits)
    except GitError as e:
        logger.debug("History scan unavailable: %s", e)
        return
    for entry in commits:
        yield from _filtered(
            sorted(entry.files.items()), config, ignore, metadata={"commit": entry.hash}
        )


def diff_files(
    config: ScanConfig, ignore: IgnoreMatcher, git: GitClient | None = None
) -> Iterator[SourceFile]:
    """Yield the diff of every file changed relative to ``config.base_branch``.

    Blobs are stripped of surrounding whitespace; pure deletions come back
    empty and are skipped.
    """
    git = git or GitClient()
    try:
        blobs = git.diff_against(config.root, config.base_branch)
    except GitError as e:
        logger.debug("Diff against %s unavailable: %s", config.base_branch, e)
        return
    yield from _filtered(((path, data.strip()) for path, data in blobs), config, ignore)
