"""Scan engine - orchestrates sources, the worker pool and the detector pipeline.

The ScanEngine is responsible for:
- Selecting the source (working tree, staged, history, or base diff)
- Skipping unchanged files through the incremental cache
- Running the detector pipeline on a fixed pool of worker threads
- Expanding enabled artifacts under byte, entry, depth and time budgets
"""

from __future__ import annotations

import logging
import os
import threading
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from redactyl.detectors.pipeline import Pipeline
from redactyl.detectors.registry import DetectorRegistry
from redactyl.detectors.registry import detector_ids as _registry_ids
from redactyl.detectors.verify import VerifyMode
from redactyl.errors import ScanError
from redactyl.scanner.archive import ArchiveLimits
from redactyl.scanner.artifacts import artifacts_enabled, find_artifacts
from redactyl.scanner.base import ArtifactStats, Finding, ScanResult, SourceFile
from redactyl.scanner.cache import CacheDB, fast_hash
from redactyl.scanner.ignore import IGNORE_FILE_NAME, IgnoreMatcher
from redactyl.scanner.pool import WorkerPool
from redactyl.scanner.sources import diff_files, history_files, staged_files
from redactyl.scanner.walk import content_allowed, is_binary, walk_tree
from redactyl.utils.git import GitClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_BYTES = 1024 * 1024
DEFAULT_MAX_ARCHIVE_BYTES = 32 * 1024 * 1024
DEFAULT_MAX_ENTRIES = 1000
DEFAULT_MAX_DEPTH = 2


class CachePolicy(Enum):
    """What happens to findings of files skipped by the cache.

    ``SKIP`` drops them (an unchanged file reports nothing on rerun).
    ``REPLAY`` stores each file's raw findings and re-emits them.
    """

    SKIP = "skip"
    REPLAY = "replay"


@dataclass
class ScanConfig:
    """Configuration for one scan.

    Attributes:
        root: Directory to scan.
        include: Globs a path must match (any) to be scanned; empty means all.
        exclude: Globs that drop a path.
        max_bytes: Skip files larger than this.
        enable_detectors: Detector allow-list (ids); wins over the deny-list.
        disable_detectors: Detector deny-list (ids).
        min_confidence: Drop findings below this confidence; 0 disables.
        threads: Worker threads; 0 means one per CPU.
        use_cache: Load and save ``.redactylcache.json``.
        cache_policy: Treatment of findings for unchanged files.
        default_excludes: Skip vendor/build directories and lock files.
        scan_archives: Expand zip/tar/gzip archives.
        scan_containers: Expand container image tarballs.
        scan_iac: Flatten Terraform state files.
        scan_helm: Expand packaged Helm charts.
        scan_k8s: Decode Kubernetes Secret manifests.
        max_archive_bytes: Byte budget per top-level artifact.
        max_entries: Entry budget per top-level archive.
        max_depth: Nesting budget per top-level archive.
        scan_time_budget: Seconds before dispatch stops; None is unlimited.
        global_artifact_budget: Seconds allowed for artifact expansion.
        progress: Called once per file sent to the pipeline.
        scan_staged: Scan staged blobs instead of the working tree.
        history_commits: Scan the files of the last N commits.
        base_branch: Scan the diff against this branch.
        dry_run: Count files without running detectors.
        verify_mode: Local verification strictness.
    """

    root: Path = field(default_factory=lambda: Path("."))
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    max_bytes: int = DEFAULT_MAX_BYTES
    enable_detectors: list[str] = field(default_factory=list)
    disable_detectors: list[str] = field(default_factory=list)
    min_confidence: float = 0.0
    threads: int = 0
    use_cache: bool = True
    cache_policy: CachePolicy = CachePolicy.SKIP
    default_excludes: bool = True
    scan_archives: bool = False
    scan_containers: bool = False
    scan_iac: bool = False
    scan_helm: bool = False
    scan_k8s: bool = False
    max_archive_bytes: int = DEFAULT_MAX_ARCHIVE_BYTES
    max_entries: int = DEFAULT_MAX_ENTRIES
    max_depth: int = DEFAULT_MAX_DEPTH
    scan_time_budget: float | None = None
    global_artifact_budget: float | None = None
    progress: Callable[[], None] | None = None
    scan_staged: bool = False
    history_commits: int = 0
    base_branch: str = ""
    dry_run: bool = False
    verify_mode: VerifyMode = VerifyMode.OFF

    def __post_init__(self) -> None:
        self.root = Path(self.root)

    @property
    def resolved_threads(self) -> int:
        return self.threads if self.threads > 0 else (os.cpu_count() or 1)

    @property
    def working_tree(self) -> bool:
        """True when the scan reads the working tree rather than git objects."""
        return not (self.base_branch or self.history_commits > 0 or self.scan_staged)

    def archive_limits(self) -> ArchiveLimits:
        return ArchiveLimits(
            max_bytes=self.max_archive_bytes,
            max_entries=self.max_entries,
            max_depth=self.max_depth,
        )


def _deadline(start: float, seconds: float | None) -> float | None:
    if seconds is None or seconds <= 0:
        return None
    return start + seconds


class _TimeBudget:
    """Soft deadline shared by the dispatch loops.

    The first check past a deadline increments ``stats.time`` once; every
    later check reports exceeded without counting again.
    """

    def __init__(self, stats: ArtifactStats, deadline: float | None) -> None:
        self.stats = stats
        self.deadline = deadline
        self.tripped = False

    def exceeded(self, extra_deadline: float | None = None) -> bool:
        if self.tripped:
            return True
        now = time.monotonic()
        for limit in (self.deadline, extra_deadline):
            if limit is not None and now > limit:
                self.tripped = True
                self.stats.increment("time")
                logger.debug("Time budget exceeded; no further work dispatched")
                break
        return self.tripped


@dataclass
class _ScanState:
    result: ScanResult
    cache: CacheDB
    pipeline: Pipeline
    lock: threading.Lock = field(default_factory=threading.Lock)
    # (artifact path, digest, raw findings) recorded after the pool drains
    artifacts: list[tuple[str, str, list[Finding]]] = field(default_factory=list)


class ScanEngine:
    """Runs one scan described by a :class:`ScanConfig`.

    Example:
        config = ScanConfig(root=Path("."), threads=4)
        result = ScanEngine(config).scan()
        print(f"{len(result.findings)} findings in {result.files_scanned} files")
    """

    def __init__(
        self,
        config: ScanConfig | None = None,
        registry: DetectorRegistry | None = None,
        git: GitClient | None = None,
    ) -> None:
        """Initialize the scan engine.

        Args:
            config: Scan configuration. Uses defaults if None.
            registry: Detectors to run. Defaults to the built-in registry.
            git: Git collaborator for staged/history/diff sources.
        """
        self.config = config or ScanConfig()
        self.registry = registry
        self.git = git or GitClient()

    def _check_root(self) -> Path:
        root = self.config.root
        if not root.is_dir():
            raise ScanError(f"Scan root does not exist or is not a directory: {root}")
        try:
            with os.scandir(root):
                pass
        except OSError as e:
            raise ScanError(f"Scan root is not readable: {root}: {e}") from e
        return root

    def _sources(self, ignore: IgnoreMatcher) -> Iterator[SourceFile]:
        config = self.config
        if config.base_branch:
            return diff_files(config, ignore, self.git)
        if config.history_commits > 0:
            return history_files(config, ignore, self.git)
        if config.scan_staged:
            return staged_files(config, ignore, self.git)
        return walk_tree(config, ignore)

    def _notify_progress(self) -> None:
        if self.config.progress is None:
            return
        try:
            self.config.progress()
        except Exception as e:
            logger.debug("Progress callback failed: %s", e)

    def _replay(self, state: _ScanState, path: str) -> None:
        """Account for a cache hit; caller holds ``state.lock``."""
        state.result.files_cached += 1
        if self.config.cache_policy is CachePolicy.REPLAY:
            state.result.findings.extend(state.pipeline.filter(state.cache.cached_findings(path)))

    def _process(
        self, state: _ScanState, source: SourceFile, sink: list[Finding] | None = None
    ) -> None:
        """Scan one file. Runs on a worker thread."""
        config = self.config
        digest = fast_hash(source.data)
        if source.cacheable and config.use_cache and state.cache.unchanged(source.path, digest):
            with state.lock:
                self._replay(state, source.path)
            return

        with state.lock:
            state.result.files_scanned += 1
        self._notify_progress()
        if config.dry_run:
            return

        raw = state.pipeline.raw(source.path, source.data)
        if source.metadata:
            raw = [replace(f, metadata={**source.metadata, **f.metadata}) for f in raw]
        findings = state.pipeline.filter(raw)

        replay = config.cache_policy is CachePolicy.REPLAY
        with state.lock:
            state.result.findings.extend(findings)
            if sink is not None:
                sink.extend(raw)
            if source.cacheable and config.use_cache:
                state.cache.record(source.path, digest, raw if replay else None)

    def _scan_artifacts(
        self,
        state: _ScanState,
        ignore: IgnoreMatcher,
        pool: WorkerPool,
        budget: _TimeBudget,
    ) -> None:
        config = self.config
        stats = state.result.artifact_stats
        artifact_deadline = _deadline(time.monotonic(), config.global_artifact_budget)
        limits = config.archive_limits()

        for artifact in find_artifacts(config, ignore, stats):
            if budget.exceeded(artifact_deadline):
                return
            digest = fast_hash(artifact.data)
            if config.use_cache and state.cache.unchanged(artifact.path, digest):
                with state.lock:
                    self._replay(state, artifact.path)
                continue

            aborts_before = stats.total
            sink: list[Finding] = []
            try:
                for vpath, data in artifact.leaves(limits, stats):
                    if budget.exceeded(artifact_deadline):
                        return
                    if not content_allowed(data, config) or is_binary(vpath, data):
                        continue
                    pool.submit(self._process, state, SourceFile(path=vpath, data=data), sink)
            except Exception as e:
                logger.debug("Skipping artifact %s: %s", artifact.path, e)
                continue

            if stats.total == aborts_before and not config.dry_run:
                state.artifacts.append((artifact.path, digest, sink))

    def scan(self) -> ScanResult:
        """Run the scan.

        Returns:
            ScanResult with findings sorted by (path, line).

        Raises:
            ScanError: The root is missing or unreadable.
        """
        config = self.config
        root = self._check_root()
        started = time.monotonic()

        state = _ScanState(
            result=ScanResult(),
            cache=CacheDB.load(root) if config.use_cache else CacheDB(),
            pipeline=Pipeline.from_config(config, self.registry),
        )
        ignore = IgnoreMatcher.load(root / IGNORE_FILE_NAME)
        budget = _TimeBudget(
            state.result.artifact_stats, _deadline(started, config.scan_time_budget)
        )

        pool = WorkerPool(config.resolved_threads)
        try:
            for source in self._sources(ignore):
                if budget.exceeded():
                    break
                pool.submit(self._process, state, source)

            if config.working_tree and artifacts_enabled(config) and not budget.tripped:
                self._scan_artifacts(state, ignore, pool, budget)
        finally:
            pool.wait()

        result = state.result
        result.findings.sort(key=lambda f: (f.path, f.line))
        if config.use_cache:
            replay = config.cache_policy is CachePolicy.REPLAY
            for path, digest, raw in state.artifacts:
                state.cache.record(path, digest, raw if replay else None)
            state.cache.save(root)
        result.duration = time.monotonic() - started
        logger.debug(
            "Scanned %d files (%d cached) in %.2fs, %d findings",
            result.files_scanned,
            result.files_cached,
            result.duration,
            len(result.findings),
        )
        return result


def scan_with_stats(config: ScanConfig) -> ScanResult:
    """Scan and return the full result."""
    return ScanEngine(config).scan()


def scan(config: ScanConfig) -> list[Finding]:
    """Scan and return only the findings."""
    return scan_with_stats(config).findings


def detector_ids() -> list[str]:
    """Ids of every built-in detector."""
    return _registry_ids()
