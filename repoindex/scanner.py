"""Incremental scanner: change detection, concurrent analysis, batched commits."""

from __future__ import annotations

import os
import queue
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, Iterator, List, Optional, Set

from .config import RepoIndexConfig, ScanConfig, load_config
from .errors import PersistenceError, ScanError, VcsError
from .exclusions import ExclusionEvaluator, ExclusionRules
from .git.vcs import GitRepository, VersionControl
from .language import Language, detect_language
from .logging import get_logger
from .models import FileAnalysis, ScanReport, Tier
from .parsers.registry import ParserRegistry, build_registry
from .pipeline import AnalysisPipeline, failed_analysis, fingerprint_bytes
from .stores.index_store import INDEX_FILENAME, IndexStore, JsonIndexStore
from .stores.scan_state import STATE_FILENAME, FileState, ScanState

logger = get_logger("scanner")

DEFAULT_STATE_DIR = ".repoindex"

_ANALYZED = "analyzed"
_UNCHANGED = "unchanged"
_DELETED = "deleted"
_UNREADABLE = "unreadable"
_RETRY = "retry"

_STOP = object()


@dataclass
class ScanOptions:
    """Per-scan behaviour; defaults mirror :class:`~repoindex.config.ScanConfig`."""

    workers: int = 4
    batch_size: int = 64
    use_vcs: bool = True
    grace_period: float = 5.0
    include_unknown: bool = False
    index_partial: bool = False
    force: bool = False
    cancel_event: Optional[threading.Event] = None

    @classmethod
    def from_config(cls, config: ScanConfig, **overrides: object) -> "ScanOptions":
        options = cls(
            workers=config.workers,
            batch_size=config.batch_size,
            use_vcs=config.use_vcs,
            grace_period=config.grace_period,
            include_unknown=config.include_unknown,
            index_partial=config.index_partial,
        )
        return replace(options, **overrides) if overrides else options


@dataclass
class _Candidate:
    path: str
    size: int
    mtime_ns: int


@dataclass
class _Outcome:
    path: str
    status: str
    analysis: Optional[FileAnalysis] = None
    state: Optional[FileState] = None


def _apply_batch(
    index_store: IndexStore,
    scan_state: ScanState,
    batch: List[_Outcome],
    index_partial: bool,
) -> None:
    """Commit one batch: Index Store first, then the scan state."""
    entries: Dict[str, FileState] = {}
    removed: List[str] = []
    for outcome in batch:
        if outcome.status == _ANALYZED and outcome.analysis is not None:
            if outcome.analysis.failed and not index_partial:
                index_store.remove(outcome.path)
            else:
                index_store.upsert(outcome.analysis)
            if outcome.state is not None:
                entries[outcome.path] = outcome.state
        elif outcome.status == _UNCHANGED:
            if outcome.state is not None:
                entries[outcome.path] = outcome.state
        elif outcome.status == _RETRY:
            # Keep the last good entry; the old state makes the next scan retry.
            continue
        else:
            index_store.remove(outcome.path)
            removed.append(outcome.path)
    if not entries and not removed:
        return
    index_store.flush()
    scan_state.commit_batch(entries, removed)


class _BatchCommitter:
    """Single writer draining worker results into the stores."""

    def __init__(
        self,
        index_store: IndexStore,
        scan_state: ScanState,
        options: ScanOptions,
        report: ScanReport,
    ) -> None:
        self._index = index_store
        self._state = scan_state
        self._batch_size = max(1, options.batch_size)
        self._index_partial = options.index_partial
        self._report = report
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._thread = threading.Thread(target=self._run, name="repoindex-committer", daemon=True)
        self.error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def start(self) -> None:
        self._thread.start()

    def put(self, outcome: _Outcome) -> None:
        self._queue.put(outcome)

    def stop(self) -> None:
        self._queue.put(_STOP)
        self._thread.join()

    def _run(self) -> None:
        batch: List[_Outcome] = []
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            if self.error is not None:
                continue
            batch.append(item)  # type: ignore[arg-type]
            if len(batch) >= self._batch_size:
                self._commit(batch)
                batch = []
        if batch and self.error is None:
            self._commit(batch)

    def _commit(self, batch: List[_Outcome]) -> None:
        known = {outcome.path for outcome in batch if outcome.status == _DELETED and outcome.path in self._state}
        try:
            _apply_batch(self._index, self._state, batch, self._index_partial)
        except PersistenceError as exc:
            logger.error("Failed to commit batch of %d files: %s", len(batch), exc)
            self.error = exc
            return
        except Exception as exc:  # pragma: no cover - re-raised by the scan
            logger.exception("Index store rejected a batch")
            self.error = exc
            return
        self._count(batch, known)

    def _count(self, batch: List[_Outcome], known_deleted: Set[str]) -> None:
        report = self._report
        for outcome in batch:
            if outcome.status == _UNCHANGED:
                report.files_unchanged += 1
                report.files_scanned += 1
            elif outcome.status == _DELETED:
                if outcome.path in known_deleted:
                    report.files_deleted += 1
            else:
                report.files_analyzed += 1
                report.files_scanned += 1
                analysis = outcome.analysis
                if analysis is None:
                    continue
                report.diagnostics.extend(analysis.diagnostics)
                if outcome.status == _RETRY:
                    report.files_retried += 1
                if outcome.status == _UNREADABLE or analysis.failed:
                    report.files_failed += 1
                    report.failed_paths.append(outcome.path)


class IncrementalScanner:
    """Keeps an Index Store in sync with a source tree.

    Only files whose content changed since the last committed scan are
    analyzed. Results are committed in batches by a single committer
    thread, so an interrupted scan loses at most its uncommitted batch.
    """

    def __init__(
        self,
        registry: ParserRegistry,
        index_store: IndexStore,
        scan_state: ScanState,
        *,
        root: Path | str | None = None,
        exclusions: ExclusionEvaluator | None = None,
        vcs: VersionControl | None = None,
        options: ScanOptions | None = None,
    ) -> None:
        self._registry = registry
        self._index = index_store
        self._state = scan_state
        self._root = Path(root).expanduser().resolve() if root is not None else None
        self._exclusions = exclusions or ExclusionRules()
        self._vcs = vcs
        self._options = options or ScanOptions()
        self._lock = threading.Lock()

    @property
    def registry(self) -> ParserRegistry:
        return self._registry

    @property
    def index_store(self) -> IndexStore:
        return self._index

    @property
    def scan_state(self) -> ScanState:
        return self._state

    def scan(self, root: Path | str | None = None, options: ScanOptions | None = None) -> ScanReport:
        """Bring the Index Store up to date with ``root``.

        Per-file failures are reported, never raised. Raises
        :class:`ScanError` when the root is unreadable and
        :class:`PersistenceError` when a batch cannot be committed.
        """
        root_path = self._resolve_root(root)
        options = options or self._options
        with self._lock:
            return self._scan(root_path, options)

    def analyze_one(self, path: Path | str) -> FileAnalysis:
        """Re-analyze a single file now and commit the result."""
        root_path = self._resolve_root(None)
        rel_path = self._relative(root_path, path)
        pipeline = AnalysisPipeline(self._registry, root_path)
        with self._lock:
            try:
                stat_result = (root_path / rel_path).stat()
            except OSError:
                outcome = _Outcome(rel_path, _DELETED)
                analysis = pipeline.analyze(rel_path)
            else:
                candidate = _Candidate(rel_path, stat_result.st_size, stat_result.st_mtime_ns)
                outcome = self._process(pipeline, candidate, None)
                analysis = outcome.analysis or pipeline.analyze(rel_path)
            _apply_batch(self._index, self._state, [outcome], self._options.index_partial)
        return analysis

    def close(self) -> None:
        self._index.close()
        self._state.commit()
        self._registry.close()

    def __enter__(self) -> "IncrementalScanner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Scan driver

    def _scan(self, root: Path, options: ScanOptions) -> ScanReport:
        started = time.perf_counter()
        report = ScanReport(root=str(root))
        cancel = options.cancel_event or threading.Event()
        logger.info("Starting scan of %s", root)

        self._registry.refresh_demoted()
        pipeline = AnalysisPipeline(self._registry, root)
        head = self._vcs.current_commit() if self._vcs is not None else None
        report.commit = head
        changed = None if options.force else self._vcs_changes(options)
        report.used_vcs = changed is not None

        committer = _BatchCommitter(self._index, self._state, options, report)
        committer.start()
        complete = False
        try:
            complete = self._produce(root, pipeline, options, changed, committer, cancel)
        finally:
            committer.stop()
        if committer.error is not None:
            if isinstance(committer.error, ScanError):
                raise committer.error
            raise ScanError(f"Index store failed: {committer.error}") from committer.error

        report.cancelled = cancel.is_set()
        if complete and not report.cancelled:
            if report.files_retried:
                logger.warning(
                    "%d files hit transient backend failures; keeping the previous commit marker",
                    report.files_retried,
                )
            else:
                self._state.set_last_commit(head)
        # Index before state, as for every batch.
        self._index.checkpoint()
        self._state.commit()
        report.failed_paths.sort()
        report.duration = time.perf_counter() - started

        if report.cancelled:
            logger.warning(
                "Scan of %s cancelled after %d analyzed files", root, report.files_analyzed
            )
        logger.info(
            "Finished scan of %s: %d scanned, %d analyzed, %d unchanged, %d failed, %d retried, %d deleted (%.2fs)",
            root,
            report.files_scanned,
            report.files_analyzed,
            report.files_unchanged,
            report.files_failed,
            report.files_retried,
            report.files_deleted,
            report.duration,
        )
        return report

    def _produce(
        self,
        root: Path,
        pipeline: AnalysisPipeline,
        options: ScanOptions,
        changed: Optional[Set[str]],
        committer: _BatchCommitter,
        cancel: threading.Event,
    ) -> bool:
        """Feed candidates to the worker pool; True when every candidate was issued."""
        workers = max(1, options.workers)
        slots = threading.BoundedSemaphore(workers * 2)
        pending: Set[Future] = set()
        pending_lock = threading.Lock()
        stored = {} if options.force else self._state.snapshot()

        def _on_done(path: str) -> Callable[[Future], None]:
            def _callback(future: Future) -> None:
                with pending_lock:
                    pending.discard(future)
                slots.release()
                if future.cancelled():
                    return
                exc = future.exception()
                if exc is not None:
                    logger.error("Analysis task for %s crashed: %s", path, exc)
                    analysis = failed_analysis(path, detect_language(path), Tier.NONE, f"analysis crashed: {exc}")
                    committer.put(_Outcome(path, _UNREADABLE, analysis=analysis))
                    return
                committer.put(future.result())

            return _callback

        interrupted = False
        executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repoindex-worker")
        try:
            if changed is None:
                candidates = self._walk(root, options)
            else:
                candidates = self._changed_candidates(root, options, changed, stored, committer)
            seen: Set[str] = set()
            for candidate in candidates:
                if cancel.is_set() or committer.failed:
                    interrupted = True
                    break
                seen.add(candidate.path)
                previous = stored.get(candidate.path)
                if (
                    previous is not None
                    and previous.size == candidate.size
                    and previous.mtime_ns == candidate.mtime_ns
                ):
                    committer.put(_Outcome(candidate.path, _UNCHANGED))
                    continue
                if not self._acquire(slots, cancel, committer):
                    interrupted = True
                    break
                future = executor.submit(self._process, pipeline, candidate, previous)
                with pending_lock:
                    pending.add(future)
                future.add_done_callback(_on_done(candidate.path))

            if not interrupted and changed is None:
                for path in sorted(set(self._state.paths()) - seen):
                    committer.put(_Outcome(path, _DELETED))
        finally:
            if interrupted or cancel.is_set():
                with pending_lock:
                    in_flight = set(pending)
                _, not_done = wait(in_flight, timeout=max(0.0, options.grace_period))
                for future in not_done:
                    future.cancel()
                executor.shutdown(wait=False, cancel_futures=True)
            else:
                executor.shutdown(wait=True)
        return not interrupted

    @staticmethod
    def _acquire(
        slots: threading.BoundedSemaphore, cancel: threading.Event, committer: _BatchCommitter
    ) -> bool:
        while not slots.acquire(timeout=0.1):
            if cancel.is_set() or committer.failed:
                return False
        return True

    def _process(
        self,
        pipeline: AnalysisPipeline,
        candidate: _Candidate,
        previous: Optional[FileState],
    ) -> _Outcome:
        rel_path = candidate.path
        try:
            data = pipeline.read(rel_path)
        except FileNotFoundError:
            return _Outcome(rel_path, _DELETED)
        except OSError as exc:
            logger.warning("Could not read %s: %s", rel_path, exc)
            return _Outcome(rel_path, _UNREADABLE, analysis=pipeline.analyze(rel_path))

        fingerprint = fingerprint_bytes(data)
        if previous is not None and previous.fingerprint == fingerprint:
            refreshed = replace(previous, size=candidate.size, mtime_ns=candidate.mtime_ns)
            return _Outcome(rel_path, _UNCHANGED, state=refreshed)

        analysis = pipeline.analyze(rel_path, data, fingerprint)
        state = FileState(
            fingerprint=fingerprint,
            language=analysis.language.value,
            tier=analysis.tier.value,
            size=candidate.size,
            mtime_ns=candidate.mtime_ns,
            failed=analysis.failed,
        )
        if analysis.retryable:
            return _Outcome(rel_path, _RETRY, analysis=analysis)
        if analysis.failed:
            logger.warning("Analysis of %s reported errors", rel_path)
        return _Outcome(rel_path, _ANALYZED, analysis=analysis, state=state)

    # ------------------------------------------------------------------
    # Change detection

    def _vcs_changes(self, options: ScanOptions) -> Optional[Set[str]]:
        if not options.use_vcs or self._vcs is None:
            return None
        last_commit = self._state.last_commit
        if not last_commit:
            return None
        try:
            changed = self._vcs.changed_since(last_commit)
        except VcsError as exc:
            logger.warning("Version control query failed; walking the tree instead: %s", exc)
            return None
        logger.debug("Version control reports %d changed paths since %s", len(changed), last_commit)
        return changed

    def _changed_candidates(
        self,
        root: Path,
        options: ScanOptions,
        changed: Set[str],
        stored: Dict[str, FileState],
        committer: _BatchCommitter,
    ) -> Iterator[_Candidate]:
        # The diff cannot see untracked files that vanished or edits that were
        # reverted, so stored paths go through the stat shortcut as well.
        for rel_path in sorted(changed | set(stored)):
            full_path = root / rel_path
            wanted = not self._exclusions.is_excluded(rel_path) and self._wanted(rel_path, options)
            candidate = self._candidate(full_path, rel_path) if wanted and full_path.is_file() else None
            if candidate is not None:
                yield candidate
            elif rel_path in stored:
                committer.put(_Outcome(rel_path, _DELETED))

    def _walk(self, root: Path, options: ScanOptions) -> Iterator[_Candidate]:
        def _onerror(exc: OSError) -> None:
            logger.warning("Could not list %s: %s", exc.filename, exc)

        for dirpath, dirnames, filenames in os.walk(root, onerror=_onerror):
            current_dir = Path(dirpath)
            rel_dir = current_dir.relative_to(root).as_posix() if current_dir != root else ""

            kept = []
            for name in sorted(dirnames):
                rel_path = f"{rel_dir}/{name}" if rel_dir else name
                if not self._exclusions.is_excluded(rel_path, is_dir=True):
                    kept.append(name)
            dirnames[:] = kept

            for filename in sorted(filenames):
                rel_path = f"{rel_dir}/{filename}" if rel_dir else filename
                if self._exclusions.is_excluded(rel_path) or not self._wanted(rel_path, options):
                    continue
                candidate = self._candidate(current_dir / filename, rel_path)
                if candidate is not None:
                    yield candidate

    @staticmethod
    def _candidate(full_path: Path, rel_path: str) -> Optional[_Candidate]:
        try:
            stat_result = full_path.stat()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not stat %s: %s", rel_path, exc)
            return _Candidate(rel_path, -1, -1)
        return _Candidate(rel_path, stat_result.st_size, stat_result.st_mtime_ns)

    @staticmethod
    def _wanted(rel_path: str, options: ScanOptions) -> bool:
        return options.include_unknown or detect_language(rel_path) is not Language.UNKNOWN

    # ------------------------------------------------------------------
    # Paths

    def _resolve_root(self, root: Path | str | None) -> Path:
        if root is None:
            if self._root is None:
                raise ScanError("No repository root configured for this scanner")
            root_path = self._root
        else:
            root_path = Path(root).expanduser().resolve()
        if not root_path.is_dir():
            raise ScanError(f"Repository root is not a readable directory: {root_path}")
        try:
            with os.scandir(root_path):
                pass
        except OSError as exc:
            raise ScanError(f"Repository root is not readable: {root_path}: {exc}") from exc
        self._root = root_path
        return root_path

    @staticmethod
    def _relative(root: Path, path: Path | str) -> str:
        candidate = Path(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.resolve().relative_to(root)
            except ValueError as exc:
                raise ScanError(f"{path} is outside the repository root {root}") from exc
        return candidate.as_posix()


def create_scanner(
    root: Path | str,
    config: RepoIndexConfig | None = None,
    *,
    registry: ParserRegistry | None = None,
    index_store: IndexStore | None = None,
    vcs: VersionControl | None = None,
) -> IncrementalScanner:
    """Wire a scanner for ``root`` from ``.repoindex.yml`` (or ``config``)."""
    root_path = Path(root).expanduser().resolve()
    if not root_path.is_dir():
        raise ScanError(f"Repository root is not a directory: {root_path}")
    config = config or load_config(root_path)
    state_dir = config.scan.state_dir or root_path / DEFAULT_STATE_DIR

    patterns = list(config.exclude_paths)
    try:
        patterns.append(f"/{state_dir.resolve().relative_to(root_path).as_posix()}/")
    except ValueError:
        pass

    if vcs is None and config.scan.use_vcs:
        repository = GitRepository(root_path)
        if repository.is_repository():
            vcs = repository

    return IncrementalScanner(
        registry or build_registry(config, workspace_root=root_path),
        index_store or JsonIndexStore(state_dir / INDEX_FILENAME),
        ScanState(state_dir / STATE_FILENAME, root=str(root_path)),
        root=root_path,
        exclusions=ExclusionRules.from_root(root_path, patterns),
        vcs=vcs,
        options=ScanOptions.from_config(config.scan),
    )


__all__ = ["DEFAULT_STATE_DIR", "IncrementalScanner", "ScanOptions", "create_scanner"]
