"""Persisted path to fingerprint table enabling incremental scans."""

from __future__ import annotations

import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Set

from .persist import JsonJournal, journal_path, read_json, write_json_atomic
from ..errors import PersistenceError
from ..logging import get_logger

logger = get_logger("stores.scan_state")

STATE_FILENAME = "scan_state.json"
_STATE_VERSION = 1


@dataclass(frozen=True)
class FileState:
    """What the last committed scan recorded for one file."""

    fingerprint: str
    language: str
    tier: str
    size: int
    mtime_ns: int
    failed: bool = False


class ScanState:
    """Maps repository-relative paths to their committed :class:`FileState`.

    Changes are staged in memory with :meth:`update`. :meth:`commit_batch`
    appends a batch to the journal beside the state document, and
    :meth:`commit` rewrites the document and empties the journal.
    """

    def __init__(self, path: Path | None, root: str = "") -> None:
        self._path = path
        self._root = root
        self._files: Dict[str, FileState] = {}
        self._last_commit: Optional[str] = None
        self._lock = threading.Lock()
        self._journal = JsonJournal(journal_path(path)) if path is not None else None
        if self._path is not None:
            self._load(self._path)

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def last_commit(self) -> Optional[str]:
        return self._last_commit

    def get(self, path: str) -> Optional[FileState]:
        with self._lock:
            return self._files.get(path)

    def paths(self) -> Set[str]:
        with self._lock:
            return set(self._files)

    def snapshot(self) -> Dict[str, FileState]:
        with self._lock:
            return dict(self._files)

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._files

    def update(
        self,
        entries: Mapping[str, FileState] | None = None,
        removed: Iterable[str] = (),
    ) -> None:
        with self._lock:
            for path in removed:
                self._files.pop(path, None)
            if entries:
                self._files.update(entries)

    def commit_batch(
        self,
        entries: Mapping[str, FileState] | None = None,
        removed: Iterable[str] = (),
    ) -> None:
        """Stage one batch and append it to the journal.

        Only the batch is written, so the cost does not grow with the size of
        the table. On failure the batch is rolled back.
        """
        removed = list(removed)
        entries = dict(entries or {})
        touched = set(removed).union(entries)
        if not touched:
            return
        with self._lock:
            undo = {path: self._files.get(path) for path in touched}
        self.update(entries, removed)
        if self._journal is None:
            return
        records = [{"path": path, "state": None} for path in removed if path not in entries]
        records.extend({"path": path, "state": asdict(state)} for path, state in sorted(entries.items()))
        try:
            self._journal.append(records)
        except PersistenceError:
            with self._lock:
                for path, previous in undo.items():
                    if previous is None:
                        self._files.pop(path, None)
                    else:
                        self._files[path] = previous
            raise

    def set_last_commit(self, commit: Optional[str]) -> None:
        with self._lock:
            self._last_commit = commit

    def commit(self) -> None:
        """Rewrite the state document and empty the journal.

        Raises PersistenceError on failure; the journal is kept in that case.
        """
        if self._path is None or self._journal is None:
            return
        with self._lock:
            payload = {
                "version": _STATE_VERSION,
                "root": self._root,
                "last_commit": self._last_commit,
                "files": {path: asdict(state) for path, state in sorted(self._files.items())},
            }
        write_json_atomic(self._path, payload)
        self._journal.reset()

    # ------------------------------------------------------------------
    # Internal helpers

    def _load(self, path: Path) -> None:
        self._load_document(path)
        if self._journal is None:
            return
        replayed = 0
        for record in self._journal.replay():
            if not isinstance(record, dict) or not isinstance(record.get("path"), str):
                continue
            raw = record.get("state")
            if raw is None:
                self._files.pop(record["path"], None)
            else:
                state = _state_from_dict(raw)
                if state is None:
                    continue
                self._files[record["path"]] = state
            replayed += 1
        if replayed:
            logger.debug("Replayed %d journal records into %s", replayed, path)

    def _load_document(self, path: Path) -> None:
        data = read_json(path)
        if data is None:
            return
        if not isinstance(data, dict) or data.get("version") != _STATE_VERSION:
            logger.warning("Discarding scan state with unsupported layout: %s", path)
            return
        files = data.get("files")
        if not isinstance(files, dict):
            return
        valid: Dict[str, FileState] = {}
        for rel_path, raw in files.items():
            state = _state_from_dict(raw)
            if isinstance(rel_path, str) and state is not None:
                valid[rel_path] = state
        self._files = valid
        last_commit = data.get("last_commit")
        self._last_commit = last_commit if isinstance(last_commit, str) and last_commit else None


def _state_from_dict(raw: object) -> Optional[FileState]:
    if not isinstance(raw, dict):
        return None
    fingerprint = raw.get("fingerprint")
    language = raw.get("language")
    tier = raw.get("tier")
    size = raw.get("size")
    mtime_ns = raw.get("mtime_ns")
    failed = raw.get("failed", False)
    if (
        not isinstance(fingerprint, str)
        or not isinstance(language, str)
        or not isinstance(tier, str)
        or not isinstance(size, int)
        or not isinstance(mtime_ns, int)
        or not isinstance(failed, bool)
    ):
        return None
    return FileState(
        fingerprint=fingerprint,
        language=language,
        tier=tier,
        size=size,
        mtime_ns=mtime_ns,
        failed=failed,
    )


__all__ = ["FileState", "STATE_FILENAME", "ScanState"]
