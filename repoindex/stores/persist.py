"""Durable JSON document helpers."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List, Optional

from ..errors import PersistenceError
from ..logging import get_logger

logger = get_logger("stores.persist")


def write_json_atomic(path: Path, payload: Any) -> None:
    """Write ``payload`` to ``path`` so readers see either the old or new document."""
    tmp_name: Optional[str] = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as handle:
            tmp_name = handle.name
            json.dump(payload, handle, indent=2, sort_keys=True)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except (OSError, TypeError, ValueError) as exc:
        raise PersistenceError(f"Failed to write {path}: {exc}") from exc
    finally:
        if tmp_name is not None:
            try:
                os.unlink(tmp_name)
            except OSError:
                pass


def read_json(path: Path) -> Optional[Any]:
    """Return the decoded document, or None when missing or unreadable."""
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return None


def journal_path(document: Path) -> Path:
    """Journal file kept beside ``document``."""
    return document.with_name(f"{document.name}.journal")


class JsonJournal:
    """Append-only JSON-lines log of changes made since the last compaction.

    A document store appends each committed batch here instead of rewriting
    its whole document, replays the log over the document on load, and folds
    it back in with :meth:`reset` after writing a fresh document. Records must
    be absolute (the full new value), so replaying one twice is harmless.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def append(self, records: Iterable[Any]) -> None:
        """Durably append ``records``; raises PersistenceError on failure."""
        try:
            # A leading newline isolates the batch from a torn tail left by a crash.
            lines = "".join(f"\n{json.dumps(record, sort_keys=True)}" for record in records)
            if not lines:
                return
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as handle:
                handle.write(lines)
                handle.flush()
                os.fsync(handle.fileno())
        except (OSError, TypeError, ValueError) as exc:
            raise PersistenceError(f"Failed to append to {self._path}: {exc}") from exc

    def replay(self) -> List[Any]:
        try:
            text = self._path.read_text(encoding="utf-8", errors="replace")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("Ignoring unreadable journal %s: %s", self._path, exc)
            return []
        records = []
        for number, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(json.loads(line))
            except ValueError:
                logger.warning("Skipping torn journal record %s:%d", self._path, number)
        return records

    def reset(self) -> None:
        try:
            self._path.unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            raise PersistenceError(f"Failed to truncate {self._path}: {exc}") from exc


__all__ = ["JsonJournal", "journal_path", "read_json", "write_json_atomic"]
