"""Tests for the persisted scan state."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from repoindex.errors import PersistenceError
from repoindex.stores.persist import JsonJournal, journal_path, read_json, write_json_atomic
from repoindex.stores.scan_state import FileState, ScanState


def _state(fingerprint: str = "fp", failed: bool = False) -> FileState:
    return FileState(fingerprint=fingerprint, language="python", tier="regex", size=10, mtime_ns=42, failed=failed)


def test_scan_state_round_trip(tmp_path: Path) -> None:
    path = tmp_path / "state" / "scan_state.json"
    state = ScanState(path, root="/repo")
    state.update({"a.py": _state("fp-a"), "b.py": _state("fp-b", failed=True)})
    state.set_last_commit("abc123")
    state.commit()

    reloaded = ScanState(path)

    assert reloaded.paths() == {"a.py", "b.py"}
    assert reloaded.get("a.py") == _state("fp-a")
    assert reloaded.get("b.py").failed is True
    assert reloaded.last_commit == "abc123"
    assert "a.py" in reloaded
    assert len(reloaded) == 2
    assert json.loads(path.read_text(encoding="utf-8"))["root"] == "/repo"


def test_uncommitted_updates_are_not_durable(tmp_path: Path) -> None:
    path = tmp_path / "scan_state.json"
    state = ScanState(path)
    state.update({"a.py": _state()})
    state.commit()

    state.update({"b.py": _state()}, removed=["a.py"])

    assert ScanState(path).paths() == {"a.py"}
    assert state.paths() == {"b.py"}


def test_commit_batch_rolls_back_on_write_failure(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")
    state = ScanState(blocker / "scan_state.json")
    state.update({"keep.py": _state("old")})

    with pytest.raises(PersistenceError):
        state.commit_batch({"keep.py": _state("new"), "added.py": _state()}, removed=[])

    assert state.get("keep.py") == _state("old")
    assert "added.py" not in state


@pytest.mark.parametrize(
    "content",
    [
        "{not json",
        json.dumps({"version": 99, "files": {"a.py": {}}}),
        json.dumps(["unexpected"]),
    ],
)
def test_unreadable_state_starts_empty(tmp_path: Path, content: str) -> None:
    path = tmp_path / "scan_state.json"
    path.write_text(content, encoding="utf-8")

    state = ScanState(path)

    assert len(state) == 0
    assert state.last_commit is None


def test_malformed_entries_are_dropped(tmp_path: Path) -> None:
    path = tmp_path / "scan_state.json"
    good = {"fingerprint": "fp", "language": "go", "tier": "ast", "size": 1, "mtime_ns": 2}
    path.write_text(
        json.dumps({"version": 1, "files": {"good.go": good, "bad.go": {"fingerprint": 3}}}),
        encoding="utf-8",
    )

    state = ScanState(path)

    assert state.paths() == {"good.go"}
    assert state.get("good.go").failed is False


def test_in_memory_state_commit_is_noop() -> None:
    state = ScanState(None)
    state.update({"a.py": _state()})

    state.commit()

    assert state.path is None
    assert state.paths() == {"a.py"}


def test_write_json_atomic_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "doc.json"

    write_json_atomic(target, {"a": 1})
    write_json_atomic(target, {"a": 2})

    assert read_json(target) == {"a": 2}
    assert [item.name for item in tmp_path.iterdir()] == ["doc.json"]


def test_write_json_atomic_rejects_unserialisable_payload(tmp_path: Path) -> None:
    target = tmp_path / "doc.json"
    write_json_atomic(target, {"a": 1})

    with pytest.raises(PersistenceError):
        write_json_atomic(target, {"a": object()})

    assert read_json(target) == {"a": 1}
    assert [item.name for item in tmp_path.iterdir()] == ["doc.json"]


def test_commit_batch_appends_to_journal_until_commit(tmp_path: Path) -> None:
    path = tmp_path / "scan_state.json"
    state = ScanState(path)
    state.update({"a.py": _state("fp-a")})
    state.commit()

    state.commit_batch({"b.py": _state("fp-b")}, removed=["a.py"])

    assert set(read_json(path)["files"]) == {"a.py"}
    assert journal_path(path).exists()
    assert ScanState(path).paths() == {"b.py"}

    state.commit()

    assert set(read_json(path)["files"]) == {"b.py"}
    assert not journal_path(path).exists()
    assert ScanState(path).paths() == {"b.py"}


def test_journal_is_replayed_without_a_state_document(tmp_path: Path) -> None:
    path = tmp_path / "scan_state.json"
    ScanState(path).commit_batch({"a.py": _state()})

    assert not path.exists()
    assert ScanState(path).get("a.py") == _state()


def test_torn_journal_record_is_skipped(tmp_path: Path) -> None:
    path = tmp_path / "scan_state.json"
    ScanState(path).commit_batch({"a.py": _state()})
    with journal_path(path).open("a", encoding="utf-8") as handle:
        handle.write('\n{"path": "b.py", "sta')

    reloaded = ScanState(path)
    reloaded.commit_batch({"c.py": _state("fp-c")})

    assert ScanState(path).paths() == {"a.py", "c.py"}


def test_journal_replay_skips_non_records(tmp_path: Path) -> None:
    journal = JsonJournal(tmp_path / "log.journal")
    journal.append([{"path": "a.py"}, ["odd"]])
    journal.append([])

    assert journal.replay() == [{"path": "a.py"}, ["odd"]]

    journal.reset()
    journal.reset()

    assert journal.replay() == []
    assert not journal.exists()
