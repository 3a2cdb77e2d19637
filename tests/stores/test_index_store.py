"""Tests for the in-memory and JSON-backed index stores."""

from __future__ import annotations

import json
from pathlib import Path

from repoindex.language import Language
from repoindex.models import (
    Diagnostic,
    FileAnalysis,
    Import,
    Relation,
    Severity,
    Span,
    Symbol,
    SymbolKind,
    Tier,
)
from repoindex.stores.index_store import JsonIndexStore, MemoryIndexStore, analysis_from_dict


def _analysis(path: str, tier: Tier, *symbols: tuple, imports=()) -> FileAnalysis:
    built = tuple(
        Symbol(
            name=name,
            kind=kind,
            path=path,
            span=Span.line(line),
            parent=parent,
            signature=signature,
            tier=tier,
        )
        for name, kind, line, parent, signature in symbols
    )
    return FileAnalysis(
        path=path,
        language=Language.PYTHON,
        fingerprint=f"fp-{path}",
        tier=tier,
        symbols=built,
        imports=tuple(imports),
    )


def test_query_symbols_ranks_by_tier_and_filters() -> None:
    store = MemoryIndexStore()
    store.upsert(_analysis("b.py", Tier.REGEX, ("load", SymbolKind.FUNCTION, 3, None, None)))
    store.upsert(_analysis("a.py", Tier.SEMANTIC, ("load", SymbolKind.METHOD, 9, "Loader", None)))

    ranked = store.query_symbols("load")

    assert [(symbol.path, symbol.tier) for symbol in ranked] == [
        ("a.py", Tier.SEMANTIC),
        ("b.py", Tier.REGEX),
    ]
    assert [symbol.path for symbol in store.query_symbols("load", min_tier=Tier.AST)] == ["a.py"]
    assert [symbol.path for symbol in store.query_symbols("Loader.load")] == ["a.py"]


def test_upsert_replaces_previous_analysis() -> None:
    store = MemoryIndexStore()
    store.upsert(_analysis("a.py", Tier.REGEX, ("old_name", SymbolKind.FUNCTION, 1, None, None)))
    store.upsert(_analysis("a.py", Tier.REGEX, ("new_name", SymbolKind.FUNCTION, 1, None, None)))

    assert store.query_symbols("old_name") == []
    assert [symbol.name for symbol in store.query_symbols("new_name")] == ["new_name"]
    assert store.paths() == {"a.py"}


def test_remove_forgets_path_and_ignores_unknown() -> None:
    store = MemoryIndexStore()
    store.upsert(_analysis("a.py", Tier.REGEX, ("run", SymbolKind.FUNCTION, 1, None, None)))

    store.remove("a.py")
    store.remove("missing.py")

    assert store.get("a.py") is None
    assert store.query_symbols("run") == []


def test_query_text_matches_signature_case_insensitively() -> None:
    store = MemoryIndexStore()
    store.upsert(
        _analysis(
            "a.py",
            Tier.REGEX,
            ("fetch", SymbolKind.FUNCTION, 1, None, "(url: str, Timeout: float)"),
            ("parse", SymbolKind.FUNCTION, 5, None, "(body: bytes)"),
        )
    )

    assert [symbol.name for symbol in store.query_text("timeout")] == ["fetch"]
    assert store.query_text("") == []


def test_query_importers() -> None:
    store = MemoryIndexStore()
    store.upsert(_analysis("b.py", Tier.REGEX, imports=[Import(module="os", line=1)]))
    store.upsert(_analysis("a.py", Tier.REGEX, imports=[Import(module="os", line=2)]))
    store.upsert(_analysis("c.py", Tier.REGEX, imports=[Import(module="sys", line=1)]))

    assert store.query_importers("os") == ["a.py", "b.py"]


def test_json_store_persists_on_flush(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    store = JsonIndexStore(path)
    analysis = FileAnalysis(
        path="pkg/mod.py",
        language=Language.PYTHON,
        fingerprint="abc",
        tier=Tier.AST,
        symbols=(
            Symbol(
                name="Widget",
                kind=SymbolKind.CLASS,
                path="pkg/mod.py",
                span=Span(start_line=3, start_column=6, end_line=9, end_column=0),
                visibility="public",
                doc="A widget.",
                tier=Tier.AST,
            ),
        ),
        imports=(Import(module="collections", line=1, names=("deque",)),),
        diagnostics=(Diagnostic(path="pkg/mod.py", severity=Severity.WARNING, message="odd", source="ast"),),
        relations=(Relation(kind="inherits", source="Widget", target="Base", line=3),),
    )
    store.upsert(analysis)
    assert not path.exists()

    store.flush()
    reloaded = JsonIndexStore(path)

    assert reloaded.get("pkg/mod.py") == analysis
    assert [symbol.name for symbol in reloaded.query_symbols("Widget")] == ["Widget"]


def test_json_store_removal_is_persisted(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    store = JsonIndexStore(path)
    store.upsert(_analysis("a.py", Tier.REGEX, ("run", SymbolKind.FUNCTION, 1, None, None)))
    store.upsert(_analysis("b.py", Tier.REGEX))
    store.flush()

    store.remove("a.py")
    store.close()

    assert JsonIndexStore(path).paths() == {"b.py"}


def test_json_store_skips_malformed_entries(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    path.write_text(
        json.dumps(
            {
                "version": 1,
                "files": {
                    "ok.py": {"path": "ok.py", "language": "python", "tier": "regex"},
                    "bad.py": {"path": "bad.py", "language": "klingon", "tier": "regex"},
                },
            }
        ),
        encoding="utf-8",
    )

    assert JsonIndexStore(path).paths() == {"ok.py"}
    assert analysis_from_dict(["not", "a", "dict"]) is None


def test_json_store_flush_journals_until_checkpoint(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    store = JsonIndexStore(path)
    store.upsert(_analysis("a.py", Tier.REGEX, ("run", SymbolKind.FUNCTION, 1, None, None)))
    store.checkpoint()
    document = path.read_text(encoding="utf-8")

    store.upsert(_analysis("b.py", Tier.REGEX, ("walk", SymbolKind.FUNCTION, 1, None, None)))
    store.remove("a.py")
    store.flush()

    assert path.read_text(encoding="utf-8") == document
    reloaded = JsonIndexStore(path)
    assert reloaded.paths() == {"b.py"}
    assert [symbol.path for symbol in reloaded.query_symbols("walk")] == ["b.py"]

    store.checkpoint()

    assert set(json.loads(path.read_text(encoding="utf-8"))["files"]) == {"b.py"}
    assert not path.with_name("index.json.journal").exists()
    assert JsonIndexStore(path).paths() == {"b.py"}


def test_json_store_checkpoint_without_changes_keeps_document(tmp_path: Path) -> None:
    path = tmp_path / "index.json"
    store = JsonIndexStore(path)
    store.upsert(_analysis("a.py", Tier.REGEX))
    store.close()
    before = path.stat().st_mtime_ns

    reopened = JsonIndexStore(path)
    reopened.flush()
    reopened.checkpoint()

    assert path.stat().st_mtime_ns == before
    assert reopened.paths() == {"a.py"}
