"""Index Store: receives analysis batches and answers symbol queries."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from .persist import JsonJournal, journal_path, read_json, write_json_atomic
from ..language import Language
from ..logging import get_logger
from ..models import (
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

logger = get_logger("stores.index_store")

INDEX_FILENAME = "index.json"
_INDEX_VERSION = 1
_MISSING = object()


class IndexStore(ABC):
    """Storage the scanner commits analyses into.

    Only the scanner's committer thread mutates a store; queries may run
    concurrently from other threads.
    """

    @abstractmethod
    def upsert(self, analysis: FileAnalysis) -> None:
        """Replace everything known about ``analysis.path``."""

    @abstractmethod
    def remove(self, path: str) -> None:
        """Forget ``path``; unknown paths are ignored."""

    @abstractmethod
    def query_symbols(self, name: str, *, min_tier: Tier = Tier.NONE) -> List[Symbol]:
        """Symbols whose name or qualified name equals ``name``, best tier first."""

    @abstractmethod
    def query_text(self, term: str) -> List[Symbol]:
        """Symbols mentioning ``term`` in name, signature, doc or detail."""

    @abstractmethod
    def get(self, path: str) -> Optional[FileAnalysis]:
        ...

    @abstractmethod
    def paths(self) -> Set[str]:
        ...

    def query_importers(self, module: str) -> List[str]:
        """Paths importing ``module``."""
        importers = []
        for path in sorted(self.paths()):
            analysis = self.get(path)
            if analysis and any(item.module == module for item in analysis.imports):
                importers.append(path)
        return importers

    def flush(self) -> None:
        """Make upserts and removals durable."""

    def checkpoint(self) -> None:
        """Compact whatever :meth:`flush` wrote; called once a scan finishes."""
        self.flush()

    def close(self) -> None:
        self.checkpoint()


def _rank(symbol: Symbol) -> tuple:
    return (-symbol.tier.rank, symbol.path, symbol.span.start_line, symbol.name)


class MemoryIndexStore(IndexStore):
    """Keeps analyses in process memory with a name lookup table."""

    def __init__(self) -> None:
        self._files: Dict[str, FileAnalysis] = {}
        self._by_name: Dict[str, Set[str]] = defaultdict(set)
        self._lock = threading.RLock()

    def upsert(self, analysis: FileAnalysis) -> None:
        with self._lock:
            self._drop(analysis.path)
            self._files[analysis.path] = analysis
            for symbol in analysis.symbols:
                self._by_name[symbol.name].add(analysis.path)
                self._by_name[symbol.qualified_name].add(analysis.path)

    def remove(self, path: str) -> None:
        with self._lock:
            self._drop(path)

    def get(self, path: str) -> Optional[FileAnalysis]:
        with self._lock:
            return self._files.get(path)

    def paths(self) -> Set[str]:
        with self._lock:
            return set(self._files)

    def query_symbols(self, name: str, *, min_tier: Tier = Tier.NONE) -> List[Symbol]:
        with self._lock:
            candidates = [self._files[path] for path in self._by_name.get(name, ())]
        matches = [
            symbol
            for analysis in candidates
            for symbol in analysis.symbols
            if (symbol.name == name or symbol.qualified_name == name) and symbol.tier.rank >= min_tier.rank
        ]
        return sorted(matches, key=_rank)

    def query_text(self, term: str) -> List[Symbol]:
        needle = term.casefold()
        if not needle:
            return []
        with self._lock:
            analyses = list(self._files.values())
        hits = []
        for analysis in analyses:
            for symbol in analysis.symbols:
                haystack = " ".join(
                    part
                    for part in (symbol.qualified_name, symbol.signature, symbol.doc, symbol.detail)
                    if part
                )
                if needle in haystack.casefold():
                    hits.append(symbol)
        return sorted(hits, key=_rank)

    def _drop(self, path: str) -> None:
        previous = self._files.pop(path, None)
        if previous is None:
            return
        for symbol in previous.symbols:
            for key in (symbol.name, symbol.qualified_name):
                paths = self._by_name.get(key)
                if paths is not None:
                    paths.discard(path)
                    if not paths:
                        del self._by_name[key]


class JsonIndexStore(MemoryIndexStore):
    """Memory store persisted as a JSON document plus a change journal.

    :meth:`flush` appends the pending upserts and removals to the journal;
    :meth:`checkpoint` rewrites the document and empties the journal.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self._path = path
        self._journal = JsonJournal(journal_path(path))
        self._pending: Dict[str, Optional[FileAnalysis]] = {}
        self._load(path)

    @property
    def path(self) -> Path:
        return self._path

    def upsert(self, analysis: FileAnalysis) -> None:
        with self._lock:
            super().upsert(analysis)
            self._pending[analysis.path] = analysis

    def remove(self, path: str) -> None:
        with self._lock:
            known = path in self._files
            super().remove(path)
            if known or path in self._pending:
                self._pending[path] = None

    def flush(self) -> None:
        with self._lock:
            pending = dict(self._pending)
        if not pending:
            return
        records = [
            {"path": path, "analysis": analysis_to_dict(item) if item is not None else None}
            for path, item in sorted(pending.items())
        ]
        self._journal.append(records)
        with self._lock:
            for path, item in pending.items():
                if self._pending.get(path, _MISSING) is item:
                    del self._pending[path]

    def checkpoint(self) -> None:
        with self._lock:
            if not self._pending and not self._journal.exists() and self._path.exists():
                return
            payload = {
                "version": _INDEX_VERSION,
                "files": {path: analysis_to_dict(item) for path, item in sorted(self._files.items())},
            }
            self._pending.clear()
        write_json_atomic(self._path, payload)
        self._journal.reset()

    def _load(self, path: Path) -> None:
        self._load_document(path)
        for record in self._journal.replay():
            if not isinstance(record, dict) or not isinstance(record.get("path"), str):
                continue
            raw = record.get("analysis")
            if raw is None:
                MemoryIndexStore.remove(self, record["path"])
                continue
            analysis = analysis_from_dict(raw)
            if analysis is not None:
                MemoryIndexStore.upsert(self, analysis)

    def _load_document(self, path: Path) -> None:
        data = read_json(path)
        if data is None:
            return
        if not isinstance(data, dict) or data.get("version") != _INDEX_VERSION:
            logger.warning("Discarding index with unsupported layout: %s", path)
            return
        files = data.get("files")
        if not isinstance(files, dict):
            return
        for raw in files.values():
            analysis = analysis_from_dict(raw)
            if analysis is not None:
                MemoryIndexStore.upsert(self, analysis)


# ----------------------------------------------------------------------
# Serialisation


def _span_to_dict(span: Optional[Span]) -> Optional[Dict[str, Any]]:
    if span is None:
        return None
    return {
        "start_line": span.start_line,
        "start_column": span.start_column,
        "end_line": span.end_line,
        "end_column": span.end_column,
    }


def analysis_to_dict(analysis: FileAnalysis) -> Dict[str, Any]:
    return {
        "path": analysis.path,
        "language": analysis.language.value,
        "fingerprint": analysis.fingerprint,
        "tier": analysis.tier.value,
        "symbols": [
            {
                "name": symbol.name,
                "kind": symbol.kind.value,
                "span": _span_to_dict(symbol.span),
                "visibility": symbol.visibility,
                "signature": symbol.signature,
                "doc": symbol.doc,
                "parent": symbol.parent,
                "detail": symbol.detail,
                "tier": symbol.tier.value,
            }
            for symbol in analysis.symbols
        ],
        "imports": [
            {"module": item.module, "line": item.line, "alias": item.alias, "names": list(item.names)}
            for item in analysis.imports
        ],
        "diagnostics": [
            {
                "severity": diag.severity.value,
                "message": diag.message,
                "span": _span_to_dict(diag.span),
                "source": diag.source,
            }
            for diag in analysis.diagnostics
        ],
        "relations": [
            {"kind": rel.kind, "source": rel.source, "target": rel.target, "line": rel.line}
            for rel in analysis.relations
        ],
    }


def _span_from_dict(raw: Any) -> Optional[Span]:
    if not isinstance(raw, dict) or not isinstance(raw.get("start_line"), int):
        return None
    return Span(
        start_line=raw["start_line"],
        start_column=raw.get("start_column") or 0,
        end_line=raw.get("end_line"),
        end_column=raw.get("end_column"),
    )


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def analysis_from_dict(raw: Any) -> Optional[FileAnalysis]:
    """Rebuild a :class:`FileAnalysis`; None when the payload is malformed."""
    if not isinstance(raw, dict) or not isinstance(raw.get("path"), str):
        return None
    path = raw["path"]
    try:
        language = Language(raw.get("language"))
        tier = Tier(raw.get("tier"))
        symbols = tuple(
            Symbol(
                name=item["name"],
                kind=SymbolKind(item["kind"]),
                path=path,
                span=_span_from_dict(item.get("span")) or Span.line(1),
                visibility=_optional_str(item.get("visibility")),
                signature=_optional_str(item.get("signature")),
                doc=_optional_str(item.get("doc")),
                parent=_optional_str(item.get("parent")),
                detail=_optional_str(item.get("detail")),
                tier=Tier(item.get("tier", tier.value)),
            )
            for item in raw.get("symbols") or []
        )
        imports = tuple(
            Import(
                module=item["module"],
                line=int(item["line"]),
                alias=_optional_str(item.get("alias")),
                names=tuple(str(name) for name in item.get("names") or ()),
            )
            for item in raw.get("imports") or []
        )
        diagnostics = tuple(
            Diagnostic(
                path=path,
                severity=Severity(item["severity"]),
                message=str(item.get("message", "")),
                span=_span_from_dict(item.get("span")),
                source=str(item.get("source") or "pipeline"),
            )
            for item in raw.get("diagnostics") or []
        )
        relations = tuple(
            Relation(
                kind=item["kind"],
                source=item["source"],
                target=item["target"],
                line=int(item["line"]),
            )
            for item in raw.get("relations") or []
        )
    except (KeyError, TypeError, ValueError) as exc:
        logger.debug("Skipping malformed index entry for %s: %s", path, exc)
        return None
    return FileAnalysis(
        path=path,
        language=language,
        fingerprint=str(raw.get("fingerprint") or ""),
        tier=tier,
        symbols=symbols,
        imports=imports,
        diagnostics=diagnostics,
        relations=relations,
    )


__all__ = [
    "INDEX_FILENAME",
    "IndexStore",
    "JsonIndexStore",
    "MemoryIndexStore",
    "analysis_from_dict",
    "analysis_to_dict",
]
