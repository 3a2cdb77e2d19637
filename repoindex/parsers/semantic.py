"""Language server backed parser.

Symbols come from ``textDocument/documentSymbol`` and diagnostics from
``textDocument/publishDiagnostics``. Language servers do not report imports,
so those (and relations) are taken from a lower-tier companion parser for the
same language.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import Parser
from ..errors import BackendUnavailable, ParseError, ProtocolError, RequestTimeout
from ..language import Language
from ..logging import get_logger
from ..lsp.client import LanguageServerClient, Spawner
from ..lsp.servers import LanguageServerConfig
from ..models import Diagnostic, FileAnalysis, Severity, Span, Symbol, SymbolKind, Tier

logger = get_logger("parsers.semantic")

# LSP SymbolKind numbers.
_SYMBOL_KINDS: Dict[int, SymbolKind] = {
    2: SymbolKind.MODULE,
    3: SymbolKind.MODULE,
    4: SymbolKind.MODULE,
    5: SymbolKind.CLASS,
    6: SymbolKind.METHOD,
    7: SymbolKind.FIELD,
    8: SymbolKind.FIELD,
    9: SymbolKind.METHOD,
    10: SymbolKind.ENUM,
    11: SymbolKind.INTERFACE,
    12: SymbolKind.FUNCTION,
    13: SymbolKind.VARIABLE,
    14: SymbolKind.CONSTANT,
    22: SymbolKind.FIELD,
    23: SymbolKind.STRUCT,
    26: SymbolKind.TYPE,
}

_CONTAINER_KINDS = frozenset(
    {
        SymbolKind.CLASS,
        SymbolKind.INTERFACE,
        SymbolKind.STRUCT,
        SymbolKind.ENUM,
        SymbolKind.MODULE,
    }
)

# Server findings (type errors, unresolved imports) are not parse failures;
# syntax failures are decided by the companion parser's diagnostics.
_SEVERITIES: Dict[int, Severity] = {
    1: Severity.WARNING,
    2: Severity.WARNING,
    3: Severity.INFO,
    4: Severity.INFO,
}

_RECEIVER_NAME = re.compile(r"^\(\*?(?P<parent>[\w.]+)\)\.(?P<name>\w+)$")


class SemanticParser(Parser):
    """Parses files through a persistent language server session."""

    tier = Tier.SEMANTIC

    def __init__(
        self,
        language: Language,
        server: LanguageServerConfig,
        workspace_root: Path,
        *,
        request_timeout: float = 10.0,
        handshake_timeout: float = 15.0,
        diagnostics_wait: float = 0.5,
        max_consecutive_timeouts: int = 3,
        companion: Optional[Parser] = None,
        spawn: Spawner = subprocess.Popen,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        self._language = language
        self._server = server
        self._root = workspace_root
        self._request_timeout = request_timeout
        self._handshake_timeout = handshake_timeout
        self._diagnostics_wait = diagnostics_wait
        self._max_timeouts = max(1, max_consecutive_timeouts)
        self._companion = companion
        self._spawn = spawn
        self._which = which
        self._client: Optional[LanguageServerClient] = None
        self._lock = threading.Lock()
        self._demoted = False
        self._timeouts = 0

    @property
    def language(self) -> Language:
        return self._language

    @property
    def server(self) -> LanguageServerConfig:
        return self._server

    @property
    def companion(self) -> Optional[Parser]:
        return self._companion

    def attach_companion(self, parser: Parser) -> None:
        if parser.tier is Tier.SEMANTIC:
            raise ValueError("A semantic parser cannot be its own companion")
        self._companion = parser

    @property
    def demoted(self) -> bool:
        return self._demoted

    def probe(self) -> bool:
        """Start the server and complete the ``initialize`` handshake."""
        if self._demoted:
            return False
        with self._lock:
            if self._client is not None and self._client.is_running:
                return True
            if not self._server.executable or self._which(self._server.executable) is None:
                hint = f" ({self._server.install_hint})" if self._server.install_hint else ""
                self._demote_locked(f"{self._server.executable or 'server'} not found{hint}", logging.DEBUG)
                return False
            client = LanguageServerClient(
                self._server.command,
                self._root,
                name=self._server.name,
                initialization_options=self._server.initialization_options,
                spawn=self._spawn,
            )
            try:
                client.start(timeout=self._handshake_timeout)
            except BackendUnavailable as exc:
                self._demote_locked(str(exc), logging.WARNING)
                return False
            self._client = client
        logger.debug("Semantic tier ready for %s via %s", self._language.value, self._server.name)
        return True

    def parse(self, content: str, path: str) -> FileAnalysis:
        client = self._session()
        if client is None:
            return self._fallback(content, path)

        uri = (self._root / path).as_uri()
        try:
            client.open_document(uri, self._server.language_id, content)
            try:
                result = client.request(
                    "textDocument/documentSymbol",
                    {"textDocument": {"uri": uri}},
                    timeout=self._request_timeout,
                )
                published = client.wait_for_diagnostics(uri, self._diagnostics_wait)
            finally:
                client.close_document(uri)
        except RequestTimeout:
            self._note_timeout()
            raise
        except ProtocolError as exc:
            if not client.is_running:
                self.demote(f"{self._server.name} stopped responding: {exc}")
            raise
        with self._lock:
            self._timeouts = 0

        companion = self._companion_analysis(content, path)
        symbols = _convert_symbols(result, path, companion)
        diagnostics = [self._convert_diagnostic(item, path) for item in published if isinstance(item, dict)]
        if companion is not None:
            diagnostics.extend(companion.diagnostics)
        return FileAnalysis(
            path=path,
            language=self._language,
            tier=Tier.SEMANTIC,
            symbols=tuple(symbols),
            imports=companion.imports if companion is not None else (),
            diagnostics=tuple(diagnostics),
            relations=companion.relations if companion is not None else (),
        )

    def demote(self, reason: str) -> None:
        """Permanently disable this backend for the rest of the process."""
        with self._lock:
            self._demote_locked(reason, logging.WARNING)

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.stop()

    # ------------------------------------------------------------------
    # Internals

    def _session(self) -> Optional[LanguageServerClient]:
        if self._demoted:
            return None
        client = self._client
        if client is not None:
            if client.is_running:
                return client
            self.demote(f"{self._server.name} exited")
            return None
        if self.probe():
            return self._client
        return None

    def _demote_locked(self, reason: str, level: int) -> None:
        if self._demoted:
            return
        self._demoted = True
        client, self._client = self._client, None
        logger.log(level, "Semantic tier for %s disabled: %s", self._language.value, reason)
        if client is not None:
            # Stopping from a worker thread; the session is already unusable.
            threading.Thread(target=client.stop, kwargs={"timeout": 1.0}, daemon=True).start()

    def _note_timeout(self) -> None:
        with self._lock:
            self._timeouts += 1
            if self._timeouts >= self._max_timeouts:
                self._demote_locked(
                    f"{self._timeouts} consecutive requests to {self._server.name} timed out",
                    logging.WARNING,
                )

    def _fallback(self, content: str, path: str) -> FileAnalysis:
        if self._companion is None:
            raise ParseError(f"{self._server.name} is unavailable for {path}")
        return self._companion.parse(content, path)

    def _companion_analysis(self, content: str, path: str) -> Optional[FileAnalysis]:
        if self._companion is None:
            return None
        try:
            return self._companion.parse(content, path)
        except ParseError as exc:
            logger.debug("Companion parser failed for %s: %s", path, exc)
            return None

    def _convert_diagnostic(self, item: Dict[str, Any], path: str) -> Diagnostic:
        severity = _SEVERITIES.get(item.get("severity") or 1, Severity.WARNING)
        return Diagnostic(
            path=path,
            severity=severity,
            message=str(item.get("message", "")).strip(),
            span=_span(item.get("range")),
            source=str(item.get("source") or self._server.name),
        )


def _span(lsp_range: Any) -> Optional[Span]:
    if not isinstance(lsp_range, dict):
        return None
    start = lsp_range.get("start") or {}
    end = lsp_range.get("end") or {}
    try:
        return Span(
            start_line=int(start.get("line", 0)) + 1,
            start_column=int(start.get("character", 0)),
            end_line=int(end["line"]) + 1 if "line" in end else None,
            end_column=int(end["character"]) if "character" in end else None,
        )
    except (TypeError, ValueError):
        return None


def _convert_symbols(
    result: Any, path: str, companion: Optional[FileAnalysis]
) -> List[Symbol]:
    if not isinstance(result, list):
        return []
    known: Dict[Tuple[Optional[str], str], Symbol] = {}
    if companion is not None:
        for symbol in companion.symbols:
            known.setdefault((symbol.parent, symbol.name), symbol)
            known.setdefault((None, symbol.name), symbol)
    symbols: List[Symbol] = []
    _collect(result, path, None, known, symbols)
    return symbols


def _collect(
    items: List[Any],
    path: str,
    parent: Optional[str],
    known: Dict[Tuple[Optional[str], str], Symbol],
    out: List[Symbol],
) -> None:
    for item in items:
        if not isinstance(item, dict):
            continue
        name = item.get("name")
        kind = _SYMBOL_KINDS.get(item.get("kind"))  # type: ignore[arg-type]
        if not isinstance(name, str) or not name or kind is None:
            continue

        owner = parent
        if "location" in item:
            # SymbolInformation: flat list with an optional container name.
            location = item.get("location") or {}
            span = _span(location.get("range"))
            owner = item.get("containerName") or None
        else:
            span = _span(item.get("selectionRange") or item.get("range"))
        receiver = _RECEIVER_NAME.match(name)
        if receiver is not None:
            owner, name = receiver.group("parent"), receiver.group("name")
        if span is None:
            continue

        twin = known.get((owner, name)) or known.get((None, name))
        out.append(
            Symbol(
                name=name,
                kind=kind,
                path=path,
                span=span,
                visibility=twin.visibility if twin else None,
                signature=twin.signature if twin else None,
                doc=twin.doc if twin else None,
                parent=owner,
                detail=str(item["detail"]) if item.get("detail") else None,
                tier=Tier.SEMANTIC,
            )
        )
        children = item.get("children")
        if isinstance(children, list) and kind in _CONTAINER_KINDS:
            _collect(children, path, name, known, out)


__all__ = ["SemanticParser"]
