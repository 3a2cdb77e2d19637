"""Core data models shared across repoindex components."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional, Tuple

from .language import Language


class Tier(str, Enum):
    """Parsing strategy that produced a result, ordered by accuracy."""

    SEMANTIC = "semantic"
    AST = "ast"
    REGEX = "regex"
    NONE = "none"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @property
    def confidence(self) -> str:
        """Label describing how far results from this tier can be trusted."""
        return _TIER_CONFIDENCE[self]

    def __str__(self) -> str:
        return self.value


_TIER_RANK = {Tier.SEMANTIC: 3, Tier.AST: 2, Tier.REGEX: 1, Tier.NONE: 0}
_TIER_CONFIDENCE = {
    Tier.SEMANTIC: "resolved",
    Tier.AST: "syntactic",
    Tier.REGEX: "heuristic",
    Tier.NONE: "none",
}

# Resolution order used by the parser registry.
TIER_ORDER: Tuple[Tier, ...] = (Tier.SEMANTIC, Tier.AST, Tier.REGEX)


class SymbolKind(str, Enum):
    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    INTERFACE = "interface"
    STRUCT = "struct"
    ENUM = "enum"
    TYPE = "type"
    VARIABLE = "variable"
    CONSTANT = "constant"
    FIELD = "field"
    MODULE = "module"

    def __str__(self) -> str:
        return self.value


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Span:
    """Source range; lines are 1-based, columns 0-based."""

    start_line: int
    start_column: int = 0
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    @classmethod
    def line(cls, line: int) -> "Span":
        return cls(start_line=line, start_column=0, end_line=line, end_column=None)


@dataclass(frozen=True)
class Symbol:
    """A named construct declared in a file."""

    name: str
    kind: SymbolKind
    path: str
    span: Span
    visibility: Optional[str] = None
    signature: Optional[str] = None
    doc: Optional[str] = None
    parent: Optional[str] = None
    detail: Optional[str] = None
    tier: Tier = Tier.NONE

    @property
    def qualified_name(self) -> str:
        """Identity of the symbol across files: ``Parent.name`` or ``name``."""
        if self.parent:
            return f"{self.parent}.{self.name}"
        return self.name


@dataclass(frozen=True)
class Import:
    """Reference from one file to another module or path."""

    module: str
    line: int
    alias: Optional[str] = None
    names: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Relation:
    """Edge between two named constructs within a file (``inherits``, ``call``)."""

    kind: str
    source: str
    target: str
    line: int


@dataclass(frozen=True)
class Diagnostic:
    """Non-fatal parse warning or error attached to a file analysis."""

    path: str
    severity: Severity
    message: str
    span: Optional[Span] = None
    source: str = "pipeline"


@dataclass(frozen=True)
class FileAnalysis:
    """Result of analyzing one file at one instant."""

    path: str
    language: Language
    fingerprint: str = ""
    tier: Tier = Tier.NONE
    symbols: Tuple[Symbol, ...] = ()
    imports: Tuple[Import, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    relations: Tuple[Relation, ...] = ()
    # Set when the failure came from a transient backend condition.
    retryable: bool = False

    @property
    def failed(self) -> bool:
        return any(diag.severity is Severity.ERROR for diag in self.diagnostics)

    def with_fingerprint(self, fingerprint: str) -> "FileAnalysis":
        return replace(self, fingerprint=fingerprint)

    def with_diagnostics(self, diagnostics: Iterable[Diagnostic]) -> "FileAnalysis":
        return replace(self, diagnostics=self.diagnostics + tuple(diagnostics))


@dataclass
class ScanReport:
    """Outcome of a scan; partial results are reported rather than raised."""

    root: str
    files_scanned: int = 0
    files_analyzed: int = 0
    files_unchanged: int = 0
    files_failed: int = 0
    files_deleted: int = 0
    files_retried: int = 0
    diagnostics: list[Diagnostic] = field(default_factory=list)
    failed_paths: list[str] = field(default_factory=list)
    cancelled: bool = False
    used_vcs: bool = False
    commit: Optional[str] = None
    duration: float = 0.0


__all__ = [
    "Diagnostic",
    "FileAnalysis",
    "Import",
    "Relation",
    "ScanReport",
    "Severity",
    "Span",
    "Symbol",
    "SymbolKind",
    "TIER_ORDER",
    "Tier",
]
