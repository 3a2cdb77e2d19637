"""Multi-tier source parsing and incremental repository indexing."""

from .config import ConfigError, RepoIndexConfig, load_config
from .errors import (
    BackendUnavailable,
    ParseError,
    PersistenceError,
    RepoIndexError,
    ScanError,
)
from .language import Language, detect_language
from .models import (
    Diagnostic,
    FileAnalysis,
    Import,
    Relation,
    ScanReport,
    Severity,
    Span,
    Symbol,
    SymbolKind,
    Tier,
)
from .scanner import IncrementalScanner, ScanOptions, create_scanner

__all__ = [
    "BackendUnavailable",
    "ConfigError",
    "Diagnostic",
    "FileAnalysis",
    "Import",
    "IncrementalScanner",
    "Language",
    "ParseError",
    "PersistenceError",
    "Relation",
    "RepoIndexConfig",
    "RepoIndexError",
    "ScanError",
    "ScanOptions",
    "ScanReport",
    "Severity",
    "Span",
    "Symbol",
    "SymbolKind",
    "Tier",
    "create_scanner",
    "detect_language",
    "load_config",
]
