"""Tests for the per-file analysis pipeline."""

from __future__ import annotations

import hashlib
from pathlib import Path

from repoindex.errors import ParseError, ProtocolError, RequestTimeout
from repoindex.language import Language
from repoindex.models import FileAnalysis, Severity, Tier
from repoindex.parsers.base import Parser
from repoindex.parsers.regex import RegexParser
from repoindex.parsers.registry import ParserRegistry
from repoindex.pipeline import AnalysisPipeline


class ScriptedParser(Parser):
    tier = Tier.AST

    def __init__(self, behaviour: str) -> None:
        self.behaviour = behaviour

    @property
    def language(self) -> Language:
        return Language.PYTHON

    def parse(self, content: str, path: str) -> FileAnalysis:
        if self.behaviour == "parse-error":
            raise ParseError("grammar rejected file")
        if self.behaviour == "timeout":
            raise RequestTimeout("no answer")
        if self.behaviour == "server-died":
            raise ProtocolError("stream closed")
        if self.behaviour == "bug":
            raise RuntimeError("boom")
        return FileAnalysis(path="elsewhere.txt", language=Language.UNKNOWN, tier=Tier.AST)


def _pipeline(tmp_path: Path, *parsers: Parser) -> AnalysisPipeline:
    registry = ParserRegistry()
    for parser in parsers:
        registry.register(parser)
    return AnalysisPipeline(registry, tmp_path)


def test_analyze_reads_file_and_fingerprints_content(tmp_path: Path) -> None:
    source = b"def greet():\n    return 'hi'\n"
    (tmp_path / "greet.py").write_bytes(source)

    analysis = _pipeline(tmp_path, RegexParser(Language.PYTHON)).analyze("greet.py")

    assert analysis.tier is Tier.REGEX
    assert analysis.fingerprint == hashlib.sha256(source).hexdigest()
    assert [symbol.name for symbol in analysis.symbols] == ["greet"]
    assert not analysis.failed


def test_invalid_utf8_is_replaced_with_warning(tmp_path: Path) -> None:
    (tmp_path / "latin.py").write_bytes(b"def caf\xe9():\n    pass\ndef ok():\n    pass\n")

    analysis = _pipeline(tmp_path, RegexParser(Language.PYTHON)).analyze("latin.py")

    warnings = [diag for diag in analysis.diagnostics if diag.severity is Severity.WARNING]
    assert len(warnings) == 1
    assert "invalid UTF-8 at byte 7" in warnings[0].message
    assert "ok" in {symbol.name for symbol in analysis.symbols}
    assert not analysis.failed


def test_missing_file_yields_failed_analysis(tmp_path: Path) -> None:
    analysis = _pipeline(tmp_path, RegexParser(Language.PYTHON)).analyze("gone.py")

    assert analysis.failed
    assert analysis.tier is Tier.NONE
    assert analysis.diagnostics[0].message.startswith("unreadable file")
    assert analysis.diagnostics[0].span.start_line == 1


def test_parse_error_becomes_error_diagnostic(tmp_path: Path) -> None:
    (tmp_path / "mod.py").write_text("x = 1\n", encoding="utf-8")

    analysis = _pipeline(tmp_path, ScriptedParser("parse-error")).analyze("mod.py")

    assert analysis.failed
    assert analysis.tier is Tier.AST
    assert analysis.diagnostics[0].message == "grammar rejected file"
    assert analysis.fingerprint


def test_unexpected_parser_exception_is_contained(tmp_path: Path) -> None:
    (tmp_path / "mod.py").write_text("x = 1\n", encoding="utf-8")

    analysis = _pipeline(tmp_path, ScriptedParser("bug")).analyze("mod.py")

    assert analysis.failed
    assert "internal parser error: boom" in analysis.diagnostics[0].message


def test_detector_owns_path_and_language(tmp_path: Path) -> None:
    (tmp_path / "mod.py").write_text("x = 1\n", encoding="utf-8")

    analysis = _pipeline(tmp_path, ScriptedParser("ok")).analyze("mod.py")

    assert analysis.path == "mod.py"
    assert analysis.language is Language.PYTHON


def test_language_without_backend_gets_empty_analysis(tmp_path: Path) -> None:
    (tmp_path / "README.md").write_text("# Title\n", encoding="utf-8")

    analysis = _pipeline(tmp_path).analyze("README.md", data=b"# Title\n")

    assert analysis.tier is Tier.NONE
    assert analysis.language is Language.MARKDOWN
    assert analysis.symbols == ()
    assert not analysis.failed


def test_transient_backend_errors_are_marked_retryable(tmp_path: Path) -> None:
    (tmp_path / "mod.py").write_text("x = 1\n", encoding="utf-8")

    for behaviour in ("timeout", "server-died"):
        analysis = _pipeline(tmp_path, ScriptedParser(behaviour)).analyze("mod.py")

        assert analysis.failed
        assert analysis.retryable
        assert analysis.tier is Tier.AST

    assert not _pipeline(tmp_path, ScriptedParser("parse-error")).analyze("mod.py").retryable
