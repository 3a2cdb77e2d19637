"""Semantic tier tests driven by the scripted stdio language server."""

from __future__ import annotations

from pathlib import Path

import pytest

from repoindex.errors import ParseError, ProtocolError, RequestTimeout
from repoindex.language import Language
from repoindex.lsp.servers import LanguageServerConfig
from repoindex.models import Severity, SymbolKind, Tier
from repoindex.parsers.regex import RegexParser
from repoindex.parsers.registry import ParserRegistry
from repoindex.parsers.semantic import SemanticParser

SOURCE = (
    "import os\n"
    "\n"
    "class Greeter:\n"
    "    def greet(self, name):\n"
    "        return undefined_name\n"
    "\n"
    "def main():\n"
    "    pass\n"
)


@pytest.fixture
def make_parser(tmp_path: Path):
    created = []

    def _build(server: LanguageServerConfig, *, companion: bool = True, **kwargs) -> SemanticParser:
        kwargs.setdefault("handshake_timeout", 10.0)
        kwargs.setdefault("request_timeout", 10.0)
        kwargs.setdefault("diagnostics_wait", 2.0)
        parser = SemanticParser(
            Language.PYTHON,
            server,
            tmp_path,
            companion=RegexParser(Language.PYTHON) if companion else None,
            **kwargs,
        )
        created.append(parser)
        return parser

    yield _build
    for parser in created:
        parser.close()


def test_parse_merges_server_symbols_with_companion_details(make_parser, fake_server) -> None:
    parser = make_parser(fake_server())

    assert parser.probe()
    analysis = parser.parse(SOURCE, "pkg/greeter.py")

    assert analysis.tier is Tier.SEMANTIC
    by_name = {symbol.qualified_name: symbol for symbol in analysis.symbols}
    assert set(by_name) == {"Greeter", "Greeter.greet", "main"}
    assert by_name["Greeter"].kind is SymbolKind.CLASS
    assert by_name["Greeter.greet"].kind is SymbolKind.METHOD
    assert by_name["Greeter.greet"].span.start_line == 4
    assert by_name["Greeter.greet"].detail == "def greet(...) -> resolved"
    assert by_name["main"].kind is SymbolKind.FUNCTION
    assert by_name["main"].span.start_line == 7
    assert all(symbol.tier is Tier.SEMANTIC for symbol in analysis.symbols)

    regex = RegexParser(Language.PYTHON).parse(SOURCE, "pkg/greeter.py")
    regex_greet = next(symbol for symbol in regex.symbols if symbol.name == "greet")
    assert by_name["Greeter.greet"].signature == regex_greet.signature
    assert [item.module for item in analysis.imports] == ["os"]

    server_diags = [diag for diag in analysis.diagnostics if diag.source == "fake"]
    assert len(server_diags) == 1
    assert server_diags[0].severity is Severity.WARNING
    assert server_diags[0].span.start_line == 5
    assert not analysis.failed


def test_missing_server_binary_demotes_to_companion(make_parser, tmp_path: Path) -> None:
    server = LanguageServerConfig(
        name="ghost", language_id="python", command=("repoindex-no-such-server",)
    )
    parser = make_parser(server)

    assert parser.probe() is False
    assert parser.demoted

    analysis = parser.parse(SOURCE, "greeter.py")
    assert analysis.tier is Tier.REGEX
    assert "Greeter" in {symbol.name for symbol in analysis.symbols}


def test_unavailable_server_without_companion_raises(make_parser) -> None:
    server = LanguageServerConfig(
        name="ghost", language_id="python", command=("repoindex-no-such-server",)
    )
    parser = make_parser(server, companion=False)

    with pytest.raises(ParseError):
        parser.parse(SOURCE, "greeter.py")


@pytest.mark.parametrize("mode", ["hang-initialize", "crash-initialize"])
def test_failed_handshake_demotes(make_parser, fake_server, mode: str) -> None:
    parser = make_parser(fake_server(mode), handshake_timeout=0.5)

    assert parser.probe() is False
    assert parser.demoted
    assert parser.probe() is False


def test_repeated_timeouts_demote_backend(make_parser, fake_server) -> None:
    parser = make_parser(fake_server("hang-symbols"), request_timeout=0.2, max_consecutive_timeouts=2)
    assert parser.probe()

    with pytest.raises(RequestTimeout):
        parser.parse(SOURCE, "greeter.py")
    assert not parser.demoted

    with pytest.raises(RequestTimeout):
        parser.parse(SOURCE, "greeter.py")
    assert parser.demoted

    analysis = parser.parse(SOURCE, "greeter.py")
    assert analysis.tier is Tier.REGEX


def test_server_crash_mid_request_demotes(make_parser, fake_server) -> None:
    parser = make_parser(fake_server("crash-symbols"))
    assert parser.probe()

    with pytest.raises(ProtocolError):
        parser.parse(SOURCE, "greeter.py")

    assert parser.demoted


def test_semantic_parser_rejects_semantic_companion(make_parser, fake_server, tmp_path: Path) -> None:
    parser = make_parser(fake_server(), companion=False)
    other = SemanticParser(Language.PYTHON, fake_server(), tmp_path)

    with pytest.raises(ValueError):
        parser.attach_companion(other)


def test_registry_attaches_companion_and_falls_back_after_crash(make_parser, fake_server) -> None:
    semantic = make_parser(fake_server("crash-symbols"), companion=False)
    regex = RegexParser(Language.PYTHON)
    registry = ParserRegistry()
    registry.register(semantic)
    registry.register(regex)

    assert registry.resolve(Language.PYTHON) is semantic
    assert semantic.companion is regex

    with pytest.raises(ProtocolError):
        semantic.parse(SOURCE, "greeter.py")
    registry.refresh_demoted()

    assert registry.resolve(Language.PYTHON) is regex
