"""Tests for per-language tier resolution."""

from __future__ import annotations

import threading
from pathlib import Path

from repoindex.config import ParserConfig, RepoIndexConfig
from repoindex.language import Language
from repoindex.models import FileAnalysis, Tier
from repoindex.parsers.base import NullParser, Parser
from repoindex.parsers.regex import RegexParser
from repoindex.parsers.registry import ParserRegistry, build_registry
from repoindex.parsers.semantic import SemanticParser


class StubParser(Parser):
    def __init__(self, language: Language, tier: Tier, available: bool = True) -> None:
        self.tier = tier
        self._language = language
        self.available = available
        self.probes = 0
        self.closed = False
        self.is_demoted = False

    @property
    def language(self) -> Language:
        return self._language

    @property
    def demoted(self) -> bool:
        return self.is_demoted

    def probe(self) -> bool:
        self.probes += 1
        return self.available

    def parse(self, content: str, path: str) -> FileAnalysis:
        return FileAnalysis(path=path, language=self._language, tier=self.tier)

    def close(self) -> None:
        self.closed = True


class GatedParser(StubParser):
    """Backend whose availability check blocks until released."""

    def __init__(self, language: Language, tier: Tier) -> None:
        super().__init__(language, tier)
        self.entered = threading.Event()
        self.release = threading.Event()

    def probe(self) -> bool:
        self.entered.set()
        self.release.wait(timeout=5)
        return super().probe()


def _resolve_in_thread(registry: ParserRegistry, language: Language, results: dict) -> threading.Thread:
    worker = threading.Thread(target=lambda: results.update({language: registry.resolve(language)}))
    worker.start()
    return worker


def _registry(*parsers: Parser, disabled=()) -> ParserRegistry:
    registry = ParserRegistry(disabled_tiers=disabled)
    for parser in parsers:
        registry.register(parser)
    return registry


def test_resolve_prefers_semantic_then_ast_then_regex() -> None:
    semantic = StubParser(Language.GO, Tier.SEMANTIC)
    ast = StubParser(Language.GO, Tier.AST)
    regex = StubParser(Language.GO, Tier.REGEX)
    registry = _registry(regex, ast, semantic)

    assert registry.resolve(Language.GO) is semantic
    assert registry.resolve(Language.GO) is semantic
    assert semantic.probes == 1
    assert ast.probes == 0


def test_unavailable_tier_falls_through() -> None:
    semantic = StubParser(Language.GO, Tier.SEMANTIC, available=False)
    ast = StubParser(Language.GO, Tier.AST)
    registry = _registry(semantic, ast, StubParser(Language.GO, Tier.REGEX))

    assert registry.resolve(Language.GO) is ast
    assert registry.availability(Language.GO) == {
        Tier.SEMANTIC: False,
        Tier.AST: True,
        Tier.REGEX: True,
    }
    assert semantic.probes == 1


def test_unregistered_language_resolves_to_null_parser() -> None:
    registry = _registry(StubParser(Language.GO, Tier.REGEX))

    parser = registry.resolve(Language.MARKDOWN)
    analysis = parser.parse("# Title\n", "README.md")

    assert isinstance(parser, NullParser)
    assert analysis.tier is Tier.NONE
    assert analysis.symbols == ()
    assert analysis.path == "README.md"
    assert analysis.language is Language.MARKDOWN


def test_reconfigure_disables_tiers_and_reprobes() -> None:
    semantic = StubParser(Language.PYTHON, Tier.SEMANTIC)
    ast = StubParser(Language.PYTHON, Tier.AST)
    registry = _registry(semantic, ast)
    assert registry.resolve(Language.PYTHON) is semantic

    registry.reconfigure(disabled_tiers=[Tier.SEMANTIC])

    assert registry.resolve(Language.PYTHON) is ast
    assert registry.availability(Language.PYTHON)[Tier.SEMANTIC] is False

    registry.reconfigure(disabled_tiers=[])

    assert registry.resolve(Language.PYTHON) is semantic
    assert semantic.probes == 2


def test_refresh_demoted_drops_failed_backend() -> None:
    semantic = StubParser(Language.PYTHON, Tier.SEMANTIC)
    ast = StubParser(Language.PYTHON, Tier.AST)
    registry = _registry(semantic, ast)
    assert registry.resolve(Language.PYTHON) is semantic

    semantic.is_demoted = True
    registry.refresh_demoted()

    assert registry.resolve(Language.PYTHON) is ast
    assert registry.availability(Language.PYTHON)[Tier.SEMANTIC] is False


def test_register_replaces_and_closes_previous_backend() -> None:
    first = StubParser(Language.GO, Tier.REGEX)
    second = StubParser(Language.GO, Tier.REGEX)
    registry = _registry(first)
    assert registry.resolve(Language.GO) is first

    registry.register(second)

    assert first.closed
    assert registry.resolve(Language.GO) is second
    assert registry.registered(Language.GO) == [second]


def test_close_releases_every_backend() -> None:
    parsers = [StubParser(Language.GO, Tier.AST), StubParser(Language.RUST, Tier.REGEX)]
    registry = _registry(*parsers)

    registry.close()

    assert all(parser.closed for parser in parsers)


def test_build_registry_without_workspace_has_no_semantic_tier(tmp_path: Path) -> None:
    registry = build_registry(RepoIndexConfig(root=tmp_path))

    tiers = [parser.tier for parser in registry.registered(Language.PYTHON)]

    assert Tier.SEMANTIC not in tiers
    assert Tier.AST in tiers
    assert Tier.REGEX in tiers
    assert isinstance(registry.resolve(Language.CUE), RegexParser)
    assert Language.DART in registry.languages()


def test_build_registry_registers_language_servers_for_workspace(tmp_path: Path) -> None:
    config = RepoIndexConfig(root=tmp_path)
    config.parsers.semantic.servers = {"go": []}

    registry = build_registry(config, workspace_root=tmp_path)

    python_tiers = {parser.tier: parser for parser in registry.registered(Language.PYTHON)}
    go_tiers = {parser.tier for parser in registry.registered(Language.GO)}
    assert isinstance(python_tiers[Tier.SEMANTIC], SemanticParser)
    assert python_tiers[Tier.SEMANTIC].server.name == "pyright"
    assert Tier.SEMANTIC not in go_tiers


def test_build_registry_honours_disabled_tiers(tmp_path: Path) -> None:
    config = RepoIndexConfig(
        root=tmp_path, parsers=ParserConfig(disabled_tiers=[Tier.SEMANTIC, Tier.AST])
    )

    registry = build_registry(config, workspace_root=tmp_path)

    assert isinstance(registry.resolve(Language.PYTHON), RegexParser)
    assert Tier.SEMANTIC not in {parser.tier for parser in registry.registered(Language.PYTHON)}


def test_slow_backend_start_does_not_block_other_languages() -> None:
    slow = GatedParser(Language.PYTHON, Tier.SEMANTIC)
    go = StubParser(Language.GO, Tier.REGEX)
    registry = _registry(slow, go)
    results: dict = {}

    worker = _resolve_in_thread(registry, Language.PYTHON, results)
    try:
        assert slow.entered.wait(timeout=5)
        assert registry.resolve(Language.GO) is go
        assert registry.availability(Language.GO)[Tier.REGEX] is True
    finally:
        slow.release.set()
        worker.join(timeout=5)

    assert results[Language.PYTHON] is slow
    assert registry.resolve(Language.PYTHON) is slow
    assert slow.probes == 1


def test_reconfigure_during_slow_start_discards_stale_choice() -> None:
    slow = GatedParser(Language.PYTHON, Tier.SEMANTIC)
    regex = StubParser(Language.PYTHON, Tier.REGEX)
    registry = _registry(slow, regex)
    results: dict = {}

    worker = _resolve_in_thread(registry, Language.PYTHON, results)
    assert slow.entered.wait(timeout=5)
    registry.reconfigure(disabled_tiers=[Tier.SEMANTIC])
    slow.release.set()
    worker.join(timeout=5)

    assert results[Language.PYTHON] is slow
    assert registry.resolve(Language.PYTHON) is regex
    assert registry.availability(Language.PYTHON)[Tier.SEMANTIC] is False
    assert slow.probes == 1
