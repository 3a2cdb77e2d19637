"""Per-language parser tier resolution."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from .base import NullParser, Parser
from .regex import RegexParser, regex_languages
from .semantic import SemanticParser
from .tree_sitter import TreeSitterParser, tree_sitter_languages
from ..config import ParserConfig, RepoIndexConfig
from ..language import Language
from ..logging import get_logger
from ..lsp.servers import resolve_servers
from ..models import TIER_ORDER, Tier

logger = get_logger("parsers.registry")


class ParserRegistry:
    """Chooses the most accurate available parser for each language.

    Resolution is Semantic, then AST, then Regex; the first registered tier
    whose probe succeeds wins and is cached until :meth:`reconfigure`.
    Languages with no usable tier resolve to a :class:`NullParser`.

    Availability checks can block (a language server handshake), so they run
    under a per-language lock; the registry lock only guards the tables.
    """

    def __init__(self, disabled_tiers: Iterable[Tier] = ()) -> None:
        self._parsers: Dict[Tuple[Language, Tier], Parser] = {}
        self._disabled = frozenset(disabled_tiers)
        self._resolved: Dict[Language, Parser] = {}
        self._availability: Dict[Tuple[Language, Tier], bool] = {}
        self._language_locks: Dict[Language, threading.Lock] = {}
        # Bumped whenever cached decisions are invalidated.
        self._generation = 0
        self._lock = threading.Lock()

    def register(self, parser: Parser) -> None:
        key = (parser.language, parser.tier)
        with self._lock:
            previous = self._parsers.get(key)
            self._parsers[key] = parser
            self._resolved.pop(parser.language, None)
            self._availability.pop(key, None)
            self._generation += 1
        if previous is not None and previous is not parser:
            previous.close()

    def registered(self, language: Language) -> List[Parser]:
        with self._lock:
            parsers = dict(self._parsers)
        return [parsers[(language, tier)] for tier in TIER_ORDER if (language, tier) in parsers]

    def languages(self) -> List[Language]:
        with self._lock:
            keys = list(self._parsers)
        return sorted({language for language, _ in keys}, key=lambda lang: lang.value)

    def resolve(self, language: Language) -> Parser:
        """Return the parser selected for ``language``."""
        # Lock-free read; the dict is only replaced entry-wise under the lock.
        cached = self._resolved.get(language)
        if cached is not None:
            return cached
        with self._language_lock(language):
            cached = self._resolved.get(language)
            if cached is not None:
                return cached
            with self._lock:
                generation = self._generation
            selected = self._select(language, TIER_ORDER, generation)
            if isinstance(selected, SemanticParser) and selected.companion is None:
                lower = tuple(t for t in TIER_ORDER if t is not Tier.SEMANTIC)
                companion = self._select(language, lower, generation)
                if not isinstance(companion, NullParser):
                    selected.attach_companion(companion)
            with self._lock:
                if generation == self._generation:
                    self._resolved[language] = selected
        logger.debug("Resolved %s to %r", language.value, selected)
        return selected

    def availability(self, language: Language) -> Dict[Tier, bool]:
        """Probe results per tier; unregistered or disabled tiers are False."""
        with self._lock:
            generation = self._generation
            usable = {
                tier: self._parsers[(language, tier)]
                for tier in TIER_ORDER
                if (language, tier) in self._parsers and tier not in self._disabled
            }
        result: Dict[Tier, bool] = {}
        with self._language_lock(language):
            for tier in TIER_ORDER:
                parser = usable.get(tier)
                result[tier] = parser is not None and self._is_available(parser, generation)
        return result

    def reconfigure(self, disabled_tiers: Optional[Iterable[Tier]] = None) -> None:
        """Drop cached resolutions and probe results, optionally changing disabled tiers."""
        with self._lock:
            if disabled_tiers is not None:
                self._disabled = frozenset(disabled_tiers)
            self._resolved.clear()
            self._availability.clear()
            self._generation += 1
        logger.debug("Parser registry reconfigured; disabled tiers: %s", sorted(t.value for t in self._disabled))

    def refresh_demoted(self) -> None:
        """Re-resolve languages whose selected backend has been demoted."""
        with self._lock:
            for language, parser in list(self._resolved.items()):
                if parser.demoted:
                    self._resolved.pop(language, None)
                    self._availability[(language, parser.tier)] = False
                    self._generation += 1
                    logger.info(
                        "%s backend for %s was demoted; falling back", parser.tier.value, language.value
                    )

    def close(self) -> None:
        with self._lock:
            parsers = list(self._parsers.values())
            self._resolved.clear()
        for parser in parsers:
            parser.close()

    # ------------------------------------------------------------------
    # Internals (caller holds the language lock)

    def _language_lock(self, language: Language) -> threading.Lock:
        with self._lock:
            return self._language_locks.setdefault(language, threading.Lock())

    def _select(self, language: Language, tiers: Tuple[Tier, ...], generation: int) -> Parser:
        with self._lock:
            candidates = [
                self._parsers[(language, tier)]
                for tier in tiers
                if tier not in self._disabled and (language, tier) in self._parsers
            ]
        for parser in candidates:
            if self._is_available(parser, generation):
                return parser
        return NullParser(language)

    def _is_available(self, parser: Parser, generation: int) -> bool:
        key = (parser.language, parser.tier)
        with self._lock:
            known = self._availability.get(key)
        if known is not None:
            return known
        available = not parser.demoted and parser.probe()
        with self._lock:
            if generation == self._generation:
                self._availability[key] = available
        logger.debug(
            "Availability of %s/%s: %s",
            key[0].value,
            key[1].value,
            "available" if available else "unavailable",
        )
        return available


def build_registry(
    config: RepoIndexConfig | None = None,
    workspace_root: Path | None = None,
) -> ParserRegistry:
    """Construct a registry holding every built-in backend.

    Semantic backends are registered only when a workspace root is given,
    since a language server session is bound to one workspace.
    """
    parser_config = config.parsers if config is not None else ParserConfig()
    registry = ParserRegistry(disabled_tiers=parser_config.disabled_tiers)

    for language in regex_languages():
        registry.register(RegexParser(language))
    for language in tree_sitter_languages():
        registry.register(TreeSitterParser(language))

    if workspace_root is not None and Tier.SEMANTIC not in parser_config.disabled_tiers:
        semantic = parser_config.semantic
        for language, server in resolve_servers(semantic.servers).items():
            registry.register(
                SemanticParser(
                    language,
                    server,
                    workspace_root,
                    request_timeout=semantic.request_timeout,
                    handshake_timeout=semantic.handshake_timeout,
                    diagnostics_wait=semantic.diagnostics_wait,
                    max_consecutive_timeouts=semantic.max_consecutive_timeouts,
                )
            )
    return registry


__all__ = ["ParserRegistry", "build_registry"]
