"""Base classes for parser backends."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..language import Language
from ..models import FileAnalysis, Tier


class Parser(ABC):
    """Contract shared by the regex, tree-sitter and language-server backends."""

    tier: Tier = Tier.NONE

    @property
    @abstractmethod
    def language(self) -> Language:
        """Language handled by this parser instance."""

    @abstractmethod
    def parse(self, content: str, path: str) -> FileAnalysis:
        """Analyze ``content`` of the file at repository-relative ``path``.

        Malformed input yields a partial analysis carrying diagnostics;
        :class:`~repoindex.errors.ParseError` is raised only when nothing
        could be produced for the file.
        """

    def probe(self) -> bool:
        """Return True when the backend's toolchain is usable."""
        return True

    @property
    def demoted(self) -> bool:
        """True once the backend has failed in a way that rules out further use."""
        return False

    def close(self) -> None:
        """Release resources held by the backend."""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(language={self.language.value}, tier={self.tier.value})"


class NullParser(Parser):
    """Fallback for languages without any registered backend."""

    tier = Tier.NONE

    def __init__(self, language: Language) -> None:
        self._language = language

    @property
    def language(self) -> Language:
        return self._language

    def parse(self, content: str, path: str) -> FileAnalysis:
        return FileAnalysis(path=path, language=self._language, tier=Tier.NONE)


__all__ = ["NullParser", "Parser"]
