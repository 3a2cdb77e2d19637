"""Parser backends, one per accuracy tier, and the registry choosing between them."""

from .base import NullParser, Parser
from .regex import RegexParser
from .registry import ParserRegistry, build_registry
from .semantic import SemanticParser
from .tree_sitter import TreeSitterParser

__all__ = [
    "NullParser",
    "Parser",
    "ParserRegistry",
    "RegexParser",
    "SemanticParser",
    "TreeSitterParser",
    "build_registry",
]
