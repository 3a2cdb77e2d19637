"""Path based language detection."""

from __future__ import annotations

from enum import Enum
from pathlib import PurePosixPath
from typing import Dict


class Language(str, Enum):
    """Languages recognised by the detector."""

    UNKNOWN = "unknown"
    PYTHON = "python"
    GO = "go"
    JAVASCRIPT = "javascript"
    TYPESCRIPT = "typescript"
    JAVA = "java"
    KOTLIN = "kotlin"
    RUST = "rust"
    C = "c"
    CPP = "cpp"
    CSHARP = "csharp"
    RUBY = "ruby"
    PHP = "php"
    SWIFT = "swift"
    SCALA = "scala"
    DART = "dart"
    CUE = "cue"
    LUA = "lua"
    SHELL = "shell"
    SQL = "sql"
    PROTOBUF = "protobuf"
    STARLARK = "starlark"
    DOCKERFILE = "dockerfile"
    MAKEFILE = "makefile"
    YAML = "yaml"
    JSON = "json"
    TOML = "toml"
    MARKDOWN = "markdown"

    def __str__(self) -> str:
        return self.value


_LANGUAGE_BY_SUFFIX: Dict[str, Language] = {
    ".py": Language.PYTHON,
    ".pyi": Language.PYTHON,
    ".pyw": Language.PYTHON,
    ".go": Language.GO,
    ".js": Language.JAVASCRIPT,
    ".jsx": Language.JAVASCRIPT,
    ".mjs": Language.JAVASCRIPT,
    ".cjs": Language.JAVASCRIPT,
    ".ts": Language.TYPESCRIPT,
    ".tsx": Language.TYPESCRIPT,
    ".mts": Language.TYPESCRIPT,
    ".cts": Language.TYPESCRIPT,
    ".java": Language.JAVA,
    ".kt": Language.KOTLIN,
    ".kts": Language.KOTLIN,
    ".rs": Language.RUST,
    ".c": Language.C,
    ".h": Language.C,
    ".cpp": Language.CPP,
    ".cc": Language.CPP,
    ".cxx": Language.CPP,
    ".hpp": Language.CPP,
    ".hh": Language.CPP,
    ".hxx": Language.CPP,
    ".cs": Language.CSHARP,
    ".rb": Language.RUBY,
    ".rake": Language.RUBY,
    ".php": Language.PHP,
    ".swift": Language.SWIFT,
    ".scala": Language.SCALA,
    ".sc": Language.SCALA,
    ".dart": Language.DART,
    ".cue": Language.CUE,
    ".lua": Language.LUA,
    ".sh": Language.SHELL,
    ".bash": Language.SHELL,
    ".zsh": Language.SHELL,
    ".sql": Language.SQL,
    ".proto": Language.PROTOBUF,
    ".bzl": Language.STARLARK,
    ".star": Language.STARLARK,
    ".dockerfile": Language.DOCKERFILE,
    ".mk": Language.MAKEFILE,
    ".yaml": Language.YAML,
    ".yml": Language.YAML,
    ".json": Language.JSON,
    ".toml": Language.TOML,
    ".md": Language.MARKDOWN,
    ".markdown": Language.MARKDOWN,
}

# Extensionless files recognised by their exact name.
_LANGUAGE_BY_NAME: Dict[str, Language] = {
    "Dockerfile": Language.DOCKERFILE,
    "Containerfile": Language.DOCKERFILE,
    "Makefile": Language.MAKEFILE,
    "GNUmakefile": Language.MAKEFILE,
    "makefile": Language.MAKEFILE,
    "Gemfile": Language.RUBY,
    "Rakefile": Language.RUBY,
    "Podfile": Language.RUBY,
    "BUILD": Language.STARLARK,
    "BUILD.bazel": Language.STARLARK,
    "WORKSPACE": Language.STARLARK,
    "Tiltfile": Language.STARLARK,
}


def detect_language(path: str | PurePosixPath) -> Language:
    """Return the language for ``path``; unrecognised paths map to ``UNKNOWN``."""
    normalized = str(path).replace("\\", "/")
    name = PurePosixPath(normalized).name
    if not name:
        return Language.UNKNOWN

    by_name = _LANGUAGE_BY_NAME.get(name)
    if by_name is not None:
        return by_name
    # Dockerfile.dev, Dockerfile.prod and friends.
    if name.startswith("Dockerfile."):
        return Language.DOCKERFILE

    suffix = PurePosixPath(name).suffix.lower()
    if not suffix:
        return Language.UNKNOWN
    return _LANGUAGE_BY_SUFFIX.get(suffix, Language.UNKNOWN)


def supported_suffixes() -> frozenset[str]:
    """Return every file suffix the detector maps to a language."""
    return frozenset(_LANGUAGE_BY_SUFFIX)


__all__ = ["Language", "detect_language", "supported_suffixes"]
