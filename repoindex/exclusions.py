"""Gitignore-style exclusion rules deciding which paths are scanned."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, List, Protocol, Sequence

from .logging import get_logger

logger = get_logger("exclusions")

DEFAULT_EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".venv",
        "venv",
        "node_modules",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".tox",
        ".idea",
        ".repoindex",
    }
)

DEFAULT_EXCLUDED_FILES = frozenset({".DS_Store", "Thumbs.db"})


class ExclusionEvaluator(Protocol):
    """Policy deciding whether a repository-relative path is scanned."""

    def is_excluded(self, path: str, is_dir: bool = False) -> bool:
        ...


@dataclass
class IgnoreRule:
    """Represents an ignore rule parsed from .gitignore or .repoindex.yml."""

    pattern: str
    directory_only: bool
    anchored: bool
    negate: bool
    has_slash: bool

    def matches(self, rel_path: str, is_dir: bool) -> bool:
        if not self.pattern:
            return False
        if self.directory_only and not is_dir:
            return False

        target = rel_path
        if self.anchored or self.has_slash:
            if fnmatchcase(target, self.pattern):
                return True
            if self.directory_only and target.startswith(f"{self.pattern}/"):
                return True
            return False

        for part in target.split("/"):
            if fnmatchcase(part, self.pattern):
                return True
        return False


def build_ignore_rule(pattern: str, negate: bool = False) -> IgnoreRule | None:
    pattern = pattern.strip()
    if not pattern:
        return None

    directory_only = pattern.endswith("/")
    if directory_only:
        pattern = pattern[:-1]

    anchored = pattern.startswith("/")
    if anchored:
        pattern = pattern[1:]

    return IgnoreRule(
        pattern=pattern,
        directory_only=directory_only,
        anchored=anchored,
        negate=negate,
        has_slash="/" in pattern,
    )


def parse_gitignore(path: Path) -> List[IgnoreRule]:
    try:
        text = path.read_text(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        return []
    except OSError as exc:
        logger.warning("Could not read %s: %s", path, exc)
        return []

    rules: List[IgnoreRule] = []
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        negate = line.startswith("!")
        if negate:
            line = line[1:]
        rule = build_ignore_rule(line, negate=negate)
        if rule is not None:
            rules.append(rule)
    return rules


class ExclusionRules:
    """Default exclusion evaluator.

    Fixed tool and VCS directories are always excluded; gitignore-style rules
    are then applied in order, the last matching rule deciding. A file is also
    excluded when any of its parent directories is.
    """

    def __init__(
        self,
        rules: Sequence[IgnoreRule] = (),
        *,
        excluded_dirs: Iterable[str] = DEFAULT_EXCLUDED_DIRS,
        excluded_files: Iterable[str] = DEFAULT_EXCLUDED_FILES,
    ) -> None:
        self._rules = list(rules)
        self._excluded_dirs = frozenset(excluded_dirs)
        self._excluded_files = frozenset(excluded_files)

    @classmethod
    def from_root(cls, root: Path, patterns: Sequence[str] = ()) -> "ExclusionRules":
        """Rules from ``<root>/.gitignore`` followed by configured ``patterns``."""
        rules = parse_gitignore(root / ".gitignore")
        for pattern in patterns:
            negate = pattern.startswith("!")
            rule = build_ignore_rule(pattern[1:] if negate else pattern, negate=negate)
            if rule is not None:
                rules.append(rule)
        return cls(rules)

    @property
    def rules(self) -> List[IgnoreRule]:
        return list(self._rules)

    def is_excluded(self, path: str, is_dir: bool = False) -> bool:
        rel_path = path.replace("\\", "/").strip("/")
        if not rel_path:
            return False
        parts = rel_path.split("/")
        for index in range(1, len(parts)):
            if self._matches("/".join(parts[:index]), parts[index - 1], True):
                return True
        return self._matches(rel_path, parts[-1], is_dir)

    def _matches(self, rel_path: str, name: str, is_dir: bool) -> bool:
        if is_dir and name in self._excluded_dirs:
            return True
        if not is_dir and name in self._excluded_files:
            return True
        ignored = False
        for rule in self._rules:
            if rule.matches(rel_path, is_dir):
                ignored = not rule.negate
        return ignored


__all__ = [
    "DEFAULT_EXCLUDED_DIRS",
    "ExclusionEvaluator",
    "ExclusionRules",
    "IgnoreRule",
    "build_ignore_rule",
    "parse_gitignore",
]
