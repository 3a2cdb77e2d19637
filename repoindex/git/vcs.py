"""Version-control change detection backed by the git CLI."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Protocol, Set

from ..errors import VcsError
from ..logging import get_logger

logger = get_logger("git.vcs")

Runner = Callable[..., str]


class VersionControl(Protocol):
    """Change detection interface consumed by the scanner."""

    def changed_since(self, commit: str) -> Set[str]:
        ...

    def current_commit(self) -> Optional[str]:
        ...


class GitRepository:
    """Answers change queries for a working tree via ``git``.

    Paths are reported relative to ``root`` with POSIX separators, even when
    ``root`` is a subdirectory of the repository.
    """

    def __init__(self, root: Path, runner: Runner | None = None) -> None:
        self._root = root
        self._runner = runner or self._default_runner

    @property
    def root(self) -> Path:
        return self._root

    def is_repository(self) -> bool:
        for candidate in (self._root, *self._root.parents):
            if (candidate / ".git").exists():
                return True
        return False

    def current_commit(self) -> Optional[str]:
        try:
            output = self._run(["git", "rev-parse", "--verify", "HEAD"])
        except VcsError as exc:
            logger.debug("No current commit for %s: %s", self._root, exc)
            return None
        commit = output.strip()
        return commit or None

    def changed_since(self, commit: str) -> Set[str]:
        """Paths modified, added or deleted since ``commit``, plus untracked files."""
        changed = set(
            _split_nul(
                self._run(
                    ["git", "diff", "--name-only", "--no-renames", "--relative", "-z", commit, "--"]
                )
            )
        )
        changed.update(
            _split_nul(self._run(["git", "ls-files", "--others", "--exclude-standard", "-z"]))
        )
        return changed

    def _run(self, args: Iterable[str]) -> str:
        try:
            return self._runner(list(args), cwd=self._root, capture_output=True)
        except subprocess.CalledProcessError as exc:
            stderr = (exc.stderr or "").strip() if isinstance(exc.stderr, str) else ""
            raise VcsError(f"{' '.join(exc.cmd)} failed: {stderr or exc.returncode}") from exc
        except OSError as exc:
            raise VcsError(f"git is not usable: {exc}") from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            capture_output=capture_output,
            encoding="utf-8",
            errors="surrogateescape",
        )
        return completed.stdout if capture_output else ""


def _split_nul(output: str) -> List[str]:
    return [item.replace("\\", "/") for item in output.split("\0") if item]


__all__ = ["GitRepository", "VersionControl"]
