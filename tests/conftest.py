from __future__ import annotations

from pathlib import Path

import pytest

from repoindex.lsp.servers import LanguageServerConfig
from tests._fixtures.repo_builder import RepoBuilder
from tests._fixtures.servers import fake_server_command


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Provide a reusable repo builder rooted at the pytest tmp_path."""
    return RepoBuilder(tmp_path)


@pytest.fixture
def fake_server():
    """Factory for launch settings pointing at the scripted language server."""

    def _build(mode: str = "normal") -> LanguageServerConfig:
        return LanguageServerConfig(name="fake", language_id="python", command=fake_server_command(mode))

    return _build
