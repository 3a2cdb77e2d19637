"""Tests for repoindex.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from repoindex.config import ConfigError, RepoIndexConfig, load_config
from repoindex.models import Tier
from repoindex.scanner import ScanOptions


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, RepoIndexConfig)
    assert config.root == tmp_path.resolve()
    assert config.scan.workers == 4
    assert config.scan.batch_size == 64
    assert config.scan.use_vcs is True
    assert config.scan.state_dir is None
    assert config.parsers.disabled_tiers == []
    assert config.parsers.semantic.servers == {}
    assert config.exclude_paths == []


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".repoindex.yml"
    config_file.write_text(
        """
scan:
  workers: 8
  batch_size: 16
  use_vcs: "no"
  grace_period: 2.5
  include_unknown: true
  index_partial: yes
  state_dir: ".cache/index"
parsers:
  disabled_tiers: [SEMANTIC]
  semantic:
    request_timeout: 3
    diagnostics_wait: 0.25
    max_consecutive_timeouts: 5
    servers:
      python: "pylsp --check-parent-process"
      go: []
exclude_paths:
  - "sandbox/"
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.scan.workers == 8
    assert config.scan.batch_size == 16
    assert config.scan.use_vcs is False
    assert config.scan.grace_period == pytest.approx(2.5)
    assert config.scan.include_unknown is True
    assert config.scan.index_partial is True
    assert config.scan.state_dir == tmp_path.resolve() / ".cache" / "index"

    assert config.parsers.disabled_tiers == [Tier.SEMANTIC]
    semantic = config.parsers.semantic
    assert semantic.request_timeout == pytest.approx(3.0)
    assert semantic.handshake_timeout == pytest.approx(15.0)
    assert semantic.diagnostics_wait == pytest.approx(0.25)
    assert semantic.max_consecutive_timeouts == 5
    assert semantic.servers == {"python": ["pylsp", "--check-parent-process"], "go": []}

    assert config.exclude_paths == ["sandbox/"]


def test_load_config_clamps_out_of_range_values(tmp_path: Path) -> None:
    (tmp_path / ".repoindex.yml").write_text(
        "scan:\n  workers: 0\n  batch_size: -3\n  grace_period: -1\n",
        encoding="utf-8",
    )

    config = load_config(tmp_path)

    assert config.scan.workers == 1
    assert config.scan.batch_size == 1
    assert config.scan.grace_period == 0.0


def test_load_config_rejects_unknown_tier(tmp_path: Path) -> None:
    (tmp_path / ".repoindex.yml").write_text("parsers:\n  disabled_tiers: [quantum]\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="quantum"):
        load_config(tmp_path)


def test_load_config_rejects_disabling_none_tier(tmp_path: Path) -> None:
    (tmp_path / ".repoindex.yml").write_text("parsers:\n  disabled_tiers: none\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


@pytest.mark.parametrize("content", ["- just\n- a list\n", "scan: [unclosed\n"])
def test_load_config_rejects_malformed_documents(tmp_path: Path, content: str) -> None:
    (tmp_path / ".repoindex.yml").write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_empty_config_file_yields_defaults(tmp_path: Path) -> None:
    (tmp_path / ".repoindex.yml").write_text("\n", encoding="utf-8")

    assert load_config(tmp_path).scan.workers == 4


def test_scan_options_from_config_with_overrides(tmp_path: Path) -> None:
    config = RepoIndexConfig(root=tmp_path)
    config.scan.workers = 6
    config.scan.index_partial = True

    options = ScanOptions.from_config(config.scan, batch_size=2, force=True)

    assert options.workers == 6
    assert options.index_partial is True
    assert options.batch_size == 2
    assert options.force is True
