"""Configuration loading for repoindex (.repoindex.yml)."""

from __future__ import annotations

import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import yaml

from .errors import RepoIndexError
from .models import Tier

CONFIG_FILENAME = ".repoindex.yml"


class ConfigError(RepoIndexError):
    """Raised when the configuration file cannot be parsed."""


@dataclass
class ScanConfig:
    """Scanner tuning knobs."""

    workers: int = 4
    batch_size: int = 64
    use_vcs: bool = True
    grace_period: float = 5.0
    include_unknown: bool = False
    index_partial: bool = False
    state_dir: Optional[Path] = None


@dataclass
class SemanticConfig:
    """Language server settings for the semantic tier."""

    request_timeout: float = 10.0
    handshake_timeout: float = 15.0
    diagnostics_wait: float = 0.5
    max_consecutive_timeouts: int = 3
    servers: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class ParserConfig:
    """Parser tier selection."""

    disabled_tiers: List[Tier] = field(default_factory=list)
    semantic: SemanticConfig = field(default_factory=SemanticConfig)


@dataclass
class RepoIndexConfig:
    """Represents the settings defined in .repoindex.yml."""

    root: Path
    scan: ScanConfig = field(default_factory=ScanConfig)
    parsers: ParserConfig = field(default_factory=ParserConfig)
    exclude_paths: List[str] = field(default_factory=list)


def load_config(config_path: Path) -> RepoIndexConfig:
    """Load configuration from disk; a missing file yields defaults."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()

    if not config_file.exists():
        return RepoIndexConfig(root=root)

    data = _read_config(config_file)
    if not isinstance(data, dict):
        raise ConfigError(f"{CONFIG_FILENAME} must contain a mapping at the root")

    scan = ScanConfig()
    scan_data = _as_dict(data.get("scan"))
    if scan_data:
        workers = _as_int(scan_data.get("workers"))
        if workers is not None:
            scan.workers = max(1, workers)
        batch_size = _as_int(scan_data.get("batch_size"))
        if batch_size is not None:
            scan.batch_size = max(1, batch_size)
        use_vcs = _as_bool(scan_data.get("use_vcs"))
        if use_vcs is not None:
            scan.use_vcs = use_vcs
        grace_period = _as_float(scan_data.get("grace_period"))
        if grace_period is not None:
            scan.grace_period = max(0.0, grace_period)
        include_unknown = _as_bool(scan_data.get("include_unknown"))
        if include_unknown is not None:
            scan.include_unknown = include_unknown
        index_partial = _as_bool(scan_data.get("index_partial"))
        if index_partial is not None:
            scan.index_partial = index_partial
        state_dir = _as_str(scan_data.get("state_dir"))
        if state_dir:
            state_path = Path(state_dir).expanduser()
            scan.state_dir = state_path if state_path.is_absolute() else root / state_path

    parsers = ParserConfig()
    parser_data = _as_dict(data.get("parsers"))
    if parser_data:
        parsers.disabled_tiers = _as_tiers(parser_data.get("disabled_tiers"))
        semantic_data = _as_dict(parser_data.get("semantic"))
        semantic = parsers.semantic
        for key in ("request_timeout", "handshake_timeout", "diagnostics_wait"):
            value = _as_float(semantic_data.get(key))
            if value is not None and value > 0:
                setattr(semantic, key, value)
        max_timeouts = _as_int(semantic_data.get("max_consecutive_timeouts"))
        if max_timeouts is not None:
            semantic.max_consecutive_timeouts = max(1, max_timeouts)
        for language, command in _as_dict(semantic_data.get("servers")).items():
            semantic.servers[str(language)] = _as_command(command)

    return RepoIndexConfig(
        root=root,
        scan=scan,
        parsers=parsers,
        exclude_paths=_as_str_list(data.get("exclude_paths")),
    )


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read {path.name}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    return loaded or {}


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


def _as_command(value: Any) -> List[str]:
    if isinstance(value, str):
        return shlex.split(value)
    return _as_str_list(value)


def _as_tiers(value: Any) -> List[Tier]:
    tiers: List[Tier] = []
    for name in _as_str_list(value):
        try:
            tier = Tier(name.strip().lower())
        except ValueError as exc:
            raise ConfigError(f"Unknown parser tier in disabled_tiers: {name!r}") from exc
        if tier is Tier.NONE:
            raise ConfigError("The 'none' tier cannot be disabled")
        if tier not in tiers:
            tiers.append(tier)
    return tiers


__all__ = [
    "CONFIG_FILENAME",
    "ConfigError",
    "ParserConfig",
    "RepoIndexConfig",
    "ScanConfig",
    "SemanticConfig",
    "load_config",
]
