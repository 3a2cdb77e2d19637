"""Language server launch settings."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from ..language import Language


@dataclass(frozen=True)
class LanguageServerConfig:
    """How to launch and talk to one language server over stdio."""

    name: str
    language_id: str
    command: Tuple[str, ...]
    initialization_options: Dict[str, Any] = field(default_factory=dict)
    install_hint: Optional[str] = None

    @property
    def executable(self) -> str:
        return self.command[0] if self.command else ""


DEFAULT_SERVERS: Dict[Language, LanguageServerConfig] = {
    Language.PYTHON: LanguageServerConfig(
        name="pyright",
        language_id="python",
        command=("pyright-langserver", "--stdio"),
        install_hint="pip install pyright",
    ),
    Language.GO: LanguageServerConfig(
        name="gopls",
        language_id="go",
        command=("gopls",),
        install_hint="go install golang.org/x/tools/gopls@latest",
    ),
    Language.TYPESCRIPT: LanguageServerConfig(
        name="typescript-language-server",
        language_id="typescript",
        command=("typescript-language-server", "--stdio"),
        install_hint="npm install -g typescript-language-server typescript",
    ),
    Language.JAVASCRIPT: LanguageServerConfig(
        name="typescript-language-server",
        language_id="javascript",
        command=("typescript-language-server", "--stdio"),
        install_hint="npm install -g typescript-language-server typescript",
    ),
    Language.RUST: LanguageServerConfig(
        name="rust-analyzer",
        language_id="rust",
        command=("rust-analyzer",),
        install_hint="rustup component add rust-analyzer",
    ),
    Language.JAVA: LanguageServerConfig(
        name="jdtls",
        language_id="java",
        command=("jdtls",),
    ),
}


def resolve_servers(
    overrides: Mapping[str, Sequence[str]] | None = None,
) -> Dict[Language, LanguageServerConfig]:
    """Merge per-language command overrides into the default server table.

    An override maps a language name to a command line; an empty command
    disables the semantic tier for that language.
    """
    servers = dict(DEFAULT_SERVERS)
    for key, command in (overrides or {}).items():
        try:
            language = Language(key)
        except ValueError:
            continue
        command_tuple = tuple(command)
        if not command_tuple:
            servers.pop(language, None)
            continue
        base = servers.get(language)
        if base is None:
            servers[language] = LanguageServerConfig(
                name=command_tuple[0],
                language_id=language.value,
                command=command_tuple,
            )
        else:
            servers[language] = replace(base, name=command_tuple[0], command=command_tuple)
    return servers


__all__ = ["DEFAULT_SERVERS", "LanguageServerConfig", "resolve_servers"]
