"""Language Server Protocol client used by the semantic tier."""

from .client import LanguageServerClient
from .servers import DEFAULT_SERVERS, LanguageServerConfig, resolve_servers

__all__ = ["DEFAULT_SERVERS", "LanguageServerClient", "LanguageServerConfig", "resolve_servers"]
