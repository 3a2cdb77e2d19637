"""Exception hierarchy shared across repoindex components."""

from __future__ import annotations


class RepoIndexError(RuntimeError):
    """Base class for errors raised by repoindex."""


class ScanError(RepoIndexError):
    """Raised when a scan cannot proceed, e.g. the root is unreadable."""


class PersistenceError(ScanError):
    """Raised when scan state or the index store cannot be written."""


class VcsError(RepoIndexError):
    """Raised when the version-control adapter cannot answer."""


class BackendUnavailable(RepoIndexError):
    """Raised when a parser backend's toolchain cannot be used."""


class ParseError(RepoIndexError):
    """Raised by a parser when a whole file could not be analyzed."""


class ProtocolError(ParseError):
    """Malformed or error response from a language server."""


class RequestTimeout(ParseError):
    """A language server request did not answer within its deadline."""


__all__ = [
    "BackendUnavailable",
    "ParseError",
    "PersistenceError",
    "ProtocolError",
    "RepoIndexError",
    "RequestTimeout",
    "ScanError",
    "VcsError",
]
