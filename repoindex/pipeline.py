"""File analysis pipeline: read, detect, resolve a parser, normalize."""

from __future__ import annotations

import hashlib
from dataclasses import replace
from pathlib import Path
from typing import Optional

from .errors import ParseError, ProtocolError, RequestTimeout
from .language import Language, detect_language
from .logging import get_logger
from .models import Diagnostic, FileAnalysis, Severity, Span, Tier
from .parsers.registry import ParserRegistry

logger = get_logger("pipeline")


def fingerprint_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class AnalysisPipeline:
    """Turns one repository-relative path into a :class:`FileAnalysis`.

    Every per-file problem (unreadable file, undecodable bytes, parser
    failure) ends up as a Diagnostic on the returned analysis; nothing
    raised here is meant to stop a scan.
    """

    def __init__(self, registry: ParserRegistry, root: Path) -> None:
        self._registry = registry
        self._root = root

    @property
    def registry(self) -> ParserRegistry:
        return self._registry

    @property
    def root(self) -> Path:
        return self._root

    def read(self, rel_path: str) -> bytes:
        return (self._root / rel_path).read_bytes()

    def analyze(
        self,
        rel_path: str,
        data: Optional[bytes] = None,
        fingerprint: Optional[str] = None,
    ) -> FileAnalysis:
        language = detect_language(rel_path)
        if data is None:
            try:
                data = self.read(rel_path)
            except OSError as exc:
                logger.warning("Could not read %s: %s", rel_path, exc)
                return failed_analysis(rel_path, language, Tier.NONE, f"unreadable file: {exc}")
        if fingerprint is None:
            fingerprint = fingerprint_bytes(data)

        parser = self._registry.resolve(language)
        extra = []
        try:
            content = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            content = data.decode("utf-8", errors="replace")
            extra.append(
                Diagnostic(
                    path=rel_path,
                    severity=Severity.WARNING,
                    message=f"invalid UTF-8 at byte {exc.start}; undecodable bytes replaced",
                )
            )

        try:
            analysis = parser.parse(content, rel_path)
        except (RequestTimeout, ProtocolError) as exc:
            logger.warning("%s backend did not answer for %s; will retry: %s", parser.tier.value, rel_path, exc)
            analysis = failed_analysis(
                rel_path, language, parser.tier, str(exc) or exc.__class__.__name__, retryable=True
            )
        except ParseError as exc:
            logger.warning("%s parser failed on %s: %s", parser.tier.value, rel_path, exc)
            analysis = failed_analysis(rel_path, language, parser.tier, str(exc) or exc.__class__.__name__)
        except Exception as exc:  # pragma: no cover - parser bug
            logger.exception("Unexpected %s parser error on %s", parser.tier.value, rel_path)
            analysis = failed_analysis(rel_path, language, parser.tier, f"internal parser error: {exc}")

        # The detector owns path and language, whatever the backend reported.
        if analysis.path != rel_path or analysis.language is not language:
            analysis = replace(analysis, path=rel_path, language=language)
        if extra:
            analysis = analysis.with_diagnostics(extra)
        return analysis.with_fingerprint(fingerprint)


def failed_analysis(
    path: str, language: Language, tier: Tier, message: str, retryable: bool = False
) -> FileAnalysis:
    return FileAnalysis(
        path=path,
        language=language,
        tier=tier,
        retryable=retryable,
        diagnostics=(
            Diagnostic(path=path, severity=Severity.ERROR, message=message, span=Span.line(1)),
        ),
    )


__all__ = ["AnalysisPipeline", "failed_analysis", "fingerprint_bytes"]
