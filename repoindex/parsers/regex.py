"""Regex based declaration and import extraction.

This tier is always available. Patterns are matched line-wise against source
with comments and string literals blanked out, so it will miss constructs
that span unusual layouts (grouped Go ``const`` blocks, multi-line Java
generics, nested closures). Those gaps are an accuracy limit of the tier and
are not reported as diagnostics. Unbalanced delimiters are.
"""

from __future__ import annotations

import re
from bisect import bisect_right
from dataclasses import dataclass
from typing import Callable, Dict, List, Match, Optional, Pattern, Sequence, Tuple

from .base import Parser
from ..language import Language
from ..models import (
    Diagnostic,
    FileAnalysis,
    Import,
    Relation,
    Severity,
    Span,
    Symbol,
    SymbolKind,
    Tier,
)

_M = re.MULTILINE

KindResolver = Callable[[Match[str]], SymbolKind]
ParentResolver = Callable[[Match[str]], Optional[str]]
Visibility = Callable[[str, Match[str]], Optional[str]]
ImportBuilder = Callable[[Match[str], "_LineIndex"], List[Import]]


@dataclass(frozen=True)
class SymbolRule:
    """One declaration pattern; the ``name`` group is required."""

    kind: SymbolKind
    pattern: Pattern[str]
    container: bool = False
    emit: bool = True
    member_kind: Optional[SymbolKind] = None
    requires_scope: bool = False
    resolve_kind: Optional[KindResolver] = None
    resolve_parent: Optional[ParentResolver] = None
    reject: Optional[Callable[[Match[str]], bool]] = None


@dataclass(frozen=True)
class ImportRule:
    pattern: Pattern[str]
    build: ImportBuilder


@dataclass(frozen=True)
class RegexRules:
    """Per-language pattern table and lexical conventions."""

    symbols: Tuple[SymbolRule, ...]
    imports: Tuple[ImportRule, ...]
    visibility: Visibility
    scoping: str = "braces"
    line_comments: Tuple[str, ...] = ("//",)
    block_comment: Optional[Tuple[str, str]] = ("/*", "*/")
    quotes: Tuple[str, ...] = ('"', "'")
    raw_quotes: Tuple[str, ...] = ()
    char_literals: bool = False
    triple_quotes: bool = False
    check_balance: bool = True
    doc_prefixes: Tuple[str, ...] = ("///", "//!", "//", "/**", "/*", "*/", "*")
    skip_names: frozenset[str] = frozenset()


class _LineIndex:
    """Maps string offsets to 1-based line numbers."""

    def __init__(self, text: str) -> None:
        self._starts = [0]
        self._starts.extend(match.end() for match in re.finditer("\n", text))

    def line_of(self, offset: int) -> int:
        return bisect_right(self._starts, offset)

    def column_of(self, offset: int) -> int:
        return offset - self._starts[self.line_of(offset) - 1]


@dataclass
class _Scope:
    name: str
    start: int
    end: int
    container: bool = True


@dataclass
class _Candidate:
    rule: SymbolRule
    match: Match[str]
    name: str
    offset: int
    indent: int


class RegexParser(Parser):
    """Extracts symbols and imports with fixed per-language patterns."""

    tier = Tier.REGEX

    def __init__(self, language: Language, rules: RegexRules | None = None) -> None:
        resolved = rules or REGEX_RULES.get(language)
        if resolved is None:
            raise ValueError(f"No regex rules defined for language: {language.value}")
        self._language = language
        self._rules = resolved

    @property
    def language(self) -> Language:
        return self._language

    def parse(self, content: str, path: str) -> FileAnalysis:
        rules = self._rules
        index = _LineIndex(content)
        masked, unterminated = _masked_ranges(content, rules)
        sanitized = _blank(content, masked)
        lines = content.splitlines()

        diagnostics: List[Diagnostic] = []
        if unterminated is not None:
            what, offset = unterminated
            line = index.line_of(offset)
            diagnostics.append(
                Diagnostic(
                    path=path,
                    severity=Severity.ERROR,
                    message=f"unterminated {what} starting at line {line}",
                    span=Span(line, index.column_of(offset)),
                    source="regex",
                )
            )
        if rules.check_balance:
            balance = _check_balance(sanitized, index, path)
            if balance is not None:
                diagnostics.append(balance)

        candidates = self._candidates(sanitized)
        symbols, relations = self._build_symbols(candidates, content, sanitized, lines, index, path)
        imports = self._imports(content, masked, index)

        return FileAnalysis(
            path=path,
            language=self._language,
            tier=Tier.REGEX,
            symbols=tuple(symbols),
            imports=tuple(imports),
            diagnostics=tuple(diagnostics),
            relations=tuple(relations),
        )

    # ------------------------------------------------------------------
    # Internals

    def _candidates(self, sanitized: str) -> List[_Candidate]:
        found: List[_Candidate] = []
        seen: set[int] = set()
        for rule in self._rules.symbols:
            for match in rule.pattern.finditer(sanitized):
                name = match.group("name")
                if not name or name in self._rules.skip_names:
                    continue
                if rule.reject is not None and rule.reject(match):
                    continue
                offset = match.start("name")
                if offset in seen:
                    continue
                seen.add(offset)
                line_start = sanitized.rfind("\n", 0, match.start()) + 1
                line_text = sanitized[line_start:offset]
                indent = len(line_text) - len(line_text.lstrip(" \t"))
                found.append(_Candidate(rule=rule, match=match, name=name, offset=offset, indent=indent))
        found.sort(key=lambda item: item.offset)
        return found

    def _build_symbols(
        self,
        candidates: Sequence[_Candidate],
        content: str,
        sanitized: str,
        lines: Sequence[str],
        index: _LineIndex,
        path: str,
    ) -> Tuple[List[Symbol], List[Relation]]:
        rules = self._rules
        if rules.scoping == "indent":
            parents = _indent_parents(candidates)
            sanitized_lines = sanitized.splitlines()
        else:
            parents = _brace_parents(candidates, sanitized)
            sanitized_lines = []

        symbols: List[Symbol] = []
        relations: List[Relation] = []
        for candidate, enclosing in zip(candidates, parents):
            rule = candidate.rule
            if not rule.emit:
                continue
            match = candidate.match
            parent = rule.resolve_parent(match) if rule.resolve_parent else None
            member = parent is not None
            if parent is None and enclosing is not None:
                parent = enclosing.name
                member = enclosing.container
            if rule.requires_scope and parent is None:
                continue

            kind = rule.resolve_kind(match) if rule.resolve_kind else rule.kind
            if member and rule.member_kind is not None:
                kind = rule.member_kind

            line = index.line_of(candidate.offset)
            signature = _group_text(content, match, "signature")
            if rules.scoping == "indent":
                doc = _python_docstring(lines, sanitized_lines, line - 1)
            else:
                doc = _leading_comment(lines, line - 1, rules.doc_prefixes)

            symbols.append(
                Symbol(
                    name=candidate.name,
                    kind=kind,
                    path=path,
                    span=Span(line, index.column_of(candidate.offset), line, None),
                    visibility=rules.visibility(candidate.name, match),
                    signature=_collapse(signature) if signature else None,
                    doc=doc,
                    parent=parent,
                    tier=Tier.REGEX,
                )
            )
            for base in _split_bases(_group_text(content, match, "bases")):
                relations.append(Relation(kind="inherits", source=candidate.name, target=base, line=line))
        return symbols, relations

    def _imports(
        self, content: str, masked: Sequence[Tuple[int, int]], index: _LineIndex
    ) -> List[Import]:
        starts = [start for start, _ in masked]
        imports: List[Import] = []
        seen: set[Tuple[str, int, Optional[str]]] = set()
        for rule in self._rules.imports:
            for match in rule.pattern.finditer(content):
                if _inside(match.start(), masked, starts):
                    continue
                for item in rule.build(match, index):
                    key = (item.module, item.line, item.alias)
                    if key in seen:
                        continue
                    seen.add(key)
                    imports.append(item)
        imports.sort(key=lambda item: (item.line, item.module))
        return imports


# ----------------------------------------------------------------------
# Lexical helpers

_CHAR_LITERAL = re.compile(r"'(?:\\[^\n]{1,10}?|[^\\'\n])'")
_PAIRS = {")": "(", "]": "[", "}": "{"}


def _masked_ranges(
    content: str, rules: RegexRules
) -> Tuple[List[Tuple[int, int]], Optional[Tuple[str, int]]]:
    """Return (start, end) ranges of comments and string literals."""
    ranges: List[Tuple[int, int]] = []
    length = len(content)
    block_open, block_close = rules.block_comment or ("", "")
    i = 0
    while i < length:
        char = content[i]
        if rules.triple_quotes and content.startswith(('"""', "'''"), i):
            delimiter = content[i : i + 3]
            end = _find_closing(content, delimiter, i + 3)
            if end == -1:
                ranges.append((i, length))
                return ranges, ("string literal", i)
            ranges.append((i, end + 3))
            i = end + 3
            continue
        if any(content.startswith(prefix, i) for prefix in rules.line_comments):
            end = content.find("\n", i)
            end = length if end == -1 else end
            ranges.append((i, end))
            i = end
            continue
        if block_open and content.startswith(block_open, i):
            end = content.find(block_close, i + len(block_open))
            if end == -1:
                ranges.append((i, length))
                return ranges, ("block comment", i)
            ranges.append((i, end + len(block_close)))
            i = end + len(block_close)
            continue
        if char in rules.raw_quotes:
            end = content.find(char, i + 1)
            if end == -1:
                ranges.append((i, length))
                return ranges, ("raw string", i)
            ranges.append((i, end + 1))
            i = end + 1
            continue
        if char in rules.quotes:
            if char == "'" and rules.char_literals:
                literal = _CHAR_LITERAL.match(content, i)
                if literal is not None:
                    ranges.append(literal.span())
                    i = literal.end()
                else:
                    i += 1
                continue
            j = i + 1
            while j < length:
                current = content[j]
                if current == "\\":
                    j += 2
                    continue
                if current == char or current == "\n":
                    break
                j += 1
            end = min(j + 1, length)
            ranges.append((i, end))
            i = end
            continue
        i += 1
    return ranges, None


def _find_closing(content: str, delimiter: str, start: int) -> int:
    i = start
    while True:
        end = content.find(delimiter, i)
        if end == -1:
            return -1
        backslashes = 0
        k = end - 1
        while k >= start and content[k] == "\\":
            backslashes += 1
            k -= 1
        if backslashes % 2 == 0:
            return end
        i = end + 1


def _blank(content: str, ranges: Sequence[Tuple[int, int]]) -> str:
    if not ranges:
        return content
    pieces: List[str] = []
    cursor = 0
    for start, end in ranges:
        pieces.append(content[cursor:start])
        pieces.append(re.sub(r"[^\n]", " ", content[start:end]))
        cursor = end
    pieces.append(content[cursor:])
    return "".join(pieces)


def _inside(offset: int, ranges: Sequence[Tuple[int, int]], starts: Sequence[int]) -> bool:
    position = bisect_right(starts, offset) - 1
    if position < 0:
        return False
    start, end = ranges[position]
    return start <= offset < end


def _check_balance(sanitized: str, index: _LineIndex, path: str) -> Optional[Diagnostic]:
    stack: List[Tuple[str, int]] = []
    for offset, char in enumerate(sanitized):
        if char in "([{":
            stack.append((char, offset))
        elif char in _PAIRS:
            if not stack or stack[-1][0] != _PAIRS[char]:
                line = index.line_of(offset)
                return Diagnostic(
                    path=path,
                    severity=Severity.ERROR,
                    message=f"unexpected '{char}' at line {line}",
                    span=Span(line, index.column_of(offset)),
                    source="regex",
                )
            stack.pop()
    if not stack:
        return None
    char, offset = stack[-1]
    line = index.line_of(offset)
    return Diagnostic(
        path=path,
        severity=Severity.ERROR,
        message=f"unterminated '{char}' opened at line {line}",
        span=Span(line, index.column_of(offset)),
        source="regex",
    )


def _indent_parents(candidates: Sequence[_Candidate]) -> List[Optional[_Scope]]:
    parents: List[Optional[_Scope]] = []
    stack: List[Tuple[int, _Candidate]] = []
    for candidate in candidates:
        while stack and stack[-1][0] >= candidate.indent:
            stack.pop()
        enclosing = stack[-1][1] if stack else None
        if enclosing is None:
            parents.append(None)
        else:
            parents.append(
                _Scope(
                    name=enclosing.name,
                    start=enclosing.offset,
                    end=-1,
                    container=enclosing.rule.container,
                )
            )
        if candidate.rule.kind in (SymbolKind.FUNCTION, SymbolKind.CLASS):
            stack.append((candidate.indent, candidate))
    return parents


def _brace_parents(candidates: Sequence[_Candidate], sanitized: str) -> List[Optional[_Scope]]:
    scopes: List[_Scope] = []
    for candidate in candidates:
        if not candidate.rule.container:
            continue
        block = _block_after(sanitized, candidate.offset)
        if block is not None:
            scopes.append(_Scope(name=candidate.name, start=block[0], end=block[1]))

    parents: List[Optional[_Scope]] = []
    for candidate in candidates:
        enclosing: Optional[_Scope] = None
        for scope in scopes:
            if scope.start < candidate.offset < scope.end:
                if enclosing is None or scope.start > enclosing.start:
                    enclosing = scope
        parents.append(enclosing)
    return parents


def _block_after(sanitized: str, offset: int) -> Optional[Tuple[int, int]]:
    length = len(sanitized)
    i = offset
    while i < length and sanitized[i] not in "{;":
        i += 1
    if i >= length or sanitized[i] == ";":
        return None
    depth = 0
    for j in range(i, length):
        char = sanitized[j]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return i, j
    return i, length


def _group_text(content: str, match: Match[str], group: str) -> Optional[str]:
    if group not in match.re.groupindex:
        return None
    start, end = match.span(group)
    if start < 0:
        return None
    return content[start:end]


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _split_bases(text: Optional[str]) -> List[str]:
    if not text:
        return []
    bases: List[str] = []
    depth = 0
    current: List[str] = []
    for char in text:
        if char in "<[(":
            depth += 1
        elif char in ">])":
            depth -= 1
        if char == "," and depth == 0:
            bases.append("".join(current))
            current = []
            continue
        current.append(char)
    bases.append("".join(current))
    cleaned: List[str] = []
    for base in bases:
        base = base.strip()
        if not base or "=" in base or base == "object":
            continue
        cleaned.append(re.sub(r"[<\[].*$", "", base).strip())
    return [base for base in cleaned if base]


def _python_docstring(
    lines: Sequence[str], sanitized_lines: Sequence[str], index: int
) -> Optional[str]:
    header_end = None
    for offset in range(index, min(index + 15, len(sanitized_lines))):
        if sanitized_lines[offset].rstrip().endswith(":"):
            header_end = offset
            break
    if header_end is None:
        return None
    for offset in range(header_end + 1, len(lines)):
        stripped = lines[offset].strip()
        if not stripped:
            continue
        match = re.match(r"^[rRuU]?(\"\"\"|''')(.*)$", stripped)
        if match is None:
            return None
        quote, rest = match.groups()
        body = [rest]
        if quote not in rest:
            for follow in lines[offset + 1 : offset + 50]:
                body.append(follow.strip())
                if quote in follow:
                    break
        text = " ".join(part for part in body if part)
        text = text.split(quote, 1)[0].strip()
        return text or None
    return None


def _leading_comment(
    lines: Sequence[str], index: int, prefixes: Sequence[str]
) -> Optional[str]:
    collected: List[str] = []
    cursor = index - 1
    while cursor >= 0:
        stripped = lines[cursor].strip()
        if stripped.startswith(("@", "#[")) and not collected:
            cursor -= 1
            continue
        prefix = next((p for p in prefixes if stripped.startswith(p)), None)
        if prefix is None:
            break
        text = stripped[len(prefix) :]
        if text.endswith("*/"):
            text = text[:-2]
        text = text.strip(" *")
        if text:
            collected.append(text)
        cursor -= 1
    if not collected:
        return None
    return " ".join(reversed(collected))


# ----------------------------------------------------------------------
# Visibility conventions


def _underscore_visibility(name: str, match: Match[str]) -> Optional[str]:
    if name.startswith("__") and name.endswith("__"):
        return "public"
    return "private" if name.startswith("_") else "public"


def _go_visibility(name: str, match: Match[str]) -> Optional[str]:
    return "public" if name[:1].isupper() else "private"


def _modifier_keyword(match: Match[str]) -> Optional[str]:
    modifiers = match.groupdict().get("modifiers") or ""
    for keyword in ("public", "private", "protected"):
        if re.search(rf"\b{keyword}\b", modifiers):
            return keyword
    return None


def _java_visibility(name: str, match: Match[str]) -> Optional[str]:
    return _modifier_keyword(match) or "internal"


def _js_visibility(name: str, match: Match[str]) -> Optional[str]:
    keyword = _modifier_keyword(match)
    if keyword is not None:
        return keyword
    if name.startswith("#"):
        return "private"
    if "export" in match.re.groupindex:
        # Module level declaration: visible outside only when exported.
        return "public" if match.group("export") else "private"
    return "public"


def _rust_visibility(name: str, match: Match[str]) -> Optional[str]:
    vis = match.groupdict().get("vis")
    if not vis:
        return "private"
    return "public" if vis.strip() == "pub" else "internal"


def _cue_visibility(name: str, match: Match[str]) -> Optional[str]:
    bare = name.lstrip("#")
    return "private" if bare.startswith("_") else "public"


# ----------------------------------------------------------------------
# Import builders


def _single_import(match: Match[str], index: _LineIndex) -> List[Import]:
    groups = match.groupdict()
    module = (groups.get("module") or "").strip()
    if not module:
        return []
    return [
        Import(
            module=module,
            line=index.line_of(match.start()),
            alias=groups.get("alias") or None,
        )
    ]


def _block_import_builder(item_pattern: Pattern[str]) -> ImportBuilder:
    def _build(match: Match[str], index: _LineIndex) -> List[Import]:
        base = match.start("body")
        imports: List[Import] = []
        for item in item_pattern.finditer(match.group("body")):
            imports.append(
                Import(
                    module=item.group("module"),
                    line=index.line_of(base + item.start("module")),
                    alias=item.group("alias") or None,
                )
            )
        return imports

    return _build


def _python_import(match: Match[str], index: _LineIndex) -> List[Import]:
    line = index.line_of(match.start())
    imports: List[Import] = []
    for part in match.group("modules").split(","):
        pieces = part.split()
        if not pieces:
            continue
        alias = pieces[2] if len(pieces) == 3 and pieces[1] == "as" else None
        imports.append(Import(module=pieces[0], line=line, alias=alias))
    return imports


def _python_from_import(match: Match[str], index: _LineIndex) -> List[Import]:
    raw = match.group("names").split("#", 1)[0]
    raw = raw.strip().strip("()").replace("\\", " ")
    names = tuple(part.split()[0] for part in raw.split(",") if part.split())
    return [Import(module=match.group("module"), line=index.line_of(match.start()), names=names)]


def _js_import(match: Match[str], index: _LineIndex) -> List[Import]:
    clause = " ".join((match.groupdict().get("clause") or "").split())
    alias: Optional[str] = None
    names: List[str] = []
    namespace = re.search(r"\*\s+as\s+([\w$]+)", clause)
    if namespace:
        alias = namespace.group(1)
    braces = re.search(r"\{([^}]*)\}", clause)
    if braces:
        for part in braces.group(1).split(","):
            tokens = part.replace("type ", "").split()
            if tokens:
                names.append(tokens[0])
    default = re.match(r"^([\w$]+)\s*(?:,|$)", clause)
    if default and default.group(1) != "type":
        names.insert(0, default.group(1))
    return [
        Import(
            module=match.group("module"),
            line=index.line_of(match.start()),
            alias=alias,
            names=tuple(names),
        )
    ]


def _rust_use(match: Match[str], index: _LineIndex) -> List[Import]:
    module = _collapse(match.group("module"))
    alias = None
    alias_match = re.match(r"^([^{}]*?)\s+as\s+(\w+)$", module)
    if alias_match:
        module, alias = alias_match.group(1), alias_match.group(2)
    return [Import(module=module.replace(" ", ""), line=index.line_of(match.start()), alias=alias)]


# ----------------------------------------------------------------------
# Language rule tables

_PY_DEF = re.compile(
    r"^[ \t]*(?:async[ \t]+)?def[ \t]+(?P<name>\w+)[ \t]*(?P<signature>\([^)]*\)(?:[ \t]*->[ \t]*[^:\n]+)?)?",
    _M,
)
_PY_CLASS = re.compile(r"^[ \t]*class[ \t]+(?P<name>\w+)(?:[ \t]*\((?P<bases>[^)]*)\))?", _M)
_PY_ASSIGN = re.compile(r"^(?P<name>[A-Za-z_]\w*)[ \t]*(?::[^=\n]+)?=(?!=)", _M)

_PYTHON = RegexRules(
    symbols=(
        SymbolRule(kind=SymbolKind.CLASS, pattern=_PY_CLASS, container=True),
        SymbolRule(kind=SymbolKind.FUNCTION, pattern=_PY_DEF, member_kind=SymbolKind.METHOD),
        SymbolRule(
            kind=SymbolKind.VARIABLE,
            pattern=_PY_ASSIGN,
            resolve_kind=lambda m: SymbolKind.CONSTANT if m.group("name").isupper() else SymbolKind.VARIABLE,
        ),
    ),
    imports=(
        ImportRule(
            re.compile(
                r"^[ \t]*import[ \t]+(?P<modules>[\w.]+(?:[ \t]+as[ \t]+\w+)?(?:[ \t]*,[ \t]*[\w.]+(?:[ \t]+as[ \t]+\w+)?)*)",
                _M,
            ),
            _python_import,
        ),
        ImportRule(
            re.compile(
                r"^[ \t]*from[ \t]+(?P<module>\.*[\w.]*)[ \t]+import[ \t]+(?P<names>\([^)]*\)|[^\n]+)",
                _M,
            ),
            _python_from_import,
        ),
    ),
    visibility=_underscore_visibility,
    scoping="indent",
    line_comments=("#",),
    block_comment=None,
    triple_quotes=True,
)

_GO_IMPORT_ITEM = re.compile(r"^[ \t]*(?:(?P<alias>[\w.]+)[ \t]+)?\"(?P<module>[^\"]+)\"", _M)


def _go_receiver_type(match: Match[str]) -> Optional[str]:
    receiver = match.group("receiver")
    if not receiver:
        return None
    type_part = receiver.strip().split()[-1]
    type_part = type_part.lstrip("*")
    return re.sub(r"\[.*$", "", type_part) or None


def _go_type_kind(match: Match[str]) -> SymbolKind:
    what = match.group("what")
    if what == "struct":
        return SymbolKind.STRUCT
    if what == "interface":
        return SymbolKind.INTERFACE
    return SymbolKind.TYPE


_GO = RegexRules(
    symbols=(
        SymbolRule(
            kind=SymbolKind.FUNCTION,
            pattern=re.compile(
                r"^func[ \t]+(?:\((?P<receiver>[^)]*)\)[ \t]*)?(?P<name>\w+)[ \t]*(?:\[[^\]\n]*\])?(?P<signature>\([^)]*\)[^{\n]*)",
                _M,
            ),
            member_kind=SymbolKind.METHOD,
            resolve_parent=_go_receiver_type,
        ),
        SymbolRule(
            kind=SymbolKind.TYPE,
            pattern=re.compile(
                r"^type[ \t]+(?P<name>\w+)(?:\[[^\]\n]*\])?[ \t]+(?:=[ \t]*)?(?P<what>struct|interface|[\w.*\[\]]+)",
                _M,
            ),
            resolve_kind=_go_type_kind,
        ),
        SymbolRule(
            kind=SymbolKind.VARIABLE,
            pattern=re.compile(r"^(?P<what>const|var)[ \t]+(?P<name>\w+)", _M),
            resolve_kind=lambda m: SymbolKind.CONSTANT if m.group("what") == "const" else SymbolKind.VARIABLE,
        ),
    ),
    imports=(
        ImportRule(
            re.compile(r"^import[ \t]+(?:(?P<alias>[\w.]+)[ \t]+)?\"(?P<module>[^\"]+)\"", _M),
            _single_import,
        ),
        ImportRule(
            re.compile(r"^import[ \t]*\((?P<body>[^)]*)\)", _M),
            _block_import_builder(_GO_IMPORT_ITEM),
        ),
    ),
    visibility=_go_visibility,
    raw_quotes=("`",),
    char_literals=True,
    quotes=('"', "'"),
)

_JS_NAME = r"[A-Za-z_$][\w$]*"
_JS_EXPORT = r"(?P<export>export[ \t]+(?:default[ \t]+)?)?"
_JS_CONTROL = frozenset(
    {"if", "for", "while", "switch", "catch", "function", "return", "with", "super"}
)

_JS_SYMBOLS: Tuple[SymbolRule, ...] = (
    SymbolRule(
        kind=SymbolKind.CLASS,
        pattern=re.compile(
            rf"^[ \t]*{_JS_EXPORT}(?:declare[ \t]+)?(?:abstract[ \t]+)?class[ \t]+(?P<name>{_JS_NAME})(?:<[^>\n]*>)?(?:[ \t]+extends[ \t]+(?P<bases>[\w$.]+))?",
            _M,
        ),
        container=True,
    ),
    SymbolRule(
        kind=SymbolKind.FUNCTION,
        pattern=re.compile(
            rf"^[ \t]*{_JS_EXPORT}(?:declare[ \t]+)?(?:async[ \t]+)?function\*?[ \t]*(?P<name>{_JS_NAME})[ \t]*(?:<[^>\n]*>)?[ \t]*(?P<signature>\([^)]*\))",
            _M,
        ),
    ),
    SymbolRule(
        kind=SymbolKind.FUNCTION,
        pattern=re.compile(
            rf"^[ \t]*{_JS_EXPORT}(?:const|let|var)[ \t]+(?P<name>{_JS_NAME})[ \t]*(?::[^=\n]+)?=[ \t]*(?:async[ \t]+)?(?:function\b[^(]*(?P<signature>\([^)]*\))|(?P<arrow>\([^)]*\))[ \t]*(?::[^=\n]+)?=>|{_JS_NAME}[ \t]*=>)",
            _M,
        ),
    ),
    SymbolRule(
        kind=SymbolKind.VARIABLE,
        pattern=re.compile(
            rf"^{_JS_EXPORT}(?P<decl>const|let|var)[ \t]+(?P<name>{_JS_NAME})[ \t]*(?::[^=\n]+)?=",
            _M,
        ),
        resolve_kind=lambda m: SymbolKind.CONSTANT if m.group("decl") == "const" else SymbolKind.VARIABLE,
    ),
    SymbolRule(
        kind=SymbolKind.METHOD,
        pattern=re.compile(
            rf"^[ \t]+(?P<modifiers>(?:(?:public|private|protected|static|async|readonly|abstract|override|get|set)[ \t]+)*)\*?(?P<name>#?{_JS_NAME})[ \t]*\??(?:<[^>\n]*>)?[ \t]*(?P<signature>\([^)]*\))[ \t]*(?::[^{{;\n]*)?[{{]",
            _M,
        ),
        requires_scope=True,
    ),
)

_TS_SYMBOLS: Tuple[SymbolRule, ...] = _JS_SYMBOLS + (
    SymbolRule(
        kind=SymbolKind.INTERFACE,
        pattern=re.compile(
            rf"^[ \t]*{_JS_EXPORT}(?:declare[ \t]+)?interface[ \t]+(?P<name>{_JS_NAME})(?:<[^>\n]*>)?(?:[ \t]+extends[ \t]+(?P<bases>[\w$., ]+?))?[ \t]*\{{",
            _M,
        ),
        container=True,
    ),
    SymbolRule(
        kind=SymbolKind.TYPE,
        pattern=re.compile(
            rf"^[ \t]*{_JS_EXPORT}(?:declare[ \t]+)?type[ \t]+(?P<name>{_JS_NAME})[ \t]*(?:<[^>\n]*>)?[ \t]*=",
            _M,
        ),
    ),
    SymbolRule(
        kind=SymbolKind.ENUM,
        pattern=re.compile(
            rf"^[ \t]*{_JS_EXPORT}(?:declare[ \t]+)?(?:const[ \t]+)?enum[ \t]+(?P<name>{_JS_NAME})",
            _M,
        ),
    ),
)

_JS_IMPORTS: Tuple[ImportRule, ...] = (
    ImportRule(
        re.compile(
            r"^[ \t]*import[ \t]+(?:type[ \t]+)?(?P<clause>[^'\";]*?)[ \t]*\bfrom[ \t]*['\"](?P<module>[^'\"]+)['\"]",
            _M,
        ),
        _js_import,
    ),
    ImportRule(re.compile(r"^[ \t]*import[ \t]*['\"](?P<module>[^'\"]+)['\"]", _M), _single_import),
    ImportRule(
        re.compile(r"^[ \t]*export[ \t]+[^'\";\n]*\bfrom[ \t]*['\"](?P<module>[^'\"]+)['\"]", _M),
        _single_import,
    ),
    ImportRule(
        re.compile(r"\brequire\(\s*['\"](?P<module>[^'\"]+)['\"]\s*\)"),
        _single_import,
    ),
)

_JAVASCRIPT = RegexRules(
    symbols=_JS_SYMBOLS,
    imports=_JS_IMPORTS,
    visibility=_js_visibility,
    raw_quotes=("`",),
    skip_names=_JS_CONTROL,
)

_TYPESCRIPT = RegexRules(
    symbols=_TS_SYMBOLS,
    imports=_JS_IMPORTS,
    visibility=_js_visibility,
    raw_quotes=("`",),
    skip_names=_JS_CONTROL,
)

_JAVA_MODIFIERS = r"(?P<modifiers>(?:(?:public|private|protected|static|final|abstract|sealed|non-sealed|strictfp|synchronized|native|default|transient|volatile)[ \t]+)*)"

_JAVA_NOT_TYPES = frozenset(
    {
        "return", "else", "new", "throw", "case", "yield", "assert",
        "public", "private", "protected", "static", "final", "abstract",
        "synchronized", "native", "default", "sealed", "strictfp",
    }
)

_JAVA = RegexRules(
    symbols=(
        SymbolRule(
            kind=SymbolKind.CLASS,
            pattern=re.compile(
                rf"^[ \t]*{_JAVA_MODIFIERS}(?P<what>class|interface|enum|record|@interface)[ \t]+(?P<name>\w+)(?:[^\n{{]*?\bextends[ \t]+(?P<bases>[\w.]+))?",
                _M,
            ),
            container=True,
            resolve_kind=lambda m: {
                "interface": SymbolKind.INTERFACE,
                "@interface": SymbolKind.INTERFACE,
                "enum": SymbolKind.ENUM,
            }.get(m.group("what"), SymbolKind.CLASS),
        ),
        SymbolRule(
            kind=SymbolKind.METHOD,
            pattern=re.compile(
                rf"^[ \t]+{_JAVA_MODIFIERS}(?:<[^>\n]*>[ \t]+)?(?P<rtype>[\w.$]+(?:<[^>\n]*>)?(?:\[\])*)[ \t]+(?P<name>\w+)[ \t]*(?P<signature>\([^)]*\))[ \t]*(?:throws[ \t]+[\w., ]+)?[ \t]*[{{;]",
                _M,
            ),
            requires_scope=True,
            reject=lambda m: m.group("rtype") in _JAVA_NOT_TYPES,
        ),
        SymbolRule(
            kind=SymbolKind.METHOD,
            pattern=re.compile(
                r"^[ \t]+(?P<modifiers>(?:(?:public|private|protected)[ \t]+)*)(?P<name>[A-Z]\w*)[ \t]*(?P<signature>\([^)]*\))[ \t]*(?:throws[ \t]+[\w., ]+)?[ \t]*\{",
                _M,
            ),
            requires_scope=True,
        ),
    ),
    imports=(
        ImportRule(
            re.compile(r"^[ \t]*import[ \t]+(?:static[ \t]+)?(?P<module>[\w.]+(?:\.\*)?)[ \t]*;", _M),
            _single_import,
        ),
    ),
    visibility=_java_visibility,
    char_literals=True,
    skip_names=frozenset({"if", "for", "while", "switch", "catch", "return", "new", "else", "synchronized"}),
)

_RUST_VIS = r"(?P<vis>pub(?:\([^)]*\))?[ \t]+)?"

_RUST = RegexRules(
    symbols=(
        SymbolRule(
            kind=SymbolKind.TYPE,
            pattern=re.compile(
                r"^[ \t]*impl(?:<[^>\n]*>)?[ \t]+(?:[\w:]+(?:<[^>\n]*>)?[ \t]+for[ \t]+)?(?P<name>\w+)",
                _M,
            ),
            container=True,
            emit=False,
        ),
        SymbolRule(
            kind=SymbolKind.INTERFACE,
            pattern=re.compile(rf"^[ \t]*{_RUST_VIS}(?:unsafe[ \t]+)?trait[ \t]+(?P<name>\w+)", _M),
            container=True,
        ),
        SymbolRule(
            kind=SymbolKind.FUNCTION,
            pattern=re.compile(
                rf"^[ \t]*{_RUST_VIS}(?:(?:const|async|unsafe|extern(?:[ \t]+\"[^\"]*\")?)[ \t]+)*fn[ \t]+(?P<name>\w+)[ \t]*(?:<[^>\n]*>)?[ \t]*(?P<signature>\([^)]*\)(?:[ \t]*->[ \t]*[^{{;\n]+)?)",
                _M,
            ),
            member_kind=SymbolKind.METHOD,
        ),
        SymbolRule(
            kind=SymbolKind.STRUCT,
            pattern=re.compile(
                rf"^[ \t]*{_RUST_VIS}(?P<what>struct|enum|union|type|const|static|mod)[ \t]+(?:mut[ \t]+)?(?P<name>\w+)",
                _M,
            ),
            resolve_kind=lambda m: {
                "struct": SymbolKind.STRUCT,
                "union": SymbolKind.STRUCT,
                "enum": SymbolKind.ENUM,
                "type": SymbolKind.TYPE,
                "const": SymbolKind.CONSTANT,
                "static": SymbolKind.VARIABLE,
                "mod": SymbolKind.MODULE,
            }[m.group("what")],
        ),
    ),
    imports=(
        ImportRule(re.compile(r"^[ \t]*(?:pub(?:\([^)]*\))?[ \t]+)?use[ \t]+(?P<module>[^;]+);", _M), _rust_use),
        ImportRule(
            re.compile(r"^[ \t]*extern[ \t]+crate[ \t]+(?P<module>\w+)(?:[ \t]+as[ \t]+(?P<alias>\w+))?", _M),
            _single_import,
        ),
    ),
    visibility=_rust_visibility,
    char_literals=True,
    quotes=('"', "'"),
)

_DART = RegexRules(
    symbols=(
        SymbolRule(
            kind=SymbolKind.CLASS,
            pattern=re.compile(
                r"^[ \t]*(?:(?:abstract|sealed|base|final|interface)[ \t]+)*(?:class|mixin)[ \t]+(?P<name>\w+)(?:<[^{\n]*?>)?(?:[ \t]+extends[ \t]+(?P<bases>\w+))?",
                _M,
            ),
            container=True,
        ),
        SymbolRule(
            kind=SymbolKind.ENUM,
            pattern=re.compile(r"^[ \t]*enum[ \t]+(?P<name>\w+)", _M),
        ),
        SymbolRule(
            kind=SymbolKind.TYPE,
            pattern=re.compile(r"^[ \t]*typedef[ \t]+(?P<name>\w+)", _M),
        ),
        SymbolRule(
            kind=SymbolKind.FUNCTION,
            pattern=re.compile(
                r"^[ \t]*(?:(?:static|external|abstract|factory)[ \t]+)*(?:[\w<>?,\[\]]+[ \t]+)?(?:get[ \t]+|set[ \t]+)?(?P<name>[A-Za-z_]\w*(?:\.\w+)?)[ \t]*(?:<[^>\n]*>)?[ \t]*(?P<signature>\([^)]*\))[ \t]*(?:async\*?|sync\*)?[ \t]*(?:\{|=>)",
                _M,
            ),
            member_kind=SymbolKind.METHOD,
        ),
    ),
    imports=(
        ImportRule(
            re.compile(
                r"^[ \t]*(?:import|export|part)[ \t]+['\"](?P<module>[^'\"]+)['\"](?:[ \t]+(?:deferred[ \t]+)?as[ \t]+(?P<alias>\w+))?",
                _M,
            ),
            _single_import,
        ),
    ),
    visibility=_underscore_visibility,
    skip_names=frozenset({"if", "for", "while", "switch", "catch", "return", "else"}),
)

_CUE = RegexRules(
    symbols=(
        SymbolRule(
            kind=SymbolKind.TYPE,
            pattern=re.compile(r"^[ \t]*(?P<name>#[A-Za-z_$][\w$]*)[ \t]*[?!]?:", _M),
        ),
        SymbolRule(
            kind=SymbolKind.FIELD,
            pattern=re.compile(r"^(?P<name>[A-Za-z_$][\w$]*)[ \t]*[?!]?:(?!=)", _M),
        ),
    ),
    imports=(
        ImportRule(
            re.compile(r"^import[ \t]+(?:(?P<alias>\w+)[ \t]+)?\"(?P<module>[^\"]+)\"", _M),
            _single_import,
        ),
        ImportRule(
            re.compile(r"^import[ \t]*\((?P<body>[^)]*)\)", _M),
            _block_import_builder(_GO_IMPORT_ITEM),
        ),
    ),
    visibility=_cue_visibility,
    block_comment=None,
    quotes=('"', "'"),
    triple_quotes=True,
    skip_names=frozenset({"package", "import", "let"}),
)

REGEX_RULES: Dict[Language, RegexRules] = {
    Language.PYTHON: _PYTHON,
    Language.GO: _GO,
    Language.JAVASCRIPT: _JAVASCRIPT,
    Language.TYPESCRIPT: _TYPESCRIPT,
    Language.JAVA: _JAVA,
    Language.RUST: _RUST,
    Language.DART: _DART,
    Language.CUE: _CUE,
}


def regex_languages() -> Tuple[Language, ...]:
    """Languages with a regex rule table."""
    return tuple(REGEX_RULES)


__all__ = ["REGEX_RULES", "RegexParser", "RegexRules", "ImportRule", "SymbolRule", "regex_languages"]
