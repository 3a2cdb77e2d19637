"""Tree-sitter powered syntax tree parser."""

from __future__ import annotations

import importlib
import re
import threading
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from .base import Parser
from ..errors import BackendUnavailable, ParseError
from ..language import Language
from ..logging import get_logger
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

try:  # pragma: no cover - optional dependency
    import tree_sitter

    TREE_SITTER_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    tree_sitter = None  # type: ignore[assignment]
    TREE_SITTER_AVAILABLE = False

logger = get_logger("parsers.tree_sitter")

Node = Any

# grammar key -> (module, function returning the language pointer)
GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "python": ("tree_sitter_python", "language"),
    "go": ("tree_sitter_go", "language"),
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "java": ("tree_sitter_java", "language"),
    "rust": ("tree_sitter_rust", "language"),
}

_grammar_cache: Dict[str, Any] = {}
_grammar_lock = threading.Lock()


def load_grammar(key: str) -> Any:
    """Return the compiled grammar for ``key``, loading it once per process."""
    cached = _grammar_cache.get(key)
    if cached is not None:
        return cached
    if not TREE_SITTER_AVAILABLE:
        raise BackendUnavailable("tree-sitter is not installed")
    module_info = GRAMMAR_MODULES.get(key)
    if module_info is None:
        raise BackendUnavailable(f"No tree-sitter grammar known for {key}")
    module_name, func_name = module_info
    with _grammar_lock:
        cached = _grammar_cache.get(key)
        if cached is not None:
            return cached
        try:
            module = importlib.import_module(module_name)
            grammar = tree_sitter.Language(getattr(module, func_name)())
        except (ImportError, AttributeError, TypeError, ValueError) as exc:
            raise BackendUnavailable(
                f"Grammar package {module_name.replace('_', '-')} is not loadable: {exc}"
            ) from exc
        _grammar_cache[key] = grammar
        logger.debug("Loaded tree-sitter grammar %s", key)
    return grammar


@dataclass(frozen=True)
class _Decl:
    node: Node
    name: str
    kind: SymbolKind
    member_kind: Optional[SymbolKind] = None
    container: bool = False
    opens_scope: bool = True
    emit: bool = True
    parent: Optional[str] = None
    signature: Optional[str] = None
    visibility: Optional[str] = None
    bases: Tuple[str, ...] = ()


@dataclass(frozen=True)
class _Scope:
    name: str
    qualified: str
    container: bool
    function: Optional[str]


DeclHandler = Callable[["_TreeWalker", Node, Optional[_Scope]], List[_Decl]]
ImportHandler = Callable[["_TreeWalker", Node], List[Import]]
CallTarget = Callable[["_TreeWalker", Node], Optional[str]]
DocExtractor = Callable[["_TreeWalker", Node], Optional[str]]


@dataclass(frozen=True)
class _GrammarSpec:
    grammar: str
    declarations: Dict[str, DeclHandler]
    imports: Dict[str, ImportHandler]
    calls: Dict[str, CallTarget]
    doc: DocExtractor


class _TreeWalker:
    """Collects symbols, imports and relations from one syntax tree."""

    def __init__(self, source: bytes, path: str, spec: _GrammarSpec) -> None:
        self.source = source
        self.path = path
        self.spec = spec
        self.symbols: List[Symbol] = []
        self.imports: List[Import] = []
        self.relations: List[Relation] = []
        self._calls: set[Tuple[str, str]] = set()

    def text(self, node: Optional[Node]) -> str:
        if node is None:
            return ""
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    def field_text(self, node: Node, field_name: str) -> Optional[str]:
        child = node.child_by_field_name(field_name)
        if child is None:
            return None
        return self.text(child) or None

    def walk(self, root: Node) -> None:
        # Iterative pre-order so deeply nested expressions cannot exhaust the stack.
        stack: List[Tuple[Node, Optional[_Scope]]] = [(root, None)]
        while stack:
            node, scope = stack.pop()
            child_scope = scope
            handler = self.spec.declarations.get(node.type)
            if handler is not None:
                for decl in handler(self, node, scope):
                    opened = self._record(decl, scope)
                    if opened is not None:
                        child_scope = opened
            importer = self.spec.imports.get(node.type)
            if importer is not None:
                self.imports.extend(importer(self, node))
            call_target = self.spec.calls.get(node.type)
            if call_target is not None and scope is not None and scope.function:
                self._record_call(node, scope.function, call_target(self, node))
            for child in reversed(node.children):
                stack.append((child, child_scope))

    def _record(self, decl: _Decl, scope: Optional[_Scope]) -> Optional[_Scope]:
        parent = decl.parent
        member = parent is not None
        if parent is None and scope is not None:
            parent = scope.name
            member = scope.container
        kind = decl.member_kind if member and decl.member_kind is not None else decl.kind
        qualified = f"{parent}.{decl.name}" if parent else decl.name
        line = decl.node.start_point[0] + 1

        if decl.emit:
            self.symbols.append(
                Symbol(
                    name=decl.name,
                    kind=kind,
                    path=self.path,
                    span=_span(decl.node),
                    visibility=decl.visibility,
                    signature=_collapse(decl.signature) if decl.signature else None,
                    doc=self.spec.doc(self, decl.node),
                    parent=parent,
                    tier=Tier.AST,
                )
            )
        for base in decl.bases:
            if base:
                self.relations.append(
                    Relation(kind="inherits", source=qualified, target=base, line=line)
                )
        if not decl.opens_scope:
            return None
        callable_kind = kind in (SymbolKind.FUNCTION, SymbolKind.METHOD)
        function = qualified if callable_kind else (scope.function if scope else None)
        return _Scope(
            name=decl.name,
            qualified=qualified,
            container=decl.container,
            function=function,
        )

    def _record_call(self, node: Node, source: str, target: Optional[str]) -> None:
        if not target:
            return
        target = _collapse(target)
        if len(target) > 120 or (source, target) in self._calls:
            return
        self._calls.add((source, target))
        self.relations.append(
            Relation(kind="call", source=source, target=target, line=node.start_point[0] + 1)
        )


class TreeSitterParser(Parser):
    """Walks a tree-sitter syntax tree into symbols, imports and relations."""

    tier = Tier.AST

    def __init__(self, language: Language) -> None:
        spec = _SPECS.get(language)
        if spec is None:
            raise ValueError(f"No tree-sitter support for language: {language.value}")
        self._language = language
        self._spec = spec

    @property
    def language(self) -> Language:
        return self._language

    def probe(self) -> bool:
        try:
            load_grammar(self._spec.grammar)
        except BackendUnavailable as exc:
            logger.debug("AST tier unavailable for %s: %s", self._language.value, exc)
            return False
        return True

    def parse(self, content: str, path: str) -> FileAnalysis:
        key = self._spec.grammar
        if key == "typescript" and path.lower().endswith(".tsx"):
            key = "tsx"
        try:
            grammar = load_grammar(key)
        except BackendUnavailable as exc:
            raise ParseError(str(exc)) from exc

        source = content.encode("utf-8", errors="replace")
        try:
            tree = tree_sitter.Parser(grammar).parse(source)
        except (RuntimeError, ValueError) as exc:
            raise ParseError(f"tree-sitter failed on {path}: {exc}") from exc

        walker = _TreeWalker(source, path, self._spec)
        walker.walk(tree.root_node)
        imports = sorted(walker.imports, key=lambda item: (item.line, item.module))
        return FileAnalysis(
            path=path,
            language=self._language,
            tier=Tier.AST,
            symbols=tuple(walker.symbols),
            imports=tuple(imports),
            diagnostics=tuple(_syntax_diagnostics(tree.root_node, source, path)),
            relations=tuple(walker.relations),
        )


def tree_sitter_languages() -> Tuple[Language, ...]:
    """Languages with a tree-sitter walker."""
    return tuple(_SPECS)


# ----------------------------------------------------------------------
# Shared helpers


def _span(node: Node) -> Span:
    start_row, start_col = node.start_point[0], node.start_point[1]
    end_row, end_col = node.end_point[0], node.end_point[1]
    return Span(start_row + 1, start_col, end_row + 1, end_col)


def _collapse(text: str) -> str:
    return " ".join(text.split())


def _unquote(text: str) -> str:
    return text.strip().strip("\"'`")


def _syntax_diagnostics(root: Node, source: bytes, path: str) -> List[Diagnostic]:
    if not root.has_error:
        return []
    diagnostics: List[Diagnostic] = []
    stack = [root]
    while stack:
        node = stack.pop()
        message = None
        if node.is_missing:
            message = f"missing '{node.type}'"
        elif node.type == "ERROR":
            snippet = source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")
            first_line = next((line for line in snippet.splitlines() if line.strip()), "")
            snippet = _collapse(first_line)[:40]
            message = f"syntax error near '{snippet}'" if snippet else "syntax error"
        if message is not None:
            diagnostics.append(
                Diagnostic(
                    path=path,
                    severity=Severity.ERROR,
                    message=message,
                    span=_span(node),
                    source="tree-sitter",
                )
            )
        if node.has_error:
            stack.extend(node.children)
    diagnostics.sort(key=lambda diag: (diag.span.start_line, diag.span.start_column) if diag.span else (0, 0))
    return diagnostics


_COMMENT_TYPES = frozenset({"comment", "line_comment", "block_comment"})
_WRAPPER_TYPES = frozenset(
    {
        "export_statement",
        "decorated_definition",
        "ambient_declaration",
        "lexical_declaration",
        "variable_declaration",
        "type_declaration",
        "const_declaration",
        "var_declaration",
    }
)
_COMMENT_PREFIX = re.compile(r"^(?:///|//!|//|/\*\*|/\*|\*)")


def _leading_comment(walker: _TreeWalker, node: Node) -> Optional[str]:
    target = node
    while target.parent is not None and target.parent.type in _WRAPPER_TYPES:
        target = target.parent
    collected: List[str] = []
    expected_row = target.start_point[0]
    sibling = target.prev_sibling
    # Java and Rust attach annotations/attributes before the doc comment.
    while sibling is not None and sibling.type in ("attribute_item", "annotation", "marker_annotation"):
        expected_row = sibling.start_point[0]
        sibling = sibling.prev_sibling
    while sibling is not None and sibling.type in _COMMENT_TYPES:
        if sibling.end_point[0] < expected_row - 1:
            break
        for raw in reversed(walker.text(sibling).splitlines()):
            text = _COMMENT_PREFIX.sub("", raw.strip())
            if text.endswith("*/"):
                text = text[:-2]
            text = text.strip(" *")
            if text:
                collected.append(text)
        expected_row = sibling.start_point[0]
        sibling = sibling.prev_sibling
    if not collected:
        return None
    return " ".join(reversed(collected))


_TYPE_REFERENCES = frozenset(
    {
        "identifier",
        "type_identifier",
        "member_expression",
        "nested_type_identifier",
        "scoped_type_identifier",
        "scoped_identifier",
        "generic_type",
    }
)


def _base_name(walker: _TreeWalker, node: Node) -> str:
    if node.type == "generic_type" and node.named_children:
        return walker.text(node.named_children[0])
    return walker.text(node)


def _bases_in(walker: _TreeWalker, node: Node, clauses: frozenset[str]) -> List[str]:
    names: List[str] = []
    for child in node.named_children:
        if child.type in _TYPE_REFERENCES:
            names.append(_base_name(walker, child))
        elif child.type in clauses:
            names.extend(_bases_in(walker, child, clauses))
    return names


def _clause_bases(walker: _TreeWalker, node: Node, clauses: frozenset[str]) -> Tuple[str, ...]:
    names: List[str] = []
    for child in node.named_children:
        if child.type in clauses:
            names.extend(_bases_in(walker, child, clauses))
    return tuple(names)


def _function_call(walker: _TreeWalker, node: Node) -> Optional[str]:
    return walker.field_text(node, "function")


# ----------------------------------------------------------------------
# Python


def _underscore_visibility(name: str) -> str:
    if name.startswith("__") and name.endswith("__"):
        return "public"
    return "private" if name.startswith("_") else "public"


def _py_function(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    params = walker.field_text(node, "parameters") or ""
    returns = walker.field_text(node, "return_type")
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.FUNCTION,
            member_kind=SymbolKind.METHOD,
            signature=f"{params} -> {returns}" if returns else params or None,
            visibility=_underscore_visibility(name),
        )
    ]


def _py_class(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    bases: List[str] = []
    superclasses = node.child_by_field_name("superclasses")
    if superclasses is not None:
        for arg in superclasses.named_children:
            if arg.type in ("identifier", "attribute"):
                base = walker.text(arg)
                if base != "object":
                    bases.append(base)
            elif arg.type == "subscript":
                bases.append(walker.field_text(arg, "value") or "")
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.CLASS,
            container=True,
            visibility=_underscore_visibility(name),
            bases=tuple(bases),
        )
    ]


def _py_assignment(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    if node.parent is None or node.parent.type != "module" or not node.named_children:
        return []
    assignment = node.named_children[0]
    if assignment.type != "assignment":
        return []
    left = assignment.child_by_field_name("left")
    if left is None or left.type != "identifier":
        return []
    name = walker.text(left)
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.CONSTANT if name.isupper() else SymbolKind.VARIABLE,
            opens_scope=False,
            visibility=_underscore_visibility(name),
        )
    ]


def _py_imports(walker: _TreeWalker, node: Node) -> List[Import]:
    line = node.start_point[0] + 1
    if node.type == "import_statement":
        imports: List[Import] = []
        for item in node.children_by_field_name("name"):
            if item.type == "aliased_import":
                imports.append(
                    Import(
                        module=walker.field_text(item, "name") or "",
                        line=line,
                        alias=walker.field_text(item, "alias"),
                    )
                )
            else:
                imports.append(Import(module=walker.text(item), line=line))
        return imports

    if node.type == "future_import_statement":
        module = "__future__"
    else:
        module = walker.field_text(node, "module_name") or ""
    names: List[str] = []
    for item in node.children_by_field_name("name"):
        if item.type == "aliased_import":
            names.append(walker.field_text(item, "name") or "")
        else:
            names.append(walker.text(item))
    if any(child.type == "wildcard_import" for child in node.named_children):
        names.append("*")
    return [Import(module=module, line=line, names=tuple(name for name in names if name))]


def _py_docstring(walker: _TreeWalker, node: Node) -> Optional[str]:
    body = node.child_by_field_name("body")
    if body is None or not body.named_children:
        return None
    first = body.named_children[0]
    if first.type != "expression_statement" or not first.named_children:
        return None
    literal = first.named_children[0]
    if literal.type != "string":
        return None
    text = walker.text(literal).lstrip("rRbBuUfF")
    for quote in ('"""', "'''", '"', "'"):
        if text.startswith(quote) and text.endswith(quote) and len(text) >= 2 * len(quote):
            text = text[len(quote) : -len(quote)]
            break
    return _collapse(text) or None


_PYTHON_SPEC = _GrammarSpec(
    grammar="python",
    declarations={
        "function_definition": _py_function,
        "class_definition": _py_class,
        "expression_statement": _py_assignment,
    },
    imports={
        "import_statement": _py_imports,
        "import_from_statement": _py_imports,
        "future_import_statement": _py_imports,
    },
    calls={"call": _function_call},
    doc=_py_docstring,
)


# ----------------------------------------------------------------------
# Go


def _go_visibility(name: str) -> str:
    return "public" if name[:1].isupper() else "private"


def _go_signature(walker: _TreeWalker, node: Node) -> Optional[str]:
    params = walker.field_text(node, "parameters") or ""
    result = walker.field_text(node, "result")
    return f"{params} {result}" if result else params or None


def _go_function(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.FUNCTION,
            signature=_go_signature(walker, node),
            visibility=_go_visibility(name),
        )
    ]


def _go_receiver_type(walker: _TreeWalker, node: Node) -> Optional[str]:
    receiver = node.child_by_field_name("receiver")
    if receiver is None:
        return None
    for param in receiver.named_children:
        if param.type != "parameter_declaration":
            continue
        type_text = walker.field_text(param, "type") or ""
        type_text = re.sub(r"\[.*$", "", type_text.lstrip("*( ").rstrip(") "))
        return type_text or None
    return None


def _go_method(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.METHOD,
            parent=_go_receiver_type(walker, node),
            signature=_go_signature(walker, node),
            visibility=_go_visibility(name),
        )
    ]


_GO_TYPE_KINDS = {"struct_type": SymbolKind.STRUCT, "interface_type": SymbolKind.INTERFACE}


def _go_types(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    decls: List[_Decl] = []
    for spec in node.named_children:
        if spec.type not in ("type_spec", "type_alias"):
            continue
        name = walker.field_text(spec, "name")
        if not name:
            continue
        type_node = spec.child_by_field_name("type")
        kind = _GO_TYPE_KINDS.get(type_node.type, SymbolKind.TYPE) if type_node is not None else SymbolKind.TYPE
        decls.append(
            _Decl(
                node=spec,
                name=name,
                kind=kind,
                opens_scope=False,
                visibility=_go_visibility(name),
            )
        )
    return decls


def _go_values(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    if node.parent is None or node.parent.type != "source_file":
        return []
    kind = SymbolKind.CONSTANT if node.type == "const_declaration" else SymbolKind.VARIABLE
    specs: List[Node] = []
    for child in node.named_children:
        if child.type in ("const_spec", "var_spec"):
            specs.append(child)
        elif child.type == "var_spec_list":
            specs.extend(item for item in child.named_children if item.type == "var_spec")
    decls: List[_Decl] = []
    for spec in specs:
        for ident in spec.children_by_field_name("name"):
            name = walker.text(ident)
            if not name or name == "_":
                continue
            decls.append(
                _Decl(node=spec, name=name, kind=kind, opens_scope=False, visibility=_go_visibility(name))
            )
    return decls


def _go_imports(walker: _TreeWalker, node: Node) -> List[Import]:
    specs: List[Node] = []
    for child in node.named_children:
        if child.type == "import_spec":
            specs.append(child)
        elif child.type == "import_spec_list":
            specs.extend(item for item in child.named_children if item.type == "import_spec")
    imports: List[Import] = []
    for spec in specs:
        module = _unquote(walker.field_text(spec, "path") or "")
        if module:
            imports.append(
                Import(
                    module=module,
                    line=spec.start_point[0] + 1,
                    alias=walker.field_text(spec, "name"),
                )
            )
    return imports


_GO_SPEC = _GrammarSpec(
    grammar="go",
    declarations={
        "function_declaration": _go_function,
        "method_declaration": _go_method,
        "type_declaration": _go_types,
        "const_declaration": _go_values,
        "var_declaration": _go_values,
    },
    imports={"import_declaration": _go_imports},
    calls={"call_expression": _function_call},
    doc=_leading_comment,
)


# ----------------------------------------------------------------------
# JavaScript and TypeScript

_JS_HERITAGE = frozenset({"class_heritage", "extends_clause", "implements_clause", "extends_type_clause"})
_JS_MODULE_LEVEL = frozenset({"program", "export_statement", "ambient_declaration"})


def _js_module_visibility(node: Node) -> str:
    parent = node.parent
    while parent is not None and parent.type == "ambient_declaration":
        parent = parent.parent
    return "public" if parent is not None and parent.type == "export_statement" else "private"


def _js_member_visibility(walker: _TreeWalker, node: Node, name: str) -> str:
    for child in node.children:
        if child.type == "accessibility_modifier":
            return walker.text(child)
    return "private" if name.startswith("#") else "public"


def _js_signature(walker: _TreeWalker, node: Node) -> Optional[str]:
    params = walker.field_text(node, "parameters") or ""
    returns = walker.field_text(node, "return_type")
    return f"{params}{returns}" if returns else params or None


def _js_function(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.FUNCTION,
            signature=_js_signature(walker, node),
            visibility=_js_module_visibility(node) if scope is None else None,
        )
    ]


def _js_class(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    kind = SymbolKind.INTERFACE if node.type == "interface_declaration" else SymbolKind.CLASS
    return [
        _Decl(
            node=node,
            name=name,
            kind=kind,
            container=True,
            visibility=_js_module_visibility(node),
            bases=_clause_bases(walker, node, _JS_HERITAGE),
        )
    ]


def _js_method(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.METHOD,
            signature=_js_signature(walker, node),
            visibility=_js_member_visibility(walker, node, name),
        )
    ]


_JS_FUNCTION_VALUES = frozenset({"arrow_function", "function_expression", "function", "generator_function"})


def _js_variables(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    if node.parent is None or node.parent.type not in _JS_MODULE_LEVEL:
        return []
    constant = bool(node.children) and walker.text(node.children[0]) == "const"
    visibility = _js_module_visibility(node)
    decls: List[_Decl] = []
    for declarator in node.named_children:
        if declarator.type != "variable_declarator":
            continue
        name_node = declarator.child_by_field_name("name")
        if name_node is None or name_node.type != "identifier":
            continue
        name = walker.text(name_node)
        value = declarator.child_by_field_name("value")
        if value is not None and value.type in _JS_FUNCTION_VALUES:
            decls.append(
                _Decl(
                    node=declarator,
                    name=name,
                    kind=SymbolKind.FUNCTION,
                    signature=_js_signature(walker, value),
                    visibility=visibility,
                )
            )
        else:
            decls.append(
                _Decl(
                    node=declarator,
                    name=name,
                    kind=SymbolKind.CONSTANT if constant else SymbolKind.VARIABLE,
                    opens_scope=False,
                    visibility=visibility,
                )
            )
    return decls


def _ts_named(kind: SymbolKind) -> DeclHandler:
    def _handler(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
        name = walker.field_text(node, "name")
        if not name:
            return []
        return [
            _Decl(
                node=node,
                name=name,
                kind=kind,
                opens_scope=False,
                visibility=_js_module_visibility(node),
            )
        ]

    return _handler


def _ts_method_signature(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    if scope is None:
        return []
    return [replace(decl, opens_scope=False) for decl in _js_method(walker, node, scope)]


def _js_imports(walker: _TreeWalker, node: Node) -> List[Import]:
    source = node.child_by_field_name("source")
    if source is None:
        return []
    module = _unquote(walker.text(source))
    line = node.start_point[0] + 1
    alias: Optional[str] = None
    names: List[str] = []
    for clause in node.named_children:
        if clause.type != "import_clause":
            continue
        for item in clause.named_children:
            if item.type == "identifier":
                names.append(walker.text(item))
            elif item.type == "namespace_import":
                idents = [child for child in item.named_children if child.type == "identifier"]
                alias = walker.text(idents[0]) if idents else None
            elif item.type == "named_imports":
                for spec in item.named_children:
                    if spec.type == "import_specifier":
                        spec_name = walker.field_text(spec, "name")
                        if spec_name:
                            names.append(spec_name)
    return [Import(module=module, line=line, alias=alias, names=tuple(names))]


def _js_require(walker: _TreeWalker, node: Node) -> List[Import]:
    function = node.child_by_field_name("function")
    if function is None or walker.text(function) != "require":
        return []
    arguments = node.child_by_field_name("arguments")
    if arguments is None or not arguments.named_children:
        return []
    first = arguments.named_children[0]
    if first.type != "string":
        return []
    return [Import(module=_unquote(walker.text(first)), line=node.start_point[0] + 1)]


def _js_call(walker: _TreeWalker, node: Node) -> Optional[str]:
    target = walker.field_text(node, "function")
    if target in (None, "require", "import"):
        return None
    return target


_JS_DECLARATIONS: Dict[str, DeclHandler] = {
    "function_declaration": _js_function,
    "generator_function_declaration": _js_function,
    "class_declaration": _js_class,
    "method_definition": _js_method,
    "lexical_declaration": _js_variables,
    "variable_declaration": _js_variables,
}

_JS_IMPORTS: Dict[str, ImportHandler] = {
    "import_statement": _js_imports,
    "export_statement": _js_imports,
    "call_expression": _js_require,
}

_JAVASCRIPT_SPEC = _GrammarSpec(
    grammar="javascript",
    declarations=dict(_JS_DECLARATIONS),
    imports=_JS_IMPORTS,
    calls={"call_expression": _js_call},
    doc=_leading_comment,
)

_TYPESCRIPT_SPEC = _GrammarSpec(
    grammar="typescript",
    declarations={
        **_JS_DECLARATIONS,
        "function_signature": _js_function,
        "abstract_class_declaration": _js_class,
        "interface_declaration": _js_class,
        "method_signature": _ts_method_signature,
        "abstract_method_signature": _ts_method_signature,
        "type_alias_declaration": _ts_named(SymbolKind.TYPE),
        "enum_declaration": _ts_named(SymbolKind.ENUM),
    },
    imports=_JS_IMPORTS,
    calls={"call_expression": _js_call},
    doc=_leading_comment,
)


# ----------------------------------------------------------------------
# Java

_JAVA_HERITAGE = frozenset({"superclass", "super_interfaces", "extends_interfaces", "type_list"})
_JAVA_TYPE_KINDS = {
    "class_declaration": SymbolKind.CLASS,
    "record_declaration": SymbolKind.CLASS,
    "interface_declaration": SymbolKind.INTERFACE,
    "annotation_type_declaration": SymbolKind.INTERFACE,
    "enum_declaration": SymbolKind.ENUM,
}


def _java_modifiers(walker: _TreeWalker, node: Node) -> set[str]:
    for child in node.children:
        if child.type == "modifiers":
            return set(walker.text(child).split())
    return set()


def _java_visibility(modifiers: set[str]) -> str:
    for keyword in ("public", "private", "protected"):
        if keyword in modifiers:
            return keyword
    return "internal"


def _java_type(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=_JAVA_TYPE_KINDS[node.type],
            container=True,
            visibility=_java_visibility(_java_modifiers(walker, node)),
            bases=_clause_bases(walker, node, _JAVA_HERITAGE),
        )
    ]


def _java_method(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.METHOD,
            signature=walker.field_text(node, "parameters"),
            visibility=_java_visibility(_java_modifiers(walker, node)),
        )
    ]


def _java_fields(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    modifiers = _java_modifiers(walker, node)
    kind = SymbolKind.CONSTANT if {"static", "final"} <= modifiers else SymbolKind.FIELD
    decls: List[_Decl] = []
    for declarator in node.children_by_field_name("declarator"):
        name = walker.field_text(declarator, "name")
        if name:
            decls.append(
                _Decl(
                    node=node,
                    name=name,
                    kind=kind,
                    opens_scope=False,
                    visibility=_java_visibility(modifiers),
                )
            )
    return decls


def _java_imports(walker: _TreeWalker, node: Node) -> List[Import]:
    module = ""
    wildcard = False
    for child in node.named_children:
        if child.type in ("scoped_identifier", "identifier"):
            module = walker.text(child)
        elif child.type == "asterisk":
            wildcard = True
    if not module:
        return []
    if wildcard:
        module = f"{module}.*"
    return [Import(module=module, line=node.start_point[0] + 1)]


def _java_call(walker: _TreeWalker, node: Node) -> Optional[str]:
    name = walker.field_text(node, "name")
    if not name:
        return None
    receiver = walker.field_text(node, "object")
    return f"{receiver}.{name}" if receiver else name


_JAVA_SPEC = _GrammarSpec(
    grammar="java",
    declarations={
        **{node_type: _java_type for node_type in _JAVA_TYPE_KINDS},
        "method_declaration": _java_method,
        "constructor_declaration": _java_method,
        "field_declaration": _java_fields,
    },
    imports={"import_declaration": _java_imports},
    calls={"method_invocation": _java_call},
    doc=_leading_comment,
)


# ----------------------------------------------------------------------
# Rust

_RUST_ITEM_KINDS = {
    "struct_item": SymbolKind.STRUCT,
    "union_item": SymbolKind.STRUCT,
    "enum_item": SymbolKind.ENUM,
    "type_item": SymbolKind.TYPE,
    "const_item": SymbolKind.CONSTANT,
    "static_item": SymbolKind.VARIABLE,
}


def _rust_visibility(walker: _TreeWalker, node: Node) -> str:
    for child in node.children:
        if child.type == "visibility_modifier":
            return "public" if walker.text(child).strip() == "pub" else "internal"
    return "private"


def _rust_function(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    params = walker.field_text(node, "parameters") or ""
    returns = walker.field_text(node, "return_type")
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.FUNCTION,
            member_kind=SymbolKind.METHOD,
            signature=f"{params} -> {returns}" if returns else params or None,
            visibility=_rust_visibility(walker, node),
        )
    ]


def _rust_item(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(
            node=node,
            name=name,
            kind=_RUST_ITEM_KINDS[node.type],
            opens_scope=False,
            visibility=_rust_visibility(walker, node),
        )
    ]


def _rust_module(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    return [
        _Decl(node=node, name=name, kind=SymbolKind.MODULE, visibility=_rust_visibility(walker, node))
    ]


def _rust_trait(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    name = walker.field_text(node, "name")
    if not name:
        return []
    bounds = node.child_by_field_name("bounds")
    bases = tuple(_bases_in(walker, bounds, frozenset())) if bounds is not None else ()
    return [
        _Decl(
            node=node,
            name=name,
            kind=SymbolKind.INTERFACE,
            container=True,
            visibility=_rust_visibility(walker, node),
            bases=bases,
        )
    ]


def _rust_impl(walker: _TreeWalker, node: Node, scope: Optional[_Scope]) -> List[_Decl]:
    type_node = node.child_by_field_name("type")
    if type_node is None:
        return []
    trait_node = node.child_by_field_name("trait")
    return [
        _Decl(
            node=node,
            name=_base_name(walker, type_node),
            kind=SymbolKind.TYPE,
            container=True,
            emit=False,
            bases=(_base_name(walker, trait_node),) if trait_node is not None else (),
        )
    ]


def _rust_imports(walker: _TreeWalker, node: Node) -> List[Import]:
    line = node.start_point[0] + 1
    if node.type == "extern_crate_declaration":
        module = walker.field_text(node, "name")
        if not module:
            return []
        return [Import(module=module, line=line, alias=walker.field_text(node, "alias"))]
    argument = node.child_by_field_name("argument")
    if argument is None:
        return []
    if argument.type == "use_as_clause":
        return [
            Import(
                module="".join((walker.field_text(argument, "path") or "").split()),
                line=line,
                alias=walker.field_text(argument, "alias"),
            )
        ]
    return [Import(module="".join(walker.text(argument).split()), line=line)]


_RUST_SPEC = _GrammarSpec(
    grammar="rust",
    declarations={
        "function_item": _rust_function,
        "function_signature_item": _rust_function,
        **{node_type: _rust_item for node_type in _RUST_ITEM_KINDS},
        "mod_item": _rust_module,
        "trait_item": _rust_trait,
        "impl_item": _rust_impl,
    },
    imports={
        "use_declaration": _rust_imports,
        "extern_crate_declaration": _rust_imports,
    },
    calls={"call_expression": _function_call},
    doc=_leading_comment,
)


_SPECS: Dict[Language, _GrammarSpec] = {
    Language.PYTHON: _PYTHON_SPEC,
    Language.GO: _GO_SPEC,
    Language.JAVASCRIPT: _JAVASCRIPT_SPEC,
    Language.TYPESCRIPT: _TYPESCRIPT_SPEC,
    Language.JAVA: _JAVA_SPEC,
    Language.RUST: _RUST_SPEC,
}


__all__ = [
    "GRAMMAR_MODULES",
    "TREE_SITTER_AVAILABLE",
    "TreeSitterParser",
    "load_grammar",
    "tree_sitter_languages",
]
