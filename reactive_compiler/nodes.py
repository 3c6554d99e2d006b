"""Tree-sitter node helpers shared by the compiler passes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator

FUNCTION_TYPES: frozenset[str] = frozenset(
    {
        "arrow_function",
        "function_expression",
        "function",
        "generator_function",
        "function_declaration",
        "generator_function_declaration",
        "method_definition",
    }
)

FUNCTION_LITERAL_TYPES: frozenset[str] = frozenset(
    {"arrow_function", "function_expression", "function", "generator_function"}
)

BLOCK_SCOPE_TYPES: frozenset[str] = frozenset(
    {"program", "statement_block", "class_static_block", "switch_body"}
)

JSX_ELEMENT_TYPES: frozenset[str] = frozenset(
    {"jsx_element", "jsx_self_closing_element"}
)

JSX_TAG_OWNER_TYPES: frozenset[str] = frozenset(
    {"jsx_opening_element", "jsx_closing_element", "jsx_self_closing_element"}
)

CHAIN_TYPES: frozenset[str] = frozenset(
    {"member_expression", "subscript_expression", "non_null_expression"}
)

CLASS_TYPES: frozenset[str] = frozenset(
    {"class_declaration", "abstract_class_declaration", "class"}
)

TYPE_DECLARATION_TYPES: frozenset[str] = frozenset(
    {
        "interface_declaration",
        "type_alias_declaration",
        "class_declaration",
        "abstract_class_declaration",
        "enum_declaration",
    }
)


# ── basic traversal ──────────────────────────────────────────────


def same(a, b) -> bool:
    if a is None or b is None:
        return False
    return (a.start_byte, a.end_byte, a.type) == (b.start_byte, b.end_byte, b.type)


def contains(outer, inner) -> bool:
    return outer.start_byte <= inner.start_byte and inner.end_byte <= outer.end_byte


def walk(node) -> Iterator[Any]:
    """Pre-order traversal of *node* and all its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def ancestors(node) -> Iterator[Any]:
    current = node.parent
    while current is not None:
        yield current
        current = current.parent


def first_ancestor(node, types: frozenset[str]):
    return next((a for a in ancestors(node) if a.type in types), None)


def field(node, name: str):
    return node.child_by_field_name(name) if node is not None else None


def first_field(node, *names: str):
    """First of the named fields present on *node*."""
    for name in names:
        value = field(node, name)
        if value is not None:
            return value
    return None


def is_field(parent, name: str, child) -> bool:
    return same(field(parent, name), child)


def unwrap_parens(node):
    while node is not None and node.type == "parenthesized_expression":
        inner = [c for c in node.named_children if c.type != "comment"]
        if not inner:
            return node
        node = inner[0]
    return node


def named_children(node) -> list:
    return [c for c in node.named_children if c.type != "comment"]


def function_parameters(fn) -> list:
    """Parameter nodes of a function literal, in order."""
    single = field(fn, "parameter")
    if single is not None:
        return [single]
    params = field(fn, "parameters")
    if params is None:
        return []
    return named_children(params)


def parameter_name(param) -> str:
    """Simple name of a parameter node; empty for destructuring patterns."""
    if param.type == "identifier":
        return param.text.decode("utf-8")
    pattern = field(param, "pattern")
    if pattern is not None and pattern.type == "identifier":
        return pattern.text.decode("utf-8")
    return ""


# ── edits ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Edit:
    """Replace source bytes ``[start, end)`` with *text*; ``start == end`` inserts."""

    start: int
    end: int
    text: str


def apply_edits(source: bytes, edits: list[Edit], base: int = 0) -> bytes:
    """Apply non-overlapping *edits* to *source*, whose first byte sits at *base*."""
    ordered = sorted(edits, key=lambda e: (e.start, e.end))
    parts: list[bytes] = []
    cursor = base
    for edit in ordered:
        if edit.start < cursor:
            raise ValueError(f"Overlapping edit at byte {edit.start}")
        parts.append(source[cursor - base : edit.start - base])
        parts.append(edit.text.encode("utf-8"))
        cursor = edit.end
    parts.append(source[cursor - base :])
    return b"".join(parts)


def render(source: bytes, node, edits: list[Edit]) -> str:
    """Text of *node* with the edits that fall inside it applied."""
    inner = [e for e in edits if node.start_byte <= e.start and e.end <= node.end_byte]
    segment = source[node.start_byte : node.end_byte]
    return apply_edits(segment, inner, base=node.start_byte).decode("utf-8")


# ── scopes & bindings ────────────────────────────────────────────


@dataclass(frozen=True)
class Binding:
    """A name introduced by a declaration."""

    name: str
    node: Any  # identifier inside the declaring pattern
    declaration: Any  # declarator / parameter / function / class / import specifier
    kind: str


def pattern_names(pattern) -> list:
    """Identifier nodes bound by a (possibly destructuring) pattern."""
    if pattern is None:
        return []
    ptype = pattern.type
    if ptype in ("identifier", "shorthand_property_identifier_pattern"):
        return [pattern]
    if ptype == "pair_pattern":
        return pattern_names(field(pattern, "value"))
    if ptype in ("assignment_pattern", "object_assignment_pattern"):
        return pattern_names(field(pattern, "left"))
    if ptype in ("object_pattern", "array_pattern", "rest_pattern"):
        found = []
        for child in named_children(pattern):
            found.extend(pattern_names(child))
        return found
    if ptype in ("required_parameter", "optional_parameter"):
        return pattern_names(field(pattern, "pattern"))
    return []


def _parameter_bindings(fn) -> list[Binding]:
    bindings = []
    for param in function_parameters(fn):
        for ident in pattern_names(param):
            bindings.append(
                Binding(ident.text.decode("utf-8"), ident, param, "parameter")
            )
    return bindings


def _import_bindings(stmt) -> list[Binding]:
    bindings = []
    clause = next((c for c in stmt.named_children if c.type == "import_clause"), None)
    if clause is None:
        return bindings
    for child in clause.named_children:
        if child.type == "identifier":
            bindings.append(Binding(child.text.decode("utf-8"), child, clause, "import"))
        elif child.type == "namespace_import":
            ident = next((c for c in child.named_children if c.type == "identifier"), None)
            if ident is not None:
                bindings.append(
                    Binding(ident.text.decode("utf-8"), ident, child, "import")
                )
        elif child.type == "named_imports":
            for spec in child.named_children:
                if spec.type != "import_specifier":
                    continue
                local = first_field(spec, "alias", "name")
                if local is not None:
                    bindings.append(
                        Binding(local.text.decode("utf-8"), local, spec, "import")
                    )
    return bindings


def statement_bindings(stmt) -> list[Binding]:
    """Names a statement introduces into its enclosing block."""
    stype = stmt.type
    if stype in ("lexical_declaration", "variable_declaration"):
        bindings = []
        for declarator in stmt.named_children:
            if declarator.type != "variable_declarator":
                continue
            for ident in pattern_names(field(declarator, "name")):
                bindings.append(
                    Binding(ident.text.decode("utf-8"), ident, declarator, "variable")
                )
        return bindings
    if stype in ("function_declaration", "generator_function_declaration"):
        name = field(stmt, "name")
        return [Binding(name.text.decode("utf-8"), name, stmt, "function")] if name else []
    if stype in ("class_declaration", "abstract_class_declaration"):
        name = field(stmt, "name")
        return [Binding(name.text.decode("utf-8"), name, stmt, "class")] if name else []
    if stype == "export_statement":
        declaration = field(stmt, "declaration")
        return statement_bindings(declaration) if declaration is not None else []
    if stype == "ambient_declaration":
        found = []
        for child in stmt.named_children:
            found.extend(statement_bindings(child))
        return found
    if stype == "import_statement":
        return _import_bindings(stmt)
    return []


def scope_bindings(scope) -> list[Binding]:
    """Bindings introduced directly by *scope* (not by nested scopes)."""
    stype = scope.type
    if stype in FUNCTION_TYPES:
        bindings = _parameter_bindings(scope)
        name = field(scope, "name")
        if stype in FUNCTION_LITERAL_TYPES and name is not None:
            bindings.append(Binding(name.text.decode("utf-8"), name, scope, "function"))
        return bindings
    if stype in BLOCK_SCOPE_TYPES:
        found = []
        for child in scope.named_children:
            if child.type == "switch_case":
                for stmt in child.named_children:
                    found.extend(statement_bindings(stmt))
            else:
                found.extend(statement_bindings(child))
        return found
    if stype == "for_statement":
        init = field(scope, "initializer")
        return statement_bindings(init) if init is not None else []
    if stype == "for_in_statement":
        if field(scope, "kind") is None:
            return []
        left = field(scope, "left")
        return [
            Binding(ident.text.decode("utf-8"), ident, scope, "variable")
            for ident in pattern_names(left)
        ]
    if stype == "catch_clause":
        param = field(scope, "parameter")
        return [
            Binding(ident.text.decode("utf-8"), ident, scope, "parameter")
            for ident in pattern_names(param)
        ]
    return []


def resolve_binding(name: str, node) -> Binding | None:
    """Nearest declaration of *name* visible from *node*."""
    for scope in ancestors(node):
        binding = next((b for b in scope_bindings(scope) if b.name == name), None)
        if binding is not None:
            return binding
    return None


def find_type_declaration(root, name: str):
    """Top-level interface / type alias / class / enum named *name*."""
    for node in walk(root):
        if node.type in TYPE_DECLARATION_TYPES:
            decl_name = field(node, "name")
            if decl_name is not None and decl_name.text.decode("utf-8") == name:
                return node
    return None


# ── identifier roles ─────────────────────────────────────────────

_DECLARATION_FIELDS: dict[str, tuple[str, ...]] = {
    "variable_declarator": ("name",),
    "required_parameter": ("pattern",),
    "optional_parameter": ("pattern",),
    "arrow_function": ("parameter",),
    "function_declaration": ("name",),
    "function_expression": ("name",),
    "function": ("name",),
    "generator_function": ("name",),
    "generator_function_declaration": ("name",),
    "class_declaration": ("name",),
    "class": ("name",),
    "import_specifier": ("name", "alias"),
    "export_specifier": ("name", "alias"),
    "pair_pattern": ("value",),
    "assignment_pattern": ("left",),
    "object_assignment_pattern": ("left",),
    "catch_clause": ("parameter",),
    "for_in_statement": ("left",),
}

_DECLARATION_CONTAINERS: frozenset[str] = frozenset(
    {
        "formal_parameters",
        "array_pattern",
        "object_pattern",
        "rest_pattern",
        "import_clause",
        "namespace_import",
        "labeled_statement",
        "break_statement",
        "continue_statement",
    }
)


def is_declaration_name(node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type in _DECLARATION_CONTAINERS:
        return True
    fields = _DECLARATION_FIELDS.get(parent.type, ())
    if parent.type == "for_in_statement" and field(parent, "kind") is None:
        return False
    return any(is_field(parent, f, node) for f in fields)


def is_jsx_tag_name(node) -> bool:
    current = node
    parent = node.parent
    while parent is not None and parent.type in ("member_expression", "nested_identifier"):
        current = parent
        parent = parent.parent
    if parent is None or parent.type not in JSX_TAG_OWNER_TYPES:
        return False
    return is_field(parent, "name", current)


def is_call_target(node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type == "call_expression":
        return is_field(parent, "function", node)
    if parent.type == "new_expression":
        return is_field(parent, "constructor", node)
    return parent.type == "decorator"


def is_assignment_target(node) -> bool:
    parent = node.parent
    if parent is None:
        return False
    if parent.type in ("assignment_expression", "augmented_assignment_expression"):
        return is_field(parent, "left", node)
    return parent.type == "update_expression"


def top_chain(node):
    """Outermost property-access chain whose root is *node*.

    Stops before a method call so ``items.map(...)`` yields ``items``.
    """
    current = node
    parent = current.parent
    while parent is not None and parent.type in CHAIN_TYPES:
        head = field(parent, "object") if parent.type != "non_null_expression" else None
        if head is None:
            head = parent.named_children[0] if parent.named_children else None
        if not same(head, current):
            break
        current = parent
        parent = current.parent
    if (
        current is not node
        and current.type == "member_expression"
        and parent is not None
        and parent.type == "call_expression"
        and is_field(parent, "function", current)
    ):
        current = field(current, "object")
    return current
