"""Routes reactive reads through a capture context.

A compiled closure takes a single *capture key* parameter. Every read of a
reactive container inside it becomes ``<key>.put(<chain>)`` so the runtime
learns the closure's dependencies on first evaluation, and identity
attributes become ``<key>.cache(<value>)``.

The passes in this package rewrite bottom-up: inner closures are compiled
first and their edits are absorbed by any enclosing rewrite, so one pass
produces a single set of non-overlapping edits.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from . import constants
from .classifier import TypeClassifier
from .config import CompilerConfig
from .models import ReactiveExpression
from .nodes import (
    FUNCTION_LITERAL_TYPES,
    Edit,
    ancestors,
    contains,
    field,
    find_type_declaration,
    first_ancestor,
    function_parameters,
    is_assignment_target,
    is_field,
    named_children,
    parameter_name,
    render,
    resolve_binding,
    same,
    top_chain,
    walk,
)
from .parser import SourceFile

logger = logging.getLogger(__name__)

_READ_TYPES: frozenset[str] = frozenset(
    {"identifier", "shorthand_property_identifier", "member_expression"}
)

_PRIMITIVE_DEFAULTS: dict[str, str] = {
    "string": '""',
    "number": "0",
    "bigint": "0n",
    "boolean": "false",
}

_GENERIC_DEFAULTS: dict[str, str] = {
    "Array": "[]",
    "ReadonlyArray": "[]",
    "Set": "new Set()",
    "Map": "new Map()",
    "Record": "{}",
    "Partial": "{}",
}


class KeyAllocator:
    """Hands out capture keys that do not occur anywhere in a source text.

    ``key(0)`` is the first free name of ``_c__tc_``, ``_c__tc_1_``,
    ``_c__tc_2_``, ...; ``key(n)`` the n-th free one, so closures nested
    inside each other never share a key.
    """

    def __init__(self, text: str, prefix: str):
        self._text = text
        self._prefix = prefix
        self._keys: list[str] = []
        self._counter = 0

    def key(self, level: int = 0) -> str:
        while len(self._keys) <= level:
            candidate = (
                self._prefix if self._counter == 0 else f"{self._prefix}{self._counter}_"
            )
            self._counter += 1
            if candidate not in self._text:
                self._keys.append(candidate)
        return self._keys[level]


@dataclass
class _Committed:
    edit: Edit
    height: int
    closure: bool


class NestedEdits:
    """Bottom-up edit collector for one pass over one tree.

    Nodes must be offered innermost first. Committing a node absorbs every
    edit already committed inside it; ``height`` counts how many capture
    keys are nested inside an edit.
    """

    def __init__(self, source: bytes):
        self._source = source
        self._committed: list[_Committed] = []

    def inner(self, node) -> list[Edit]:
        return [c.edit for c in self._inside(node)]

    def closures(self, node) -> list[tuple[int, int]]:
        return [(c.edit.start, c.edit.end) for c in self._inside(node) if c.closure]

    def height(self, node) -> int:
        return max((c.height for c in self._inside(node)), default=0)

    def render(self, node, extra: list[Edit] = ()) -> str:
        return render(self._source, node, self.inner(node) + list(extra))

    def commit(self, node, text: str, closure: bool = True) -> None:
        inside = self._inside(node)
        height = max((c.height for c in inside), default=0) + (1 if closure else 0)
        self._committed = [c for c in self._committed if c not in inside]
        self._committed.append(
            _Committed(Edit(node.start_byte, node.end_byte, text), height, closure)
        )

    @property
    def edits(self) -> list[Edit]:
        return [c.edit for c in self._committed]

    def _inside(self, node) -> list[_Committed]:
        return [
            c
            for c in self._committed
            if node.start_byte <= c.edit.start and c.edit.end <= node.end_byte
        ]


def by_size(nodes: list) -> list:
    """Innermost-first ordering for bottom-up rewriting."""
    return sorted(nodes, key=lambda n: (n.end_byte - n.start_byte, n.start_byte))


class ExpressionCapture:
    """Finds external reactive reads and rewrites them through a capture key."""

    def __init__(
        self,
        source_file: SourceFile,
        classifier: TypeClassifier,
        config: CompilerConfig,
    ):
        self._file = source_file
        self._classifier = classifier
        self._config = config
        self.keys = KeyAllocator(source_file.text, config.capture_key_prefix)
        self._key_pattern = re.compile(re.escape(config.capture_key_prefix) + r"(?:\d+_)?")
        self.expressions: list[ReactiveExpression] = []

    @property
    def classifier(self) -> TypeClassifier:
        return self._classifier

    def is_capture_key(self, name: str) -> bool:
        return self._key_pattern.fullmatch(name) is not None

    def is_compiled_closure(self, node) -> bool:
        if node.type not in FUNCTION_LITERAL_TYPES:
            return False
        params = function_parameters(node)
        return bool(params) and self.is_capture_key(parameter_name(params[0]))

    def inside_compiled_closure(self, node, scope=None) -> bool:
        for ancestor in ancestors(node):
            if scope is not None and same(ancestor, scope):
                return False
            if self.is_compiled_closure(ancestor):
                return True
        return False

    def is_capture_call(self, call, receivers: frozenset[str] = frozenset()) -> bool:
        """``<key>.put(...)`` or ``<key>.cache(...)``."""
        if call is None or call.type != "call_expression":
            return False
        callee = field(call, "function")
        if callee is None or callee.type != "member_expression":
            return False
        obj, prop = field(callee, "object"), field(callee, "property")
        if obj is None or prop is None or obj.type != "identifier":
            return False
        if self._file.node_text(prop) not in (constants.CAPTURE_PUT, constants.CAPTURE_CACHE):
            return False
        name = self._file.node_text(obj)
        return name in receivers or self.is_capture_key(name)

    def _is_routed(self, node, scope, receivers: frozenset[str]) -> bool:
        for ancestor in ancestors(node):
            if same(ancestor, scope):
                return False
            if self.is_capture_call(ancestor, receivers):
                return True
        return False

    def _is_local(self, node, scope) -> bool:
        binding = resolve_binding(self._file.node_text(node), node)
        return binding is not None and contains(scope, binding.node)

    # ── reads ────────────────────────────────────────────────────

    def reads(
        self,
        scope,
        excluded: list[tuple[int, int]] = (),
        receivers: frozenset[str] = frozenset(),
        limit: int | None = None,
    ) -> list:
        """Outermost reactive chains read inside *scope* but declared outside it."""
        found: dict[tuple[int, int], object] = {}
        for node in walk(scope):
            if node.type not in _READ_TYPES:
                continue
            if any(start <= node.start_byte and node.end_byte <= end for start, end in excluded):
                continue
            if not self._classifier.is_candidate(node):
                continue
            if node.type != "member_expression" and self._is_local(node, scope):
                continue
            if is_assignment_target(node):
                continue
            if self.inside_compiled_closure(node, scope) or self._is_routed(node, scope, receivers):
                continue
            if not self._classifier.is_reactive(node):
                continue
            chain = top_chain(node)
            if any(chain.start_byte <= start and end <= chain.end_byte for start, end in excluded):
                chain = node
            if is_assignment_target(chain) or not contains(scope, chain):
                continue
            found.setdefault((chain.start_byte, chain.end_byte), chain)
            if limit is not None and len(found) >= limit:
                break
        return sorted(found.values(), key=lambda n: n.start_byte)

    def chain_edits(self, chains: list, key: str, expression: ReactiveExpression) -> list[Edit]:
        edits: list[Edit] = []
        for chain in by_size(chains):
            inner = [e for e in edits if chain.start_byte <= e.start and e.end <= chain.end_byte]
            edits = [e for e in edits if e not in inner]
            body = render(self._file.source, chain, inner)
            routed = f"{key}.{constants.CAPTURE_PUT}({body})"
            if chain.type == "shorthand_property_identifier":
                routed = f"{body}: {routed}"
            edits.append(Edit(chain.start_byte, chain.end_byte, routed))
        for chain in chains:
            expression.record(self._file.node_text(chain))
        return edits

    def identity_edits(self, scope, key: str, excluded: list[tuple[int, int]] = ()) -> list[Edit]:
        """Route ``key`` attributes of elements inside *scope* through ``<key>.cache``."""
        edits: list[Edit] = []
        for attr in walk(scope):
            if attr.type != "jsx_attribute":
                continue
            if any(start <= attr.start_byte and attr.end_byte <= end for start, end in excluded):
                continue
            if self.inside_compiled_closure(attr, scope):
                continue
            parts = named_children(attr)
            if not parts or self._file.node_text(parts[0]) != self._config.identity_attribute:
                continue
            if len(parts) < 2:
                continue
            value = parts[-1]
            cache = f"{key}.{constants.CAPTURE_CACHE}"
            if value.type == "string":
                edits.append(Edit(value.start_byte, value.end_byte, f"{{{cache}({self._file.node_text(value)})}}"))
            elif value.type == "jsx_expression":
                inner = named_children(value)
                if not inner or self.is_capture_call(inner[0]):
                    continue
                edits.append(Edit(inner[0].start_byte, inner[0].start_byte, f"{cache}("))
                edits.append(Edit(inner[0].end_byte, inner[0].end_byte, ")"))
        return edits

    def new_expression(self, node, key: str) -> ReactiveExpression:
        expression = ReactiveExpression(original_text=self._file.node_text(node), capture_key=key)
        self.expressions.append(expression)
        return expression

    # ── closures ─────────────────────────────────────────────────

    def _receiver_only(self, fn, param, name: str) -> bool:
        """The parameter is unused or only ever the receiver of put/cache."""
        ident = field(param, "pattern") if param.type != "identifier" else param
        body = field(fn, "body")
        if body is None:
            return True
        for node in walk(body):
            if node.type not in ("identifier", "shorthand_property_identifier"):
                continue
            if self._file.node_text(node) != name:
                continue
            binding = resolve_binding(name, node)
            if binding is None or not same(binding.node, ident):
                continue
            member = node.parent
            if (
                member is not None
                and member.type == "member_expression"
                and is_field(member, "object", node)
                and self.is_capture_call(member.parent, frozenset({name}))
                and is_field(member.parent, "function", member)
            ):
                continue
            return False
        return True

    def compile_function(self, fn, nested: NestedEdits) -> str | None:
        """Rewritten text of function literal *fn*, or None when nothing changes."""
        params = function_parameters(fn)
        if len(params) > 1:
            return None
        receivers: frozenset[str] = frozenset()
        reuse = False
        if params:
            name = parameter_name(params[0])
            reuse = bool(name) and self._receiver_only(fn, params[0], name)
            if reuse:
                receivers = frozenset({name})
        chains = self.reads(fn, nested.closures(fn), receivers)
        if not chains:
            return None
        key = parameter_name(params[0]) if reuse else self.keys.key(nested.height(fn))
        expression = self.new_expression(fn, key)
        edits = self.chain_edits(chains, key, expression)
        if not params:
            formal = field(fn, "parameters")
            if formal is None:
                return None
            edits.append(Edit(formal.start_byte, formal.end_byte, f"({key})"))
            return nested.render(fn, edits)
        if reuse:
            return nested.render(fn, edits)
        return f"({key}) => {{ return ({nested.render(fn, edits)})(); }}"

    def wrap(self, expr, nested: NestedEdits, chains: list, identity: bool = True) -> str:
        """``<ns>.computed((<key>) => { return (<expr>); })`` with *chains* routed."""
        key = self.keys.key(nested.height(expr))
        expression = self.new_expression(expr, key)
        edits = self.chain_edits(chains, key, expression)
        if identity:
            edits.extend(self.identity_edits(expr, key, nested.closures(expr)))
        body = nested.render(expr, edits)
        logger.debug("Compiled %r with key %s tracking %s", expression.original_text, key, expression.paths)
        if expr.type == "template_string":
            return f"{self._config.computed_wrapper}(({key}) => {body})"
        return f"{self._config.computed_wrapper}(({key}) => {{ return ({body}); }})"


class CapturePass:
    """File-wide rewrites of the reactive primitives' call sites.

    - ``computed(fn)``: *fn* gets a capture key and its reads are routed;
    - ``computed`...```: becomes ``computed((<key>) => `...`)``;
    - ``ref<T>()``: gains a default value for ``T``;
    - ``refProperty(v)`` in a class field: gains the field name, plus ``this``
      inside component classes.
    """

    def __init__(self, capture: ExpressionCapture, config: CompilerConfig, component_ranges: list[tuple[int, int]] = ()):
        self._capture = capture
        self._classifier = capture.classifier
        self._config = config
        self._components = list(component_ranges)

    def edits(self, source_file: SourceFile) -> list[Edit]:
        nested = NestedEdits(source_file.source)
        calls = [n for n in walk(source_file.root) if n.type == "call_expression"]
        for call in by_size(calls):
            self._rewrite(source_file, call, nested)
        return nested.edits

    def _rewrite(self, source_file: SourceFile, call, nested: NestedEdits) -> None:
        callee = field(call, "function")
        arguments = field(call, "arguments")
        if callee is None or arguments is None:
            return
        config = self._config
        if self._classifier.is_reactive_callee(callee, config.computed_function):
            if arguments.type == "template_string":
                self._rewrite_tagged(source_file, call, callee, arguments, nested)
                return
            args = named_children(arguments)
            if args and args[0].type in FUNCTION_LITERAL_TYPES:
                text = self._capture.compile_function(args[0], nested)
                if text is not None:
                    nested.commit(args[0], text)
            return
        if self._classifier.is_reactive_callee(callee, config.ref_function):
            self._rewrite_ref_default(source_file, call, arguments, nested)
            return
        if self._classifier.is_reactive_callee(callee, config.ref_property_function):
            self._rewrite_ref_property(source_file, call, arguments, nested)

    def _rewrite_tagged(self, source_file: SourceFile, call, callee, template, nested: NestedEdits) -> None:
        capture = self._capture
        chains = capture.reads(template, nested.closures(template))
        key = capture.keys.key(nested.height(call))
        expression = capture.new_expression(call, key)
        body = nested.render(template, capture.chain_edits(chains, key, expression))
        nested.commit(call, f"{source_file.node_text(callee)}(({key}) => {body})")

    def _rewrite_ref_default(self, source_file: SourceFile, call, arguments, nested: NestedEdits) -> None:
        type_arguments = field(call, "type_arguments")
        if named_children(arguments) or type_arguments is None:
            return
        types = named_children(type_arguments)
        if not types:
            return
        default = default_value(source_file, types[0])
        text = nested.render(call, [Edit(arguments.start_byte, arguments.end_byte, f"({default})")])
        nested.commit(call, text, closure=False)

    def _rewrite_ref_property(self, source_file: SourceFile, call, arguments, nested: NestedEdits) -> None:
        owner = call.parent
        if owner is None or owner.type != "public_field_definition" or not is_field(owner, "value", call):
            return
        args = named_children(arguments)
        if len(args) > 1:
            return
        name = field(owner, "name")
        if name is None:
            return
        value = nested.render(args[0]) if args else "undefined"
        parts = [value, f"'{source_file.node_text(name)}'"]
        cls = first_ancestor(call, frozenset({"class_declaration", "abstract_class_declaration", "class"}))
        if cls is not None and (cls.start_byte, cls.end_byte) in self._components:
            parts.append("this")
        edit = Edit(arguments.start_byte, arguments.end_byte, f"({', '.join(parts)})")
        nested.commit(call, render(source_file.source, call, [edit]), closure=False)


def default_value(source_file: SourceFile, type_node, depth: int = 0) -> str:
    """Initial value for a container declared as ``ref<T>()``."""
    if depth > constants.MAX_ALIAS_DEPTH:
        return "null"
    ntype = type_node.type
    text = source_file.node_text(type_node)
    if ntype == "predefined_type":
        return _PRIMITIVE_DEFAULTS.get(text, "null")
    if ntype in ("array_type", "tuple_type"):
        return "[]"
    if ntype == "literal_type":
        return text
    if ntype == "parenthesized_type":
        inner = named_children(type_node)
        return default_value(source_file, inner[0], depth + 1) if inner else "null"
    if ntype == "union_type":
        members = named_children(type_node)
        if any(source_file.node_text(m) in ("null", "undefined") for m in members):
            return "null"
        return default_value(source_file, members[0], depth + 1) if members else "null"
    if ntype in ("object_type", "interface_body"):
        return _object_default(source_file, type_node, depth)
    if ntype == "generic_type":
        name = _generic_name(type_node)
        return _GENERIC_DEFAULTS.get(source_file.node_text(name), "null")
    if ntype == "type_identifier":
        if text == "Date":
            return "new Date()"
        declaration = find_type_declaration(source_file.root, text)
        if declaration is None:
            return "null"
        if declaration.type == "interface_declaration":
            body = field(declaration, "body")
            return _object_default(source_file, body, depth) if body is not None else "{}"
        if declaration.type == "type_alias_declaration":
            value = field(declaration, "value")
            return default_value(source_file, value, depth + 1) if value is not None else "null"
    return "null"


def _object_default(source_file: SourceFile, body, depth: int) -> str:
    entries = []
    for member in named_children(body):
        if member.type != "property_signature":
            continue
        if any(child.type == "?" for child in member.children):
            continue
        name = field(member, "name")
        annotation = field(member, "type")
        if name is None:
            continue
        value = "null"
        if annotation is not None:
            inner = named_children(annotation)
            if inner:
                value = default_value(source_file, inner[0], depth + 1)
        entries.append(f"{source_file.node_text(name)}: {value}")
    return "{ " + ", ".join(entries) + " }" if entries else "{}"


def _generic_name(type_node):
    name = field(type_node, "name")
    return name if name is not None else type_node.named_children[0]
