"""Static-type answers the classifier relies on.

``SourceTypeProvider`` reads types straight off the syntax tree: explicit
annotations, local ``type``/``interface`` aliases, initializer expressions
and import declarations. Imported symbols are resolved to their declaring
file through a ``DeclarationIndex``; symbols exported by another project
file are followed into that file so a ``const counter = ref(0)`` in a shared
store module keeps its reactive type at every use site.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from . import constants
from .config import CompilerConfig
from .errors import TypeResolutionFailure
from .index import DeclarationIndex
from .models import ResolvedType
from .nodes import (
    CLASS_TYPES,
    FUNCTION_LITERAL_TYPES,
    Binding,
    field,
    first_field,
    find_type_declaration,
    first_ancestor,
    named_children,
    resolve_binding,
    same,
    statement_bindings,
    unwrap_parens,
)
from .parser import SourceFile

logger = logging.getLogger(__name__)

_PRIMITIVE_LITERALS: dict[str, str] = {
    "string": "string",
    "template_string": "string",
    "number": "number",
    "true": "boolean",
    "false": "boolean",
    "regex": "RegExp",
    "array": "array",
    "null": "null",
    "undefined": "undefined",
}

_CAST_TYPES: frozenset[str] = frozenset(
    {"as_expression", "satisfies_expression", "type_assertion"}
)


class TypeProvider(ABC):
    """Typed view of one parsed file."""

    @abstractmethod
    def type_of(self, node) -> ResolvedType | None:
        """Static type of an expression node, or None when unknown."""
        ...

    @abstractmethod
    def declaring_file(self, resolved: ResolvedType) -> str:
        """File (or package specifier) declaring the type's symbol."""
        ...


class SourceTypeProvider(TypeProvider):
    """Syntactic type provider over a single ``SourceFile``."""

    def __init__(
        self,
        source_file: SourceFile,
        index: DeclarationIndex,
        config: CompilerConfig,
        depth: int = 0,
    ):
        self._file = source_file
        self._index = index
        self._config = config
        self._depth = depth

    @property
    def path(self) -> str:
        return self._file.path

    def declaring_file(self, resolved: ResolvedType) -> str:
        return resolved.module

    def type_of(self, node) -> ResolvedType | None:
        return self._expression_type(node, 0)

    # ── expressions ──────────────────────────────────────────────

    def _expression_type(self, node, depth: int) -> ResolvedType | None:
        if node is None:
            return None
        if depth > constants.MAX_ALIAS_DEPTH:
            raise TypeResolutionFailure(
                f"type alias chain too deep at {self._file.source_loc(node)}"
            )
        node = unwrap_parens(node)
        ntype = node.type
        if ntype in ("identifier", "shorthand_property_identifier"):
            binding = resolve_binding(self._file.node_text(node), node)
            return self._binding_type(binding, depth) if binding else None
        if ntype == "member_expression":
            return self._member_type(node, depth)
        if ntype == "non_null_expression":
            return self._expression_type(named_children(node)[0], depth + 1)
        if ntype in _CAST_TYPES:
            return self._cast_type(node, depth)
        if ntype == "call_expression":
            return self._call_type(node, depth)
        if ntype == "new_expression":
            return self._constructed_type(field(node, "constructor"), depth)
        if ntype == "object":
            return ResolvedType(text="{}", module=self.path, is_object_literal=True)
        if ntype in FUNCTION_LITERAL_TYPES:
            return ResolvedType(text="function", module=self.path, is_callable=True)
        if ntype in _PRIMITIVE_LITERALS:
            return ResolvedType(text=_PRIMITIVE_LITERALS[ntype])
        return None

    def _cast_type(self, node, depth: int) -> ResolvedType | None:
        children = named_children(node)
        if node.type == "type_assertion":
            arguments = named_children(children[0]) if children else []
            annotation = arguments[0] if arguments else None
        else:
            annotation = children[-1] if len(children) > 1 else None
        if annotation is None:
            return None
        return self._annotation_type(annotation, depth + 1)

    def _call_type(self, node, depth: int) -> ResolvedType | None:
        callee = unwrap_parens(field(node, "function"))
        if callee is None or callee.type != "identifier":
            return None
        name = self._file.node_text(callee)
        binding = resolve_binding(name, callee)
        if binding is None:
            return None
        if binding.kind == "import":
            return ResolvedType(
                text=f"ReturnType<typeof {name}>",
                symbol=name,
                module=self._import_module(binding),
            )
        if binding.kind == "function":
            return_type = field(binding.declaration, "return_type")
            if return_type is not None:
                return self._annotation_type(return_type, depth + 1)
        return None

    def _constructed_type(self, constructor, depth: int) -> ResolvedType | None:
        if constructor is None:
            return None
        constructor = unwrap_parens(constructor)
        if constructor.type != "identifier":
            return None
        name = self._file.node_text(constructor)
        binding = resolve_binding(name, constructor)
        if binding is None:
            return ResolvedType(text=name, symbol=name)
        if binding.kind == "import":
            return ResolvedType(text=name, symbol=name, module=self._import_module(binding))
        return ResolvedType(text=name, symbol=name, module=self.path)

    def _member_type(self, node, depth: int) -> ResolvedType | None:
        obj = unwrap_parens(field(node, "object"))
        prop = field(node, "property")
        if obj is None or prop is None:
            return None
        prop_name = self._file.node_text(prop)
        if obj.type == "this":
            cls = first_ancestor(node, CLASS_TYPES)
            return self._class_member_type(cls, prop_name, depth) if cls else None
        owner = self._expression_type(obj, depth + 1)
        if owner is None or not owner.symbol or owner.module != self.path:
            return None
        declaration = find_type_declaration(self._file.root, owner.symbol)
        if declaration is None:
            return None
        if declaration.type in CLASS_TYPES:
            return self._class_member_type(declaration, prop_name, depth)
        return self._interface_member_type(declaration, prop_name, depth)

    def _class_member_type(self, cls, name: str, depth: int) -> ResolvedType | None:
        body = field(cls, "body")
        if body is None:
            return None
        for member in body.named_children:
            member_name = field(member, "name")
            if member_name is None or self._file.node_text(member_name) != name:
                continue
            if member.type == "method_definition":
                return ResolvedType(
                    text="method", symbol=name, module=self.path, is_callable=True
                )
            annotation = field(member, "type")
            if annotation is not None:
                return self._annotation_type(annotation, depth + 1)
            return self._expression_type(field(member, "value"), depth + 1)
        return None

    def _interface_member_type(self, declaration, name: str, depth: int) -> ResolvedType | None:
        body = first_field(declaration, "body", "value")
        if body is None:
            return None
        for member in body.named_children:
            if member.type != "property_signature":
                continue
            member_name = field(member, "name")
            if member_name is not None and self._file.node_text(member_name) == name:
                return self._annotation_type(field(member, "type"), depth + 1)
        return None

    # ── bindings ─────────────────────────────────────────────────

    def _binding_type(self, binding: Binding, depth: int) -> ResolvedType | None:
        kind = binding.kind
        declaration = binding.declaration
        if kind == "import":
            return self._imported_type(binding, depth)
        if kind == "function":
            return ResolvedType(
                text="function", symbol=binding.name, module=self.path, is_callable=True
            )
        if kind == "class":
            return ResolvedType(text="class", symbol=binding.name, module=self.path)
        if kind == "variable" and declaration.type == "variable_declarator":
            if not same(field(declaration, "name"), binding.node):
                return None
            annotation = field(declaration, "type")
            if annotation is not None:
                return self._annotation_type(annotation, depth + 1)
            return self._expression_type(field(declaration, "value"), depth + 1)
        if kind == "parameter":
            annotation = field(declaration, "type")
            if annotation is not None and same(field(declaration, "pattern"), binding.node):
                return self._annotation_type(annotation, depth + 1)
        return None

    def _import_module(self, binding: Binding) -> str:
        specifier, export_name = self._import_origin(binding)
        return self._index.declaring_file(self.path, specifier, export_name)

    def _import_origin(self, binding: Binding) -> tuple[str, str]:
        declaration = binding.declaration
        stmt = first_ancestor(declaration, frozenset({"import_statement"}))
        source = field(stmt, "source") if stmt is not None else None
        specifier = self._file.node_text(source)[1:-1] if source is not None else ""
        if declaration.type == "import_specifier":
            export_name = self._file.node_text(field(declaration, "name"))
        elif declaration.type == "namespace_import":
            export_name = "*"
        else:
            export_name = "default"
        return specifier, export_name

    def _imported_type(self, binding: Binding, depth: int) -> ResolvedType | None:
        specifier, export_name = self._import_origin(binding)
        module = self._index.declaring_file(self.path, specifier, export_name)
        if self._depth < constants.MAX_ALIAS_DEPTH:
            exported = self._exported_type(module, export_name, depth)
            if exported is not None:
                return exported
        return ResolvedType(text=export_name, symbol=export_name, module=module)

    def _exported_type(self, module: str, export_name: str, depth: int) -> ResolvedType | None:
        """Follow an import into another project file and type its export."""
        other = self._index.project_file(module)
        if other is None or other.path == self.path:
            return None
        for stmt in other.root.named_children:
            if stmt.type != "export_statement":
                continue
            for binding in statement_bindings(stmt):
                if binding.name != export_name or binding.kind != "variable":
                    continue
                provider = SourceTypeProvider(other, self._index, self._config, self._depth + 1)
                return provider._binding_type(binding, depth + 1)
        return None

    # ── type annotations ─────────────────────────────────────────

    def _annotation_type(self, node, depth: int) -> ResolvedType | None:
        if node is None:
            return None
        if depth > constants.MAX_ALIAS_DEPTH:
            raise TypeResolutionFailure(
                f"type alias chain too deep at {self._file.source_loc(node)}"
            )
        ntype = node.type
        if ntype in ("type_annotation", "parenthesized_type"):
            inner = named_children(node)
            return self._annotation_type(inner[0], depth + 1) if inner else None
        if ntype == "generic_type":
            name = field(node, "name")
            return self._named_type(name if name is not None else node.named_children[0], depth)
        if ntype in ("type_identifier", "nested_type_identifier"):
            return self._named_type(node, depth)
        if ntype == "object_type":
            return ResolvedType(text=self._file.node_text(node), is_object_literal=True)
        if ntype == "predefined_type":
            return ResolvedType(text=self._file.node_text(node))
        if ntype == "union_type":
            members = [
                m
                for m in named_children(node)
                if self._file.node_text(m) not in ("null", "undefined")
            ]
            if len(members) == 1:
                return self._annotation_type(members[0], depth + 1)
            return None
        if ntype in ("function_type", "constructor_type"):
            return ResolvedType(
                text=self._file.node_text(node), module=self.path, is_callable=True
            )
        return None

    def _named_type(self, node, depth: int) -> ResolvedType | None:
        text = self._file.node_text(node)
        if node.type == "nested_type_identifier":
            namespace = self._file.node_text(node.named_children[0])
            binding = resolve_binding(namespace, node)
            if binding is not None and binding.kind == "import":
                return ResolvedType(text=text, symbol=text, module=self._import_module(binding))
            return None
        declaration = find_type_declaration(self._file.root, text)
        if declaration is not None:
            if declaration.type == "type_alias_declaration":
                return self._annotation_type(field(declaration, "value"), depth + 1)
            return ResolvedType(text=text, symbol=text, module=self.path)
        binding = resolve_binding(text, node)
        if binding is not None and binding.kind == "import":
            return ResolvedType(text=text, symbol=text, module=self._import_module(binding))
        return ResolvedType(text=text, symbol=text)
