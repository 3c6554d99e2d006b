"""Component discovery: which classes of a file are components, and their tags."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from . import constants
from .config import CompilerConfig
from .models import ComponentDeclaration
from .nodes import field, first_field, named_children, resolve_binding, walk
from .parser import SourceFile

logger = logging.getLogger(__name__)

_COMPONENT_CLASS_TYPES: frozenset[str] = frozenset(
    {"class_declaration", "abstract_class_declaration"}
)


@dataclass
class ComponentClass:
    """A discovered component and its class node in the current tree."""

    node: Any
    declaration: ComponentDeclaration

    @property
    def name(self) -> str:
        return self.declaration.name


def _unquote(text: str) -> str:
    return text[1:-1] if len(text) >= 2 and text[0] in "'\"`" else text


def class_base(class_node):
    heritage = next(
        (c for c in class_node.named_children if c.type == "class_heritage"), None
    )
    if heritage is None:
        return None
    extends = next((c for c in heritage.named_children if c.type == "extends_clause"), None)
    if extends is None:
        return None
    value = field(extends, "value")
    if value is None:
        values = named_children(extends)
        value = values[0] if values else None
    return value


def _root_identifier(node):
    while node is not None and node.type == "member_expression":
        node = field(node, "object")
    return node if node is not None and node.type == "identifier" else None


def class_decorators(class_node) -> list:
    decorators = [c for c in class_node.children if c.type == "decorator"]
    parent = class_node.parent
    if parent is not None and parent.type == "export_statement":
        decorators = [c for c in parent.children if c.type == "decorator"] + decorators
    return decorators


def template_method(class_node, method_name: str):
    body = field(class_node, "body")
    if body is None:
        return None
    for member in body.named_children:
        if member.type != "method_definition":
            continue
        name = field(member, "name")
        if name is not None and name.text.decode("utf-8") == method_name:
            return member
    return None


def defined_tags(source_file: SourceFile) -> list[str]:
    """``static TAG = "..."`` string values of the classes of a compiled module."""
    tags = []
    for node in walk(source_file.root):
        if node.type not in _COMPONENT_CLASS_TYPES and node.type != "class":
            continue
        body = field(node, "body")
        for member in body.named_children if body is not None else []:
            if member.type not in ("public_field_definition", "field_definition"):
                continue
            if not any(c.type == "static" for c in member.children):
                continue
            name = first_field(member, "name", "property")
            value = field(member, "value")
            if name is None or value is None or value.type != "string":
                continue
            if source_file.node_text(name) == constants.STATIC_TAG_FIELD:
                tags.append(_unquote(source_file.node_text(value)))
    return tags


class ComponentScanner:
    """Finds component classes in a parsed file.

    A class is a component when it extends a class imported from one of
    the configured component modules, another component of the same file,
    or a component known from elsewhere in the project, or when it carries
    the registration decorator.
    """

    def __init__(
        self,
        config: CompilerConfig,
        is_known_component: Callable[[str], bool] | None = None,
    ):
        self._config = config
        self._is_known = is_known_component or (lambda name: False)

    def scan(self, source_file: SourceFile) -> list[ComponentClass]:
        classes = [
            n
            for n in walk(source_file.root)
            if n.type in _COMPONENT_CLASS_TYPES and field(n, "name") is not None
        ]
        components: dict[str, Any] = {}
        pending = list(classes)
        changed = True
        while changed:
            changed = False
            for node in list(pending):
                if self._is_component(source_file, node, components):
                    components[source_file.node_text(field(node, "name"))] = node
                    pending.remove(node)
                    changed = True
        found = []
        for node in classes:
            name = source_file.node_text(field(node, "name"))
            if components.get(name) is not node:
                continue
            base = class_base(node)
            found.append(
                ComponentClass(
                    node=node,
                    declaration=ComponentDeclaration(
                        name=name,
                        file_path=source_file.path,
                        base=source_file.node_text(base) if base is not None else "",
                        explicit_tag=self.explicit_tag(source_file, node),
                        location=source_file.source_loc(node),
                    ),
                )
            )
        logger.debug("%s: components %s", source_file.path, [c.name for c in found])
        return found

    def _is_component(self, source_file: SourceFile, node, components: dict) -> bool:
        if self._registration(source_file, node) is not None:
            return True
        base = class_base(node)
        root = _root_identifier(base)
        if root is None:
            return False
        base_name = source_file.node_text(base)
        if base_name in components or self._is_known(base_name):
            return True
        binding = resolve_binding(source_file.node_text(root), root)
        if binding is None or binding.kind != "import":
            return False
        return self._from_component_module(source_file, binding.declaration)

    def _from_component_module(self, source_file: SourceFile, declaration) -> bool:
        stmt = declaration
        while stmt is not None and stmt.type != "import_statement":
            stmt = stmt.parent
        source = field(stmt, "source") if stmt is not None else None
        if source is None:
            return False
        specifier = _unquote(source_file.node_text(source))
        return any(
            specifier == module or specifier.startswith(module + "/")
            for module in self._config.component_modules
        )

    def _registration(self, source_file: SourceFile, node):
        """The ``@Register(...)`` decorator call (or bare name) of a class."""
        for decorator in class_decorators(node):
            for expr in named_children(decorator):
                target = field(expr, "function") if expr.type == "call_expression" else expr
                if self._is_register(source_file, target):
                    return expr
        return None

    def _is_register(self, source_file: SourceFile, target) -> bool:
        if target is None or target.type != "identifier":
            return False
        if source_file.node_text(target) != self._config.register_decorator:
            return False
        binding = resolve_binding(self._config.register_decorator, target)
        if binding is None or binding.kind != "import":
            logger.debug(
                "%s: @%s at %s is not the framework decorator",
                source_file.path,
                self._config.register_decorator,
                source_file.source_loc(target),
            )
            return False
        return self._from_component_module(source_file, binding.declaration)

    def explicit_tag(self, source_file: SourceFile, node) -> str | None:
        registration = self._registration(source_file, node)
        if registration is None or registration.type != "call_expression":
            return None
        arguments = field(registration, "arguments")
        for arg in named_children(arguments) if arguments is not None else []:
            if arg.type != "object":
                continue
            for pair in arg.named_children:
                if pair.type != "pair":
                    continue
                key = field(pair, "key")
                value = field(pair, "value")
                if key is None or value is None or value.type != "string":
                    continue
                if _unquote(source_file.node_text(key)) == "tag":
                    return _unquote(source_file.node_text(value))
        return None
