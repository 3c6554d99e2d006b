"""Lowers template markup to ``createElement`` calls.

Rewrites every JSX element inside a component's ``template()`` method into
``<ns>.createElement(tag, props, ...children)``. Expression values are
lowered recursively, so markup nested inside arrows, ternaries and
computed closures is converted too.
"""

from __future__ import annotations

import html
import json
import logging
import re

from . import constants
from .config import CompilerConfig
from .errors import TemplateParseFailure
from .nodes import (
    CLASS_TYPES,
    JSX_ELEMENT_TYPES,
    Edit,
    field,
    first_ancestor,
    named_children,
    render,
    resolve_binding,
    same,
)
from .parser import SourceFile

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_STRUCTURAL_CHILDREN: frozenset[str] = JSX_ELEMENT_TYPES | {"jsx_expression"}
_ATTRIBUTE_TYPES: frozenset[str] = frozenset({"jsx_attribute", "jsx_expression"})
_ACCESSOR_KEYWORDS: frozenset[str] = frozenset({"get", "set", "static"})


def clean_text(raw: str) -> str:
    """Collapse JSX text the way JSX compilers do.

    Lines are trimmed at their line-break edges, whitespace-only lines are
    dropped and the remaining lines are joined with one space; spaces
    inside a line are kept.
    """
    lines = _LINE_BREAK.split(raw)
    last_content = max(
        (i for i, line in enumerate(lines) if line.strip(" \t")), default=-1
    )
    cleaned = []
    for i, line in enumerate(lines):
        line = line.replace("\t", " ")
        if i != 0:
            line = line.lstrip(" ")
        if i != len(lines) - 1:
            line = line.rstrip(" ")
        if line:
            cleaned.append(line + (" " if i != last_content else ""))
    return html.unescape("".join(cleaned))


def ensure_well_formed(source_file: SourceFile, regions: list) -> None:
    """Raise ``TemplateParseFailure`` for the first region holding a syntax error."""
    for region in regions:
        if region.has_error:
            raise TemplateParseFailure(
                source_file.path,
                f"malformed markup in template at {source_file.source_loc(region)}",
            )


def outermost_elements(node) -> list:
    """JSX elements under *node* that are not nested inside other JSX."""
    found = []
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type in JSX_ELEMENT_TYPES and not same(current, node):
            found.append(current)
            continue
        stack.extend(reversed(current.children))
    return found


def _opening(element):
    opening = field(element, "open_tag")
    return opening if opening is not None else element.named_children[0]


def _closing(element):
    closing = field(element, "close_tag")
    return closing if closing is not None else element.named_children[-1]


class TemplateLowering:
    """Lowers the markup of one parsed file."""

    def __init__(self, source_file: SourceFile, config: CompilerConfig):
        self._file = source_file
        self._config = config

    def edits(self, regions: list) -> list[Edit]:
        ensure_well_formed(self._file, regions)
        edits = []
        for region in regions:
            for element in outermost_elements(region):
                edits.append(
                    Edit(element.start_byte, element.end_byte, self.lower_element(element))
                )
        return edits

    # ── elements ─────────────────────────────────────────────────

    def lower_element(self, node) -> str:
        if node.has_error:
            raise TemplateParseFailure(
                self._file.path, f"malformed element at {self._file.source_loc(node)}"
            )
        if node.type == "jsx_self_closing_element":
            opening, children = node, []
        else:
            opening = _opening(node)
            children = self.children(node)
        name = field(opening, "name")
        if self._is_fragment(name):
            return f"{self._config.create_fragment}({', '.join(children)})"
        arguments = [self.tag(name), self.props(opening, name)] + children
        return f"{self._config.create_element}({', '.join(arguments)})"

    def _is_fragment(self, name) -> bool:
        return name is None or self._file.node_text(name) == constants.FRAGMENT_TAG

    def tag(self, name) -> str:
        text = self._file.node_text(name)
        if name.type == "jsx_namespace_name" or "-" in text:
            return json.dumps(text)
        if name.type == "identifier" and text[:1].islower():
            return json.dumps(text)
        if name.type == "identifier" and resolve_binding(text, name) is None:
            logger.warning(
                "%s: component <%s> at %s is not declared or imported",
                self._file.path,
                text,
                self._file.source_loc(name),
            )
        return text

    # ── attributes ───────────────────────────────────────────────

    def props(self, opening, name) -> str:
        segments: list[tuple[str, object]] = []
        for attr in opening.named_children:
            if attr.type not in _ATTRIBUTE_TYPES or same(attr, name):
                continue
            if attr.type == "jsx_expression":
                spread = named_children(attr)
                if not spread:
                    continue
                target = spread[0]
                if target.type == "spread_element":
                    target = named_children(target)[0]
                segments.append(("spread", self.lower_expression(target)))
                continue
            entry = self.attribute(attr)
            if segments and segments[-1][0] == "literal":
                segments[-1][1].append(entry)
            else:
                segments.append(("literal", [entry]))
        if not segments:
            return "null"
        objects = [
            "{ " + ", ".join(f"{k}: {v}" for k, v in value) + " }" if kind == "literal" else value
            for kind, value in segments
        ]
        if len(segments) == 1 and segments[0][0] == "literal":
            return objects[0]
        return f"Object.assign({{}}, {', '.join(objects)})"

    def attribute(self, attr) -> tuple[str, str]:
        parts = named_children(attr)
        key_text = self._file.node_text(parts[0])
        key = json.dumps(key_text)
        if len(parts) < 2:
            return key, "true"
        value = parts[-1]
        if value.type == "string":
            return key, self._file.node_text(value)
        if value.type in JSX_ELEMENT_TYPES:
            return key, self.lower_element(value)
        inner = named_children(value)
        if not inner:
            return key, "undefined"
        expr = inner[0]
        text = self._file.node_text(expr)
        if key_text == constants.REF_ATTRIBUTE and expr.type in ("identifier", "member_expression"):
            param = "element" if re.search(r"\be\b", text) else "e"
            return key, f"({param}) => ({text} = {param})"
        if self._config.bind_event_handlers and self._is_method_reference(expr):
            return key, f"{text}.bind(this)"
        return key, self.lower_expression(expr)

    def _is_method_reference(self, expr) -> bool:
        if expr.type != "member_expression":
            return False
        obj, prop = field(expr, "object"), field(expr, "property")
        if obj is None or prop is None or obj.type != "this":
            return False
        cls = first_ancestor(expr, CLASS_TYPES)
        body = field(cls, "body") if cls is not None else None
        if body is None:
            return False
        name = self._file.node_text(prop)
        for member in body.named_children:
            if member.type != "method_definition":
                continue
            member_name = field(member, "name")
            if member_name is None or self._file.node_text(member_name) != name:
                continue
            return not any(c.type in _ACCESSOR_KEYWORDS for c in member.children)
        return False

    # ── children ─────────────────────────────────────────────────

    def children(self, element) -> list[str]:
        opening = _opening(element)
        closing = _closing(element)
        items: list[str] = []
        cursor = opening.end_byte
        for child in element.named_children:
            if child.type not in _STRUCTURAL_CHILDREN:
                continue
            if child.start_byte < opening.end_byte or child.end_byte > closing.start_byte:
                continue
            self._add_text(items, cursor, child.start_byte)
            self._add_child(items, child)
            cursor = child.end_byte
        self._add_text(items, cursor, closing.start_byte)
        return items

    def _add_text(self, items: list[str], start: int, end: int) -> None:
        if end <= start:
            return
        text = clean_text(self._file.slice(start, end))
        if text:
            items.append(json.dumps(text))

    def _add_child(self, items: list[str], child) -> None:
        if child.type == "jsx_expression":
            inner = named_children(child)
            if not inner:
                return
            expr = inner[0]
            if expr.type == "spread_element":
                items.append("..." + self.lower_expression(named_children(expr)[0]))
            else:
                items.append(self.lower_expression(expr))
            return
        if child.type == "jsx_element":
            opening = _opening(child)
            if self._is_fragment(field(opening, "name")):
                items.extend(self.children(child))
                return
        items.append(self.lower_element(child))

    # ── expressions ──────────────────────────────────────────────

    def lower_expression(self, expr) -> str:
        if expr.type in JSX_ELEMENT_TYPES:
            return self.lower_element(expr)
        edits = [
            Edit(e.start_byte, e.end_byte, self.lower_element(e))
            for e in outermost_elements(expr)
        ]
        return render(self._file.source, expr, edits)
