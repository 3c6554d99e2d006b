"""Wraps ``<collection>.map(...)`` markup over reactive collections."""

from __future__ import annotations

import logging

from .capture import ExpressionCapture, NestedEdits, by_size
from .nodes import (
    FUNCTION_LITERAL_TYPES,
    JSX_ELEMENT_TYPES,
    Edit,
    field,
    named_children,
    unwrap_parens,
    walk,
)
from .parser import SourceFile

logger = logging.getLogger(__name__)

MAP_METHOD = "map"


class LoopCompiler:
    """Compiles ``{items.map(i => <li key={i.id}/>)}`` into a computed closure.

    Only the first external reactive reference of the mapped collection is
    tracked. Reactive reads inside the callback body are not dependencies of
    the loop closure; ``key`` attributes inside it go through ``cache`` so
    element identity survives recomputation.
    """

    def __init__(self, capture: ExpressionCapture):
        self._capture = capture

    def edits(self, source_file: SourceFile, regions: list) -> list[Edit]:
        nested = NestedEdits(source_file.source)
        candidates = [
            node
            for region in regions
            for node in walk(region)
            if self.map_call(node) is not None
            and not self._capture.inside_compiled_closure(node)
        ]
        for container in by_size(candidates):
            expr = named_children(container)[0]
            call = self.map_call(container)
            collection = field(field(call, "function"), "object")
            chains = self._capture.reads(collection, nested.closures(collection), limit=1)
            if not chains:
                logger.debug("Loop over %r is not reactive", source_file.node_text(collection))
                continue
            nested.commit(container, "{" + self._capture.wrap(expr, nested, chains) + "}")
        return nested.edits

    @staticmethod
    def map_call(node):
        """The first ``.map`` call in a JSX container's expression, if any.

        The call may be nested in the expression (``items.map(f).reverse()``).
        Calls inside nested functions or markup belong to their own containers.
        """
        if node.type != "jsx_expression":
            return None
        inner = named_children(node)
        if len(inner) != 1:
            return None
        stack = [inner[0]]
        while stack:
            current = unwrap_parens(stack.pop())
            if _is_map(current):
                return current
            if current.type in FUNCTION_LITERAL_TYPES or current.type in JSX_ELEMENT_TYPES:
                continue
            stack.extend(reversed(current.named_children))
        return None


def _is_map(node) -> bool:
    if node.type != "call_expression":
        return False
    callee = field(node, "function")
    if callee is None or callee.type != "member_expression":
        return False
    prop = field(callee, "property")
    return prop is not None and prop.text.decode("utf-8") == MAP_METHOD
