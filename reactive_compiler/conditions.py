"""Wraps reactive conditional markup in computed closures."""

from __future__ import annotations

import logging

from .capture import ExpressionCapture, NestedEdits, by_size
from .nodes import Edit, field, named_children, unwrap_parens, walk
from .parser import SourceFile

logger = logging.getLogger(__name__)

_LOGICAL_OPERATORS: frozenset[str] = frozenset({"&&", "||"})


class ConditionCompiler:
    """Compiles ``{a ? x : y}``, ``{a && x}`` and reactive template literals.

    A JSX expression container qualifies when its expression is a ternary,
    a ``&&``/``||`` expression or a template literal with substitutions.
    Containers with no external reactive read are left untouched.
    """

    def __init__(self, capture: ExpressionCapture):
        self._capture = capture

    def edits(self, source_file: SourceFile, regions: list) -> list[Edit]:
        nested = NestedEdits(source_file.source)
        candidates = [
            node
            for region in regions
            for node in walk(region)
            if self.conditional_expression(node) is not None
        ]
        for container in by_size(candidates):
            expr = self.conditional_expression(container)
            chains = self._capture.reads(expr, nested.closures(expr))
            if not chains:
                logger.debug("Condition %r has no reactive reads", source_file.node_text(expr))
                continue
            nested.commit(container, "{" + self._capture.wrap(expr, nested, chains) + "}")
        return nested.edits

    @staticmethod
    def conditional_expression(node):
        if node.type != "jsx_expression":
            return None
        inner = named_children(node)
        if len(inner) != 1:
            return None
        expr = inner[0]
        core = unwrap_parens(expr)
        if core.type == "ternary_expression":
            return expr
        if core.type == "binary_expression":
            operator = field(core, "operator")
            if operator is not None and operator.type in _LOGICAL_OPERATORS:
                return expr
            return None
        if expr.type == "template_string" and any(
            c.type == "template_substitution" for c in expr.named_children
        ):
            return expr
        return None
