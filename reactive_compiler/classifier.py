"""Classifies expressions as reactive containers or plain values."""

from __future__ import annotations

import logging
import re

from . import constants
from .config import CompilerConfig
from .errors import TypeResolutionFailure
from .index import DeclarationIndex
from .nodes import (
    CLASS_TYPES,
    field,
    first_ancestor,
    is_call_target,
    is_declaration_name,
    is_jsx_tag_name,
    resolve_binding,
)
from .parser import SourceFile
from .type_provider import TypeProvider

logger = logging.getLogger(__name__)


class TypeClassifier:
    """Classifies nodes of one parsed file; one instance per pass.

    The syntactic pre-filter (``is_candidate``) is cheap and rejects nodes
    that can never be container reads. ``is_reactive`` asks the type
    provider and anchors the answer to the declaring module of the type,
    so a local helper named ``ref`` is never mistaken for the primitive.
    """

    def __init__(
        self,
        source_file: SourceFile,
        provider: TypeProvider,
        config: CompilerConfig,
        index: DeclarationIndex | None = None,
    ):
        self._file = source_file
        self._provider = provider
        self._index = index
        self._pattern = re.compile(config.reactive_module_pattern)
        self._cache: dict[tuple[int, int, str], bool] = {}

    def is_candidate(self, node) -> bool:
        if node.type == "member_expression":
            obj = field(node, "object")
            return obj is not None and obj.type == "this" and first_ancestor(
                node, CLASS_TYPES
            ) is not None
        if node.type == "shorthand_property_identifier":
            return resolve_binding(self._file.node_text(node), node) is not None
        if node.type != "identifier":
            return False
        name = self._file.node_text(node)
        if name in constants.NON_REFERENCE_NAMES:
            return False
        if is_declaration_name(node) or is_jsx_tag_name(node) or is_call_target(node):
            return False
        return resolve_binding(name, node) is not None

    def is_reactive(self, node) -> bool:
        key = (node.start_byte, node.end_byte, node.type)
        if key not in self._cache:
            self._cache[key] = self.is_candidate(node) and self._classify(node)
        return self._cache[key]

    def matches_reactive_module(self, path: str) -> bool:
        return bool(path) and self._pattern.search(path) is not None

    def _classify(self, node) -> bool:
        text = self._file.node_text(node)
        try:
            resolved = self._provider.type_of(node)
            if resolved is None:
                raise TypeResolutionFailure(f"no type for {text!r}")
            if resolved.is_object_literal:
                logger.debug("%s: object literal type is never reactive", text)
                return False
            if resolved.is_callable:
                logger.debug("%s: function type is never reactive", text)
                return False
            declaring = self._provider.declaring_file(resolved)
            if not declaring:
                raise TypeResolutionFailure(f"no declaring file for {text!r}")
        except TypeResolutionFailure as exc:
            logger.debug("%s at %s: treated as non-reactive (%s)", text, self._file.source_loc(node), exc)
            return False
        if self.matches_reactive_module(declaring):
            logger.debug("%s is reactive (declared in %s)", text, declaring)
            return True
        if declaring.endswith(constants.TYPING_EXTENSION) and self._index is not None:
            counterparts = self._index.runtime_counterparts(declaring)
            if any(self.matches_reactive_module(c) for c in counterparts):
                logger.debug("%s is reactive (runtime module of %s)", text, declaring)
                return True
        return False

    def is_reactive_callee(self, callee, name: str) -> bool:
        """True when *callee* is the imported reactive primitive *name*."""
        if callee is None or callee.type != "identifier":
            return False
        if self._file.node_text(callee) != name:
            return False
        binding = resolve_binding(name, callee)
        if binding is None or binding.kind != "import":
            return False
        return self._classify(callee)
