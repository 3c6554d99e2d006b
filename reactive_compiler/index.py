"""Maps import specifiers to the files that declare them."""

from __future__ import annotations

import logging
import os
import threading

from . import constants
from .config import CompilerConfig
from .filesystem import FileSystem
from .nodes import field, first_field, statement_bindings, walk
from .parser import Parser, SourceFile

logger = logging.getLogger(__name__)

_RESOLUTION_SUFFIXES: tuple[str, ...] = (
    "",
    ".ts",
    ".tsx",
    constants.TYPING_EXTENSION,
    ".js",
    ".jsx",
    "/index.ts",
    "/index.tsx",
    "/index" + constants.TYPING_EXTENSION,
    "/index.js",
)

_EXPORTABLE_TYPES: frozenset[str] = frozenset(
    {
        "function_signature",
        "function_declaration",
        "class_declaration",
        "abstract_class_declaration",
        "interface_declaration",
        "type_alias_declaration",
        "enum_declaration",
        "variable_declarator",
    }
)

NODE_MODULES = "node_modules"


def is_relative(specifier: str) -> bool:
    return specifier.startswith("./") or specifier.startswith("../") or specifier in (".", "..")


def package_name(specifier: str) -> str:
    """Package part of a bare specifier: ``@scope/pkg/sub`` -> ``@scope/pkg``."""
    parts = specifier.split("/")
    if specifier.startswith("@") and len(parts) > 1:
        return "/".join(parts[:2])
    return parts[0]


def _strip_quotes(text: str) -> str:
    return text[1:-1] if len(text) >= 2 and text[0] in "'\"`" else text


class DeclarationIndex:
    """Resolves ``(importing file, specifier, export name)`` to a declaring file.

    Relative specifiers are resolved against the importing file. Bare package
    specifiers are answered from the configured reactive export seeds first,
    then by scanning the package's ``.d.ts`` files under the nearest
    ``node_modules`` directory. Unresolvable packages answer with the
    specifier itself, which never matches a reactive module.
    """

    def __init__(self, config: CompilerConfig, file_system: FileSystem, parser: Parser):
        self._config = config
        self._fs = file_system
        self._parser = parser
        self._lock = threading.RLock()
        self._export_cache: dict[tuple[str, str], str] = {}
        self._files: dict[str, SourceFile] = {}

    def resolve_specifier(self, from_file: str, specifier: str) -> str:
        if not is_relative(specifier):
            return specifier
        base = os.path.normpath(os.path.join(os.path.dirname(from_file), specifier))
        stems = [base]
        if base.endswith(".js"):
            stems.append(base[: -len(".js")])
        for stem in stems:
            for suffix in _RESOLUTION_SUFFIXES:
                candidate = stem + suffix
                if self._fs.exists(candidate):
                    return candidate
        return base

    def declaring_file(self, from_file: str, specifier: str, export_name: str) -> str:
        if is_relative(specifier):
            return self.resolve_specifier(from_file, specifier)
        package = package_name(specifier)
        root = self._package_root(from_file, package)
        seeded = self._config.reactive_exports.get(specifier) or self._config.reactive_exports.get(package)
        if seeded and export_name in seeded:
            base = os.path.dirname(root) if root else NODE_MODULES
            return os.path.join(base, constants.REACTIVE_DECLARATION_FILE)
        if root is None:
            logger.debug("Package %s not found from %s", package, from_file)
            return specifier
        key = (root, export_name)
        with self._lock:
            if key not in self._export_cache:
                self._export_cache[key] = self._scan_package(root, export_name) or specifier
            return self._export_cache[key]

    def project_file(self, path: str) -> SourceFile | None:
        """Parsed project source for cross-file type lookups, cached by path."""
        if path.endswith(constants.TYPING_EXTENSION) or not path.endswith(
            constants.SCRIPT_EXTENSIONS
        ):
            return None
        with self._lock:
            if path not in self._files:
                if not self._fs.exists(path):
                    return None
                self._files[path] = self._parser.parse_file(
                    path, self._fs.read_text(path), self._config.language
                )
            return self._files[path]

    def invalidate(self, path: str) -> None:
        with self._lock:
            self._files.pop(path, None)
            self._export_cache = {
                k: v for k, v in self._export_cache.items() if v != path
            }

    def runtime_counterparts(self, typing_path: str) -> list[str]:
        """JavaScript files that a ``.d.ts`` file describes."""
        if not typing_path.endswith(constants.TYPING_EXTENSION):
            return []
        stem = typing_path[: -len(constants.TYPING_EXTENSION)]
        candidates = [stem + constants.RUNTIME_EXTENSION]
        parts = stem.replace("\\", "/").split("/")
        for marker in ("types", "typings", "dts"):
            if marker in parts:
                trimmed = [p for p in parts if p != marker]
                candidates.append("/".join(trimmed) + constants.RUNTIME_EXTENSION)
        return [c for c in candidates if self._fs.exists(c)]

    # ── package scanning ─────────────────────────────────────────

    def _package_root(self, from_file: str, package: str) -> str | None:
        directory = os.path.dirname(from_file)
        while True:
            candidate = os.path.join(directory, NODE_MODULES, package)
            if self._fs.exists(os.path.join(candidate, "package.json")):
                return candidate
            parent = os.path.dirname(directory)
            if parent == directory:
                return None
            directory = parent

    def _scan_package(self, root: str, export_name: str) -> str | None:
        for path in self._fs.list_files(root, constants.TYPING_EXTENSION):
            declaring = self._declaring(path, export_name, depth=0)
            if declaring is not None:
                logger.debug("Export %s of %s declared in %s", export_name, root, declaring)
                return declaring
        return None

    def _declaring(self, path: str, export_name: str, depth: int) -> str | None:
        """The typing file declaring *export_name* as seen from *path*, following re-exports."""
        if depth > constants.MAX_ALIAS_DEPTH or not self._fs.exists(path):
            return None
        tree = self._parser.parse(self._fs.read_text(path), self._config.language)
        for stmt in tree.root_node.named_children:
            if stmt.type != "export_statement":
                continue
            declaration = field(stmt, "declaration")
            if declaration is not None and export_name in _declared_names(declaration):
                return path
            if declaration is None:
                declaring = self._reexport(stmt, path, export_name, depth)
                if declaring is not None:
                    return declaring
        return None

    def _reexport(self, stmt, path: str, export_name: str, depth: int) -> str | None:
        source = field(stmt, "source")
        if source is None:
            return None
        clause = next((c for c in stmt.named_children if c.type == "export_clause"), None)
        name = export_name
        if clause is not None:
            # export { Ref as Box } from "..." exposes Ref under the name Box
            exported = {
                first_field(spec, "alias", "name").text.decode("utf-8"): (
                    field(spec, "name").text.decode("utf-8")
                )
                for spec in clause.named_children
                if spec.type == "export_specifier"
            }
            if export_name not in exported:
                return None
            name = exported[export_name]
        specifier = _strip_quotes(source.text.decode("utf-8"))
        target = self.resolve_specifier(path, specifier)
        if not target.endswith(constants.TYPING_EXTENSION):
            stem = target[: -len(".js")] if target.endswith(".js") else target
            target = stem + constants.TYPING_EXTENSION
        return self._declaring(target, name, depth + 1)


def _declared_names(declaration) -> set[str]:
    names = {b.name for b in statement_bindings(declaration)}
    for node in walk(declaration):
        if node.type in _EXPORTABLE_TYPES:
            name = field(node, "name")
            if name is not None:
                names.add(name.text.decode("utf-8"))
    return names
