"""Loads sibling ``.template`` files into component classes.

``<dir>/<ClassName>.template`` holds markup (optionally preceded by import
lines). It becomes the class's ``template()`` method, its imports are
merged into the script, and a side-effect import of the template file is
added so bundlers watch it.
"""

from __future__ import annotations

import json
import logging
import os
import textwrap
from dataclasses import dataclass

from .components import ComponentClass, template_method
from .config import CompilerConfig
from .errors import DuplicateGeneratedArtifact
from .filesystem import FileSystem
from .nodes import Edit, field, named_children
from .parser import Parser, SourceFile

logger = logging.getLogger(__name__)

DEFAULT_INDENT = 2


@dataclass(frozen=True)
class TemplateSource:
    path: str
    imports: str
    markup: str


@dataclass(frozen=True)
class ImportSpec:
    specifier: str
    default: str | None
    names: tuple[str, ...]


def template_module(path: str) -> str:
    """JavaScript module standing in for a template file imported for its side effect."""
    return f"export default function () {{\n  return {json.dumps(path)};\n}}\n"


def split_template(text: str) -> tuple[str, str]:
    """Separate the leading import lines of a template from its markup."""
    lines = text.strip().split("\n")
    imports = []
    position = 0
    for position, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith("import") or not stripped:
            if stripped:
                imports.append(stripped)
            continue
        break
    else:
        position = len(lines)
    return "\n".join(imports), "\n".join(lines[position:])


def _unquote(text: str) -> str:
    return text[1:-1] if len(text) >= 2 and text[0] in "'\"`" else text


def read_imports(tree, source: bytes) -> list[ImportSpec]:
    """Import statements at the top level of a parsed tree."""
    root = tree.root_node
    specs = []
    for stmt in root.named_children:
        if stmt.type != "import_statement":
            continue
        module = field(stmt, "source")
        if module is None:
            continue
        default = None
        names: list[str] = []
        clause = next((c for c in stmt.named_children if c.type == "import_clause"), None)
        for child in clause.named_children if clause is not None else []:
            if child.type == "identifier":
                default = source[child.start_byte : child.end_byte].decode("utf-8")
            elif child.type == "named_imports":
                names.extend(
                    source[s.start_byte : s.end_byte].decode("utf-8")
                    for s in child.named_children
                    if s.type == "import_specifier"
                )
        specs.append(
            ImportSpec(
                specifier=_unquote(source[module.start_byte : module.end_byte].decode("utf-8")),
                default=default,
                names=tuple(names),
            )
        )
    return specs


class TemplateInjector:
    """Turns sibling template files into generated ``template()`` methods."""

    def __init__(self, config: CompilerConfig, file_system: FileSystem, parser: Parser):
        self._config = config
        self._fs = file_system
        self._parser = parser

    def template_path(self, file_path: str, class_name: str) -> str:
        return os.path.join(
            os.path.dirname(file_path), class_name + self._config.template_extension
        )

    def load(self, file_path: str, class_name: str) -> TemplateSource | None:
        path = self.template_path(file_path, class_name)
        if not self._fs.exists(path):
            return None
        try:
            text = self._fs.read_text(path)
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Cannot read template %s, skipping injection: %s", path, exc)
            return None
        imports, markup = split_template(text)
        return TemplateSource(path=path, imports=imports, markup=markup)

    def edits(
        self, source_file: SourceFile, components: list[ComponentClass]
    ) -> tuple[list[Edit], dict[str, str]]:
        """Edits injecting every available template, and template path -> class name."""
        edits: list[Edit] = []
        loaded: dict[str, str] = {}
        wanted: list[ImportSpec] = []
        for component in components:
            template = self.load(source_file.path, component.name)
            if template is None:
                continue
            component.declaration.template_path = template.path
            loaded[template.path] = component.name
            edits.append(self._method_edit(source_file, component, template))
            if template.imports:
                tree = self._parser.parse(template.imports, self._config.language)
                wanted.extend(read_imports(tree, template.imports.encode("utf-8")))
            basename = os.path.basename(template.path)
            wanted.append(ImportSpec(specifier=f"./{basename}", default=None, names=()))
        import_edit = self._import_edit(source_file, wanted)
        if import_edit is not None:
            edits.append(import_edit)
        return edits, loaded

    def _method_edit(self, source_file: SourceFile, component: ComponentClass, template: TemplateSource) -> Edit:
        body = field(component.node, "body")
        indent, unit = _indentation(component.node, body)
        text = _method_text(self._config.template_method, template.markup, indent, unit)
        existing = template_method(component.node, self._config.template_method)
        if existing is not None:
            logger.warning(
                "%s",
                DuplicateGeneratedArtifact(
                    f"{source_file.path}: {component.name}.{self._config.template_method}() "
                    f"already present, regenerating from {template.path}"
                ),
            )
            previous = existing.prev_sibling
            start = previous.end_byte if previous is not None else existing.start_byte
            separator = "\n\n" if previous is not None and previous.type != "{" else "\n"
            return Edit(start, existing.end_byte, separator + text)
        anchor = body.children[-2] if len(body.children) >= 2 else body.children[0]
        separator = "\n" if anchor.type == "{" else "\n\n"
        return Edit(anchor.end_byte, anchor.end_byte, separator + text)

    def _import_edit(self, source_file: SourceFile, wanted: list[ImportSpec]) -> Edit | None:
        existing = read_imports(source_file.tree, source_file.source)
        present: dict[str, set[str]] = {}
        side_effect: set[str] = set()
        for spec in existing:
            names = present.setdefault(spec.specifier, set())
            names.update(spec.names)
            if spec.default:
                names.add(spec.default)
            if not spec.names and not spec.default:
                side_effect.add(spec.specifier)
        lines: list[str] = []
        for spec in wanted:
            if not spec.names and not spec.default:
                if spec.specifier in side_effect or spec.specifier in present:
                    continue
                side_effect.add(spec.specifier)
                present.setdefault(spec.specifier, set())
                lines.append(f'import "{spec.specifier}";')
                continue
            names = present.setdefault(spec.specifier, set())
            default = spec.default if spec.default and spec.default not in names else None
            missing = [n for n in spec.names if n not in names]
            if default is None and not missing:
                continue
            names.update(missing)
            if default:
                names.add(default)
            lines.append(_import_line(spec.specifier, default, missing))
        if not lines:
            return None
        statements = [c for c in source_file.root.named_children if c.type == "import_statement"]
        if statements:
            position = statements[-1].end_byte
            return Edit(position, position, "\n" + "\n".join(lines))
        return Edit(0, 0, "\n".join(lines) + "\n")


def _import_line(specifier: str, default: str | None, names: list[str]) -> str:
    parts = []
    if default:
        parts.append(default)
    if names:
        parts.append("{ " + ", ".join(names) + " }")
    return f'import {", ".join(parts)} from "{specifier}";'


def _indentation(class_node, body) -> tuple[str, str]:
    class_column = class_node.start_point[1]
    members = named_children(body) if body is not None else []
    if members:
        column = members[0].start_point[1]
        unit = column - class_column if column > class_column else DEFAULT_INDENT
        return " " * column, " " * unit
    return " " * (class_column + DEFAULT_INDENT), " " * DEFAULT_INDENT


def _method_text(name: str, markup: str, indent: str, unit: str) -> str:
    markup = textwrap.dedent(markup).strip("\n")
    if not markup.strip():
        return f"{indent}{name}() {{}}"
    inner = indent + unit
    body = textwrap.indent(markup, inner + unit)
    return f"{indent}{name}() {{\n{inner}return (\n{body}\n{inner});\n{indent}}}"
