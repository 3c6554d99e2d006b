"""Reactive Compiler: per-file pass pipeline and shared project state.

Passes run in order on one file, each producing non-overlapping edits that
are applied before the file is parsed again:

1. template injection (sibling ``.template`` files);
2. reactive call sites (``computed``, ``ref<T>()``, ``refProperty``);
3. conditions, then loops, inside each component's ``template()``;
4. lowering of that markup to ``createElement`` calls.

Tags are assigned for every discovered component regardless of how the
rewrite passes fared.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable

from .capture import CapturePass, ExpressionCapture
from .classifier import TypeClassifier
from .components import ComponentClass, ComponentScanner, defined_tags, template_method
from .conditions import ConditionCompiler
from .config import CompilerConfig
from .errors import AnalysisSuperseded, TemplateParseFailure
from .filesystem import FileSystem, LocalFileSystem
from .index import DeclarationIndex
from .loops import LoopCompiler
from .lowering import TemplateLowering, ensure_well_formed
from .models import ChangeEvent, ComponentDeclaration
from .nodes import Edit, apply_edits
from .parser import Parser, ParserFactory, SourceFile, TreeSitterParserFactory
from .tags import TagRegistry
from .templates import TemplateInjector, template_module
from .type_provider import SourceTypeProvider, TypeProvider

logger = logging.getLogger(__name__)

TypeProviderFactory = Callable[[SourceFile, DeclarationIndex, CompilerConfig], TypeProvider]


def _default_provider(
    source_file: SourceFile, index: DeclarationIndex, config: CompilerConfig
) -> TypeProvider:
    return SourceTypeProvider(source_file, index, config)


class ReactiveCompiler:
    """Compiles component files and owns the project-wide registries.

    ``analyze`` may be called concurrently for different files. Shared
    state is only touched under ``self._lock``; each analysis of a path
    takes a generation number and fails with ``AnalysisSuperseded`` if a
    newer analysis of the same path started before it committed.
    """

    def __init__(
        self,
        config: CompilerConfig | None = None,
        registry: TagRegistry | None = None,
        index: DeclarationIndex | None = None,
        parser_factory: ParserFactory | None = None,
        file_system: FileSystem | None = None,
        type_provider_factory: TypeProviderFactory | None = None,
    ):
        self.config = config or CompilerConfig()
        self.file_system = file_system or LocalFileSystem()
        self.parser = Parser(parser_factory or TreeSitterParserFactory())
        self.registry = registry or TagRegistry(self.file_system, self.config.tag_suffix)
        self.registry.use_liveness(self._is_live)
        self.index = index or DeclarationIndex(self.config, self.file_system, self.parser)
        self._provider_factory = type_provider_factory or _default_provider
        self._injector = TemplateInjector(self.config, self.file_system, self.parser)
        self._lock = threading.RLock()
        self._generations: dict[str, int] = {}
        self._components: dict[str, list[ComponentDeclaration]] = {}
        self._templates: dict[str, tuple[str, str]] = {}
        # files whose tags changed outside their own analysis
        self._reanalyze: list[str] = []

    # ── public operations ────────────────────────────────────────

    def analyze(self, file_path: str, source_text: str) -> str:
        """Rewrite one file; returns the new text (the input if nothing applies)."""
        if file_path.endswith(self.config.template_extension):
            logger.debug("%s is imported as a template module", file_path)
            return template_module(file_path)
        generation = self._begin(file_path)
        logger.info("Analyzing %s", file_path)
        source_file = self.parser.parse_file(file_path, source_text, self.config.language)
        reserved = defined_tags(source_file) if self.config.define_element in source_text else []
        scanner = self._scanner()
        components = scanner.scan(source_file)
        declarations = [c.declaration for c in components]
        loaded: dict[str, str] = {}
        output = source_text
        if components or self._mentions_reactive_call(source_text):
            try:
                loaded = self._inject_templates(source_file, components)
                self._capture_calls(source_file, scanner)
                self._compile_templates(source_file, scanner)
                output = source_file.text
            except TemplateParseFailure as exc:
                logger.error("Template parse failure, keeping original text: %s", exc)
                output = source_text
        self._commit(file_path, generation, declarations, loaded, reserved)
        return output

    def watch_change(self, file_path: str, event: ChangeEvent | str) -> list[str]:
        """React to a file-system change; returns the script files to re-analyze."""
        event = ChangeEvent(event)
        with self._lock:
            if file_path.endswith(self.config.template_extension):
                affected = self._template_changed(file_path, event)
            else:
                affected = self._script_changed(file_path, event)
            self._reassign_evicted()
            for stale in self._reanalyze:
                if stale not in affected:
                    affected.append(stale)
            self._reanalyze = []
            return affected

    def reserve_defined_elements(self, paths: list[str]) -> list[str]:
        """Reserve the ``static TAG`` values of already compiled component modules.

        Returns the reserved tags. Files that do not call the runtime's
        ``defineElement`` are skipped.
        """
        reserved = []
        for path in paths:
            try:
                text = self.file_system.read_text(path)
            except (OSError, UnicodeDecodeError) as exc:
                logger.error("Cannot read %s for defined elements: %s", path, exc)
                continue
            if self.config.define_element not in text:
                continue
            tags = defined_tags(self.parser.parse_file(path, text, self.config.language))
            with self._lock:
                self.registry.reserve_file(path, tags)
                self._reassign_evicted()
            logger.debug("%s defines %s", path, ", ".join(tags) or "no tags")
            reserved.extend(tags)
        return reserved

    def assign_tag(self, class_name: str, file_path: str) -> str:
        with self._lock:
            tag = self.registry.tag_of(class_name, file_path)
            if tag is not None:
                return tag
            explicit = next(
                (
                    d.explicit_tag
                    for d in self._components.get(file_path, [])
                    if d.name == class_name
                ),
                None,
            )
            return self.registry.assign(class_name, file_path, explicit)

    def components(self, file_path: str) -> list[ComponentDeclaration]:
        with self._lock:
            return [d.model_copy() for d in self._components.get(file_path, [])]

    def template_owner(self, template_path: str) -> tuple[str, str] | None:
        with self._lock:
            return self._templates.get(os.path.normpath(template_path))

    def close(self) -> None:
        with self._lock:
            self._components.clear()
            self._templates.clear()
            self._reanalyze = []
            self._generations.clear()

    # ── passes ───────────────────────────────────────────────────

    def _is_live(self, file_path: str) -> bool:
        # committed and not deleted, or present on the file system
        return file_path in self._components or self.file_system.exists(file_path)

    def _scanner(self) -> ComponentScanner:
        return ComponentScanner(self.config, self._is_known_component)

    def _is_known_component(self, name: str) -> bool:
        with self._lock:
            return any(d.name == name for decls in self._components.values() for d in decls)

    def _mentions_reactive_call(self, text: str) -> bool:
        names = (
            self.config.computed_function,
            self.config.ref_function,
            self.config.ref_property_function,
        )
        return any(name in text for name in names)

    def _classifier(self, source_file: SourceFile) -> TypeClassifier:
        provider = self._provider_factory(source_file, self.index, self.config)
        return TypeClassifier(source_file, provider, self.config, self.index)

    def _apply(self, source_file: SourceFile, edits: list[Edit], label: str) -> None:
        if not edits:
            return
        logger.debug("%s: %s applied %d edit(s)", source_file.path, label, len(edits))
        source_file.replace_text(apply_edits(source_file.source, edits))

    def _regions(self, source_file: SourceFile, scanner: ComponentScanner) -> list:
        regions = []
        for component in scanner.scan(source_file):
            method = template_method(component.node, self.config.template_method)
            if method is not None:
                regions.append(method)
        return regions

    def _inject_templates(self, source_file: SourceFile, components: list[ComponentClass]) -> dict[str, str]:
        edits, loaded = self._injector.edits(source_file, components)
        self._apply(source_file, edits, "template injection")
        return loaded

    def _capture_calls(self, source_file: SourceFile, scanner: ComponentScanner) -> None:
        ranges = [(c.node.start_byte, c.node.end_byte) for c in scanner.scan(source_file)]
        capture = ExpressionCapture(source_file, self._classifier(source_file), self.config)
        self._apply(source_file, CapturePass(capture, self.config, ranges).edits(source_file), "capture")
        self._log_closures(source_file, capture)

    def _log_closures(self, source_file: SourceFile, capture: ExpressionCapture) -> None:
        for expression in capture.expressions:
            logger.debug(
                "%s: closure %s tracks %s",
                source_file.path,
                expression.capture_key,
                ", ".join(expression.paths) or "nothing",
            )

    def _compile_templates(self, source_file: SourceFile, scanner: ComponentScanner) -> None:
        regions = self._regions(source_file, scanner)
        if not regions:
            return
        ensure_well_formed(source_file, regions)
        capture = ExpressionCapture(source_file, self._classifier(source_file), self.config)
        self._apply(source_file, ConditionCompiler(capture).edits(source_file, regions), "conditions")
        self._log_closures(source_file, capture)

        regions = self._regions(source_file, scanner)
        capture = ExpressionCapture(source_file, self._classifier(source_file), self.config)
        self._apply(source_file, LoopCompiler(capture).edits(source_file, regions), "loops")
        self._log_closures(source_file, capture)

        regions = self._regions(source_file, scanner)
        lowering = TemplateLowering(source_file, self.config)
        self._apply(source_file, lowering.edits(regions), "lowering")

    # ── generations & commit ─────────────────────────────────────

    def _begin(self, file_path: str) -> int:
        with self._lock:
            generation = self._generations.get(file_path, 0) + 1
            self._generations[file_path] = generation
            return generation

    def _commit(
        self,
        file_path: str,
        generation: int,
        declarations: list[ComponentDeclaration],
        loaded: dict[str, str],
        reserved: list[str],
    ) -> None:
        with self._lock:
            if self._generations.get(file_path) != generation:
                logger.info("Discarding superseded analysis of %s", file_path)
                raise AnalysisSuperseded(file_path)
            self.registry.reserve_file(file_path, reserved)
            self._assign_tags(file_path, declarations)
            self._components[file_path] = declarations
            self._reassign_evicted()
            self._templates = {
                path: owner for path, owner in self._templates.items() if owner[0] != file_path
            }
            for template_path, class_name in loaded.items():
                self._templates[os.path.normpath(template_path)] = (file_path, class_name)
            self.index.invalidate(file_path)
            logger.info(
                "%s: %d component(s) %s",
                file_path,
                len(declarations),
                ", ".join(f"{d.name}<{d.tag}>" for d in declarations),
            )

    def _assign_tags(self, file_path: str, declarations: list[ComponentDeclaration]) -> None:
        tags = self.registry.assign_file(
            file_path, [(d.name, d.explicit_tag) for d in declarations]
        )
        for declaration in declarations:
            declaration.tag = tags.get(declaration.name, "")

    def _reassign_evicted(self) -> None:
        """Give files evicted by a static claim fresh tags and queue them for re-analysis."""
        done: set[str] = set()
        pending = self.registry.drain_stale()
        while pending:
            stale = pending.pop(0)
            if stale not in self._reanalyze:
                self._reanalyze.append(stale)
            declarations = self._components.get(stale)
            if declarations is None or stale in done:
                continue
            done.add(stale)
            self._assign_tags(stale, declarations)
            logger.info(
                "Reassigned %s after eviction: %s",
                stale,
                ", ".join(f"{d.name}<{d.tag}>" for d in declarations),
            )
            pending.extend(p for p in self.registry.drain_stale() if p not in pending)

    # ── change events────────────────────────────────────────────

    def _template_changed(self, template_path: str, event: ChangeEvent) -> list[str]:
        key = os.path.normpath(template_path)
        owner = self._templates.get(key)
        if event == ChangeEvent.DELETED:
            if owner is None:
                return []
            del self._templates[key]
            return [owner[0]]
        if owner is not None:
            return [owner[0]]
        class_name = os.path.basename(template_path)[: -len(self.config.template_extension)]
        folder = os.path.dirname(key)
        for file_path, declarations in self._components.items():
            if os.path.dirname(os.path.normpath(file_path)) != folder:
                continue
            if any(d.name == class_name for d in declarations):
                self._templates[key] = (file_path, class_name)
                logger.info("Template %s attached to %s in %s", template_path, class_name, file_path)
                return [file_path]
        return []

    def _script_changed(self, file_path: str, event: ChangeEvent) -> list[str]:
        if event != ChangeEvent.DELETED:
            return [file_path]
        self.registry.forget_file(file_path)
        self._components.pop(file_path, None)
        self._reanalyze = [p for p in self._reanalyze if p != file_path]
        self._generations.pop(file_path, None)
        self._templates = {
            path: owner for path, owner in self._templates.items() if owner[0] != file_path
        }
        self.index.invalidate(file_path)
        logger.info("Forgot deleted %s", file_path)
        return []
