"""Composable API functions for the reactive template compiler.

Each function corresponds to a CLI workflow (``compile``, ``tag``, ``change``) but is
callable programmatically without argparse.
"""

from __future__ import annotations

import logging

from .compiler import ReactiveCompiler
from .config import CompilerConfig
from .filesystem import FileSystem
from .models import ChangeEvent, ComponentDeclaration
from .tags import derive_tag

logger = logging.getLogger(__name__)


def create_compiler(
    config: CompilerConfig | None = None,
    file_system: FileSystem | None = None,
) -> ReactiveCompiler:
    """Build a compiler with fresh registries.

    Args:
        config: Compiler options; defaults to ``CompilerConfig()``.
        file_system: File access; defaults to the local disk.

    Returns:
        A ready ``ReactiveCompiler``.
    """
    return ReactiveCompiler(config=config, file_system=file_system)


def analyze(
    file_path: str,
    source_text: str,
    compiler: ReactiveCompiler | None = None,
) -> str:
    """Compile one component file.

    Args:
        file_path: Path of the file (used for imports, templates and tags).
        source_text: Current text of the file.
        compiler: Compiler holding project state; a fresh one if omitted.

    Returns:
        The rewritten source text.
    """
    compiler = compiler or create_compiler()
    return compiler.analyze(file_path, source_text)


def compile_file(file_path: str, compiler: ReactiveCompiler | None = None) -> str:
    """Read a file from disk and compile it.

    Args:
        file_path: Path of the script file.
        compiler: Compiler holding project state; a fresh one if omitted.

    Returns:
        The rewritten source text.
    """
    compiler = compiler or create_compiler()
    source = compiler.file_system.read_text(file_path)
    return compiler.analyze(file_path, source)


def compile_files(
    file_paths: list[str], compiler: ReactiveCompiler | None = None
) -> dict[str, str]:
    """Compile several files against one shared registry.

    Components are discovered in a first round so that classes extending a
    component declared in another file are recognized in the second.

    Args:
        file_paths: Script files, in any order.
        compiler: Compiler holding project state; a fresh one if omitted.

    Returns:
        A dict mapping each path to its rewritten text.
    """
    compiler = compiler or create_compiler()
    sources = {path: compiler.file_system.read_text(path) for path in file_paths}
    for path, source in sources.items():
        compiler.analyze(path, source)
    logger.info("Compiling %d file(s)", len(sources))
    return {path: compiler.analyze(path, source) for path, source in sources.items()}


def watch_change(
    file_path: str, event: ChangeEvent | str, compiler: ReactiveCompiler
) -> list[str]:
    """Forward a file-system change to *compiler*.

    Args:
        file_path: The changed file (script or template).
        event: ``created``/``updated``/``deleted`` (or create/update/delete).
        compiler: Compiler holding project state.

    Returns:
        Script files that need to be analyzed again.
    """
    return compiler.watch_change(file_path, event)


def assign_tag(class_name: str, file_path: str, compiler: ReactiveCompiler) -> str:
    """Tag of a component, assigning one if it has none yet.

    Args:
        class_name: Component class name.
        file_path: File declaring the class.
        compiler: Compiler holding the tag registry.

    Returns:
        The component's custom-element tag.
    """
    return compiler.assign_tag(class_name, file_path)


def reserve_defined_elements(file_paths: list[str], compiler: ReactiveCompiler) -> list[str]:
    """Reserve the tags of already compiled components before compiling.

    Args:
        file_paths: Compiled modules (for example a library's ``dist`` files).
        compiler: Compiler holding the tag registry.

    Returns:
        The reserved tags.
    """
    return compiler.reserve_defined_elements(file_paths)


def components(file_path: str, compiler: ReactiveCompiler) -> list[ComponentDeclaration]:
    """Components discovered by the last analysis of *file_path*."""
    return compiler.components(file_path)


def tag_for(class_name: str) -> str:
    """Tag derived from a class name, before any collision handling."""
    return derive_tag(class_name)
