"""Reactive template compiler package."""

from .compiler import ReactiveCompiler  # noqa: F401
from .config import CompilerConfig  # noqa: F401
from .tags import TagRegistry, derive_tag  # noqa: F401
from .api import (  # noqa: F401
    analyze,
    assign_tag,
    compile_file,
    compile_files,
    create_compiler,
    watch_change,
)
