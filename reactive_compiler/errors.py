"""Failure taxonomy for the reactive template compiler.

Every condition below is recovered inside ``ReactiveCompiler.analyze`` except
``AnalysisSuperseded``, which only reaches the caller whose analysis was
overtaken by a newer request for the same file.
"""

from __future__ import annotations


class CompilerError(Exception):
    """Base class for all compiler diagnostics."""


class TypeResolutionFailure(CompilerError):
    """Type information for a node is unavailable or ambiguous."""


class TemplateParseFailure(CompilerError):
    """A markup subtree could not be parsed."""

    def __init__(self, file_path: str, message: str):
        super().__init__(f"{file_path}: {message}")
        self.file_path = file_path


class TagDerivationAmbiguity(CompilerError):
    """A derived tag lacks the structure required of custom-element names."""


class DuplicateGeneratedArtifact(CompilerError):
    """A generated ``template()`` method from a previous compile is still present."""


class AnalysisSuperseded(CompilerError):
    """A newer analysis of the same file started before this one committed."""

    def __init__(self, file_path: str):
        super().__init__(f"analysis of {file_path} superseded by a newer request")
        self.file_path = file_path
