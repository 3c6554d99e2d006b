"""Records exchanged between compiler passes."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel


class SourceLocation(BaseModel):
    """Structured source span from tree-sitter AST nodes."""

    start_line: int
    start_col: int
    end_line: int
    end_col: int

    def is_unknown(self) -> bool:
        return (
            self.start_line == 0
            and self.start_col == 0
            and self.end_line == 0
            and self.end_col == 0
        )

    def __str__(self) -> str:
        if self.is_unknown():
            return "<unknown>"
        return f"{self.start_line}:{self.start_col}-{self.end_line}:{self.end_col}"


NO_SOURCE_LOCATION = SourceLocation(start_line=0, start_col=0, end_line=0, end_col=0)


class ResolvedType(BaseModel):
    """Static type of one expression node, as far as the provider can tell."""

    text: str
    symbol: str = ""
    module: str = ""  # declaring file (or package specifier when unresolved)
    is_object_literal: bool = False
    is_callable: bool = False


class ReactiveExpression(BaseModel):
    """One compiled closure: its source, capture key and captured reads."""

    original_text: str
    capture_key: str
    paths: list[str] = []

    def record(self, path: str) -> None:
        if path not in self.paths:
            self.paths.append(path)


class TagKind(str, Enum):
    STATIC = "static"
    DYNAMIC = "dynamic"


class TagRecord(BaseModel):
    tag: str
    file_path: str
    class_name: str
    kind: TagKind = TagKind.DYNAMIC

    def owned_by(self, file_path: str, class_name: str) -> bool:
        return self.file_path == file_path and self.class_name == class_name


class ComponentDeclaration(BaseModel):
    """A class extending a recognized component base."""

    name: str
    file_path: str
    base: str = ""
    explicit_tag: str | None = None
    tag: str = ""
    template_path: str | None = None
    location: SourceLocation = NO_SOURCE_LOCATION


class ChangeEvent(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"

    @classmethod
    def _missing_(cls, value):
        aliases = {"create": cls.CREATED, "update": cls.UPDATED, "delete": cls.DELETED}
        if isinstance(value, str):
            return aliases.get(value.lower())
        return None
