"""Tree-Sitter Parsing Layer."""

from __future__ import annotations

from abc import ABC, abstractmethod

from . import constants
from .models import SourceLocation


class ParserFactory(ABC):
    """Abstract factory for obtaining a language parser."""

    @abstractmethod
    def get_parser(self, language: str): ...


class TreeSitterParserFactory(ParserFactory):
    """Concrete factory that delegates to tree-sitter-language-pack."""

    def get_parser(self, language: str):
        import tree_sitter_language_pack as tslp

        return tslp.get_parser(language)


class Parser:
    """Thin wrapper around a parser factory."""

    def __init__(self, parser_factory: ParserFactory):
        self._factory = parser_factory

    def parse(self, source: str, language: str = constants.LANGUAGE_TSX):
        return self.parse_bytes(source.encode("utf-8"), language)

    def parse_bytes(self, source: bytes, language: str = constants.LANGUAGE_TSX):
        parser = self._factory.get_parser(language)
        tree = parser.parse(source)
        return tree

    def parse_file(
        self, path: str, source: str, language: str = constants.LANGUAGE_TSX
    ) -> SourceFile:
        return SourceFile(path, source.encode("utf-8"), self, language)


class SourceFile:
    """One file's current text and tree.

    Trees are immutable: every rewrite produces new text which is parsed
    again, so node handles taken before ``replace_text`` must not be reused.
    """

    def __init__(self, path: str, source: bytes, parser: Parser, language: str):
        self.path = path
        self.language = language
        self._parser = parser
        self.source = source
        self.tree = parser.parse_bytes(source, language)

    @property
    def root(self):
        return self.tree.root_node

    @property
    def text(self) -> str:
        return self.source.decode("utf-8")

    def node_text(self, node) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8")

    def slice(self, start: int, end: int) -> str:
        return self.source[start:end].decode("utf-8")

    def source_loc(self, node) -> SourceLocation:
        s, e = node.start_point, node.end_point
        return SourceLocation(
            start_line=s[0] + 1,
            start_col=s[1],
            end_line=e[0] + 1,
            end_col=e[1],
        )

    def replace_text(self, source: bytes) -> None:
        self.source = source
        self.tree = self._parser.parse_bytes(source, self.language)
