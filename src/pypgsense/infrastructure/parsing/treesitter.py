"""Tree-sitter backend for the syntax-tree protocols.

Tree-sitter reports UTF-8 byte offsets; nodes exposed here report character
offsets so they index the Python `str` that was parsed.
"""

import importlib
from bisect import bisect_left
from itertools import accumulate
from typing import Any, Optional

import tree_sitter
from loguru import logger

from pypgsense.config import LanguageConfig


class _OffsetMap:
    """Converts UTF-8 byte offsets into character offsets for one source string."""

    def __init__(self, source: str) -> None:
        self._identity = source.isascii()
        self._byte_starts: list[int] = []
        if not self._identity:
            self._byte_starts = list(
                accumulate((len(ch.encode("utf-8")) for ch in source), initial=0)
            )

    def to_char(self, byte_offset: int) -> int:
        if self._identity:
            return byte_offset
        return bisect_left(self._byte_starts, byte_offset)


class TreeSitterNode:
    """Adapts a tree_sitter.Node to the ISyntaxNode protocol."""

    __slots__ = ("_node", "_offsets")

    def __init__(self, node: Any, offsets: _OffsetMap) -> None:
        self._node = node
        self._offsets = offsets

    @property
    def kind(self) -> str:
        return self._node.type

    @property
    def start_index(self) -> int:
        return self._offsets.to_char(self._node.start_byte)

    @property
    def end_index(self) -> int:
        return self._offsets.to_char(self._node.end_byte)

    @property
    def child_count(self) -> int:
        return self._node.child_count

    @property
    def named_child_count(self) -> int:
        return self._node.named_child_count

    def child(self, index: int) -> Optional["TreeSitterNode"]:
        return self._wrap(self._node.child(index))

    def named_child(self, index: int) -> Optional["TreeSitterNode"]:
        return self._wrap(self._node.named_child(index))

    def child_by_field_name(self, name: str) -> Optional["TreeSitterNode"]:
        return self._wrap(self._node.child_by_field_name(name))

    def _wrap(self, node: Any) -> Optional["TreeSitterNode"]:
        if node is None:
            return None
        return TreeSitterNode(node, self._offsets)


class TreeSitterTree:
    """Adapts a tree_sitter.Tree to the ISyntaxTree protocol."""

    def __init__(self, tree: Any, source: str) -> None:
        self._tree = tree
        self._offsets = _OffsetMap(source)

    @property
    def root_node(self) -> TreeSitterNode:
        return TreeSitterNode(self._tree.root_node, self._offsets)


class TreeSitterParser:
    """Parses host-language source with a tree-sitter grammar module."""

    def __init__(self, language: LanguageConfig) -> None:
        grammar = importlib.import_module(language.grammar_module)
        self.language = language
        self._parser = tree_sitter.Parser(tree_sitter.Language(grammar.language()))

    def parse(self, source: str) -> TreeSitterTree:
        tree = self._parser.parse(source.encode("utf-8"))
        return TreeSitterTree(tree, source)


def create_parser(language: LanguageConfig) -> TreeSitterParser | None:
    """Builds a parser, or returns None (and logs) when the grammar cannot be loaded."""
    try:
        return TreeSitterParser(language)
    except Exception as e:
        logger.warning(
            "Failed to initialize tree-sitter parser '{}': {}", language.grammar_module, e
        )
        return None
