from typing import Any

from pypgsense.config import LanguageConfig
from pypgsense.core.ports import ISyntaxParser
from pypgsense.infrastructure.chunking.embedded import EmbeddedSqlChunker
from pypgsense.infrastructure.chunking.sql import SqlStatementChunker
from pypgsense.infrastructure.parsing.treesitter import create_parser


class ComponentRegistry:
    """Registry pattern to dynamically map string names to class implementations."""

    _chunkers: dict[str, Any] = {
        "sql": SqlStatementChunker,
        "embedded": EmbeddedSqlChunker,
    }

    # One parser per host language; None records a grammar that failed to load
    _parsers: dict[str, ISyntaxParser | None] = {}

    @classmethod
    def get_chunker(cls, name: str) -> Any:
        if name not in cls._chunkers:
            raise ValueError(f"Unknown chunker type: '{name}'")
        return cls._chunkers[name]

    @classmethod
    def get_parser(cls, name: str, language: LanguageConfig) -> ISyntaxParser | None:
        if name not in cls._parsers:
            cls._parsers[name] = create_parser(language)
        return cls._parsers[name]

    @classmethod
    def reset_parsers(cls) -> None:
        cls._parsers.clear()
