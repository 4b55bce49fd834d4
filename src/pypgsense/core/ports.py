from collections.abc import Iterator, Sequence
from typing import Any, Optional, Protocol

from pypgsense.core.models import QueryResult


class ISyntaxNode(Protocol):
    """Protocol for a node of an externally produced syntax tree.

    Offsets are character offsets into the parsed source string.
    """

    @property
    def kind(self) -> str: ...

    @property
    def start_index(self) -> int: ...

    @property
    def end_index(self) -> int: ...

    @property
    def child_count(self) -> int: ...

    @property
    def named_child_count(self) -> int: ...

    def child(self, index: int) -> Optional["ISyntaxNode"]: ...

    def named_child(self, index: int) -> Optional["ISyntaxNode"]: ...

    def child_by_field_name(self, name: str) -> Optional["ISyntaxNode"]: ...


class ISyntaxTree(Protocol):
    @property
    def root_node(self) -> ISyntaxNode: ...


class ISyntaxParser(Protocol):
    """Protocol defining how host-language source becomes a syntax tree."""

    def parse(self, source: str) -> ISyntaxTree:
        """Parses source text into a tree whose offsets index `source`."""
        ...


class IQueryExecutor(Protocol):
    """Protocol defining how SQL reaches the database."""

    async def query(self, dsn: str, sql: str, timeout: float | None = None) -> QueryResult:
        """Runs SQL on a fresh connection and returns its rows and command tag.

        Raises QueryExecutionError on any failure.
        """
        ...

    async def execute_session(self, dsn: str, statements: Sequence[str]) -> None:
        """Runs statements in order inside one session (e.g. PREPARE then DEALLOCATE)."""
        ...


class IConnectionStore(Protocol):
    """Protocol for the single stored connection descriptor."""

    def get(self) -> str | None:
        """Returns the stored connection string, or None when nothing is configured."""
        ...

    def set(self, connection_string: str) -> None: ...

    def clear(self) -> None: ...


class ILintDocument(Protocol):
    """An open, versioned document as seen by the lint scheduler."""

    @property
    def uri(self) -> str: ...

    @property
    def version(self) -> int: ...

    @property
    def is_closed(self) -> bool: ...

    @property
    def text(self) -> str: ...


class IChunker(Protocol):
    """Protocol defining how documents are split into SQL-bearing pieces."""

    @property
    def supported_extensions(self) -> list[str]: ...

    def process(self, document: Any) -> Iterator[Any]:
        """Yields statement spans or candidate groups from a raw document."""
        ...
