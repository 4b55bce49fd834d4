from typing import Any, Literal

from pydantic import BaseModel, ConfigDict


class Document(BaseModel):
    """A raw document (a .sql file, a Python module, an editor buffer)."""

    uri: str
    content: str
    language: str = "sql"
    version: int = 0


class StringFragment(BaseModel):
    """One contiguous piece of string content inside host-language source."""

    start_offset: int
    text: str

    @property
    def end_offset(self) -> int:
        return self.start_offset + len(self.text)


class SqlCandidateGroup(BaseModel):
    """String fragments that, joined by newlines, look like one SQL statement."""

    parts: list[StringFragment]
    content: str

    @property
    def start_offset(self) -> int:
        return self.parts[0].start_offset


class StatementSpan(BaseModel):
    """A trimmed, terminator-delimited statement inside raw SQL text."""

    content_start: int
    content_end: int
    content: str


class ScanResult(BaseModel):
    """SQL found in one file: statements for SQL files, candidate groups for host code."""

    path: str
    content: str
    statements: list[StatementSpan] = []
    candidates: list[SqlCandidateGroup] = []

    def line_of(self, offset: int) -> int:
        return self.content.count("\n", 0, offset) + 1


class CompletionContext(BaseModel):
    """SQL text surrounding a cursor, as seen by the completion resolver."""

    sql_text: str
    line_prefix: str
    sql_offset: int


CompletionKind = Literal["keyword", "table", "column"]


class CompletionItem(BaseModel):
    """A single completion suggestion."""

    label: str
    kind: CompletionKind
    insert_text: str
    sort_text: str
    detail: str | None = None


class SchemaTable(BaseModel):
    """A table or view with its columns in ordinal order."""

    model_config = ConfigDict(frozen=True)

    schema_name: str
    name: str
    qualified_name: str
    columns: tuple[str, ...]


class SchemaSnapshot(BaseModel):
    """An immutable point-in-time view of table/column metadata."""

    model_config = ConfigDict(frozen=True)

    tables: tuple[SchemaTable, ...]
    by_qualified: dict[str, SchemaTable]
    by_name: dict[str, tuple[SchemaTable, ...]]
    refreshed_at: float


class QueryResult(BaseModel):
    """Rows, row count and command tag returned by the query executor."""

    rows: list[dict[str, Any]] = []
    row_count: int = 0
    command: str = ""


class ExecutionOutcome(BaseModel):
    """The result (or failure) of running user SQL, with its wall-clock duration."""

    sql: str
    duration_ms: float
    command: str | None = None
    row_count: int = 0
    rows: list[dict[str, Any]] = []
    error: str | None = None


class ValidationResult(BaseModel):
    """Outcome of a parser-level validation of a single statement."""

    kind: Literal["ok", "skipped", "error"]
    message: str | None = None
    position: int | None = None  # 1-based, into the submitted SQL text
    code: str | None = None


class Diagnostic(BaseModel):
    """A validation error anchored to a document range."""

    uri: str
    message: str
    start: int
    end: int
    code: str | None = None
    source: str = "PostgreSQL"


class ConnectionFormValues(BaseModel):
    """Individual fields of a PostgreSQL connection."""

    host: str = ""
    port: str = "5432"
    database: str = ""
    user: str = ""
    password: str = ""
    ssl_mode: Literal["disable", "require"] = "disable"


SqlTokenType = Literal["keyword", "string", "number", "operator", "variable"]


class SqlToken(BaseModel):
    """A lexical token inside SQL text, offset relative to its container."""

    start: int
    value: str
    type: SqlTokenType
