import re

from loguru import logger

from pypgsense.core.identifiers import normalize_identifier, normalize_reference
from pypgsense.core.models import CompletionContext, CompletionItem, SchemaSnapshot
from pypgsense.infrastructure.chunking.sql import split_raw_segments
from pypgsense.services.extraction import ExtractionService
from pypgsense.services.schema_cache import SchemaSnapshotCache

SQL_KEYWORDS = [
    "SELECT", "FROM", "WHERE", "JOIN", "LEFT JOIN", "RIGHT JOIN", "INNER JOIN",
    "GROUP BY", "ORDER BY", "LIMIT", "INSERT INTO", "VALUES", "UPDATE", "SET",
    "DELETE", "RETURNING", "CREATE TABLE", "ALTER TABLE", "DROP TABLE", "WITH",
    "AS", "AND", "OR", "NOT", "IN", "EXISTS",
]

QUALIFIER_RE = re.compile(r"([A-Za-z_][A-Za-z0-9_$]*)\.\s*([A-Za-z_][A-Za-z0-9_$]*)?$")
TABLE_CONTEXT_RE = re.compile(r'\b(from|join|update|into|table)\s+[\w."$]*$', re.IGNORECASE)
SELECT_CONTEXT_RE = re.compile(r"\bselect\s+[\w\W]*$", re.IGNORECASE)

# Words that may follow a table reference without being its alias
_CLAUSE_WORDS = (
    "where|join|inner|left|right|full|cross|outer|natural|on|using|group|order|limit|"
    "offset|having|union|intersect|except|window|returning|set|values|select|for|fetch"
)
_IDENT = r'(?:"[^"]+"|[A-Za-z_][A-Za-z0-9_$]*)'
ALIAS_RE = re.compile(
    rf"\b(?:from|join)\s+({_IDENT}(?:\s*\.\s*{_IDENT})?)\s+(?:as\s+)?"
    rf'(?!(?:{_CLAUSE_WORDS})\b)("?[A-Za-z_][A-Za-z0-9_$]*"?)',
    re.IGNORECASE,
)


def extract_table_aliases(sql: str) -> dict[str, str]:
    """Maps each normalized alias declared in a from/join clause to its normalized reference."""
    aliases: dict[str, str] = {}
    for match in ALIAS_RE.finditer(sql):
        reference = normalize_reference(match.group(1))
        alias = normalize_identifier(match.group(2))
        if reference and alias:
            aliases[alias] = reference
    return aliases


def resolve_columns_for_reference(snapshot: SchemaSnapshot, reference: str) -> list[str]:
    """Columns of `schema.table` exactly, or of every table named `table` in any schema."""
    normalized = normalize_reference(reference)
    if not normalized:
        return []

    if "." in normalized:
        exact = snapshot.by_qualified.get(normalized)
        return list(exact.columns) if exact else []

    columns: dict[str, None] = {}
    for table in snapshot.by_name.get(normalized, ()):
        columns.update(dict.fromkeys(table.columns))
    return list(columns)


def all_columns(snapshot: SchemaSnapshot) -> list[str]:
    columns: dict[str, None] = {}
    for table in snapshot.tables:
        columns.update(dict.fromkeys(table.columns))
    return list(columns)


def keyword_items() -> list[CompletionItem]:
    return [
        CompletionItem(label=kw, kind="keyword", insert_text=kw, sort_text=f"0_{kw}")
        for kw in SQL_KEYWORDS
    ]


def table_items(snapshot: SchemaSnapshot, default_schema: str = "public") -> list[CompletionItem]:
    return [
        CompletionItem(
            label=table.qualified_name,
            kind="table",
            insert_text=table.name if table.schema_name == default_schema else table.qualified_name,
            sort_text=f"1_{table.qualified_name}",
            detail="table/view",
        )
        for table in snapshot.tables
    ]


def column_items(columns: list[str]) -> list[CompletionItem]:
    return [
        CompletionItem(label=column, kind="column", insert_text=column, sort_text=f"0_{column}")
        for column in columns
    ]


def resolve_completions(
    context: CompletionContext,
    snapshot: SchemaSnapshot | None,
    default_schema: str = "public",
) -> list[CompletionItem]:
    """Ranks keyword/table/column suggestions for the cursor described by `context`."""
    keywords = keyword_items()
    if snapshot is None:
        return keywords

    qualifier = QUALIFIER_RE.search(context.line_prefix)
    if qualifier:
        aliases = extract_table_aliases(context.sql_text)
        name = normalize_identifier(qualifier.group(1))
        reference = aliases.get(name, name)
        return column_items(resolve_columns_for_reference(snapshot, reference))

    tables = table_items(snapshot, default_schema)
    if TABLE_CONTEXT_RE.search(context.line_prefix):
        return tables

    if SELECT_CONTEXT_RE.search(context.line_prefix):
        return column_items(all_columns(snapshot))

    return keywords + tables


def sql_context_at(text: str, offset: int) -> CompletionContext:
    """Context for a raw SQL document: the statement around the cursor and its current line.

    Only the statement containing the cursor is returned, so table aliases
    declared in other statements of the document are not visible.
    """
    offset = max(0, min(offset, len(text)))
    line_prefix = text[text.rfind("\n", 0, offset) + 1 : offset]

    statement_start, statement_end = 0, len(text)
    for start, end in split_raw_segments(text):
        if start <= offset <= end:
            statement_start, statement_end = start, end
            break

    return CompletionContext(
        sql_text=text[statement_start:statement_end],
        line_prefix=line_prefix,
        sql_offset=offset - statement_start,
    )


class CompletionService:
    """Produces schema-aware completions for SQL documents and SQL embedded in host code."""

    def __init__(
        self,
        schema_cache: SchemaSnapshotCache,
        extraction: ExtractionService,
        default_schema: str = "public",
    ) -> None:
        self.schema_cache = schema_cache
        self.extraction = extraction
        self.default_schema = default_schema

    def context_at(self, text: str, offset: int, language: str = "sql") -> CompletionContext | None:
        """Returns the SQL context at `offset`, or None when the cursor is not in SQL."""
        if language == "sql":
            return sql_context_at(text, offset)
        if language not in self.extraction.languages:
            logger.debug("No host language configured for '{}'", language)
            return None
        return self.extraction.context_at(text, offset, language)

    async def complete(self, text: str, offset: int, language: str = "sql") -> list[CompletionItem]:
        context = self.context_at(text, offset, language)
        if context is None:
            return []

        snapshot = await self.schema_cache.get_snapshot(force_refresh=False, interactive=False)
        return resolve_completions(context, snapshot, self.default_schema)
