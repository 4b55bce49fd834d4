from mcp.server.fastmcp import FastMCP

from pypgsense.api.state import _services
from pypgsense.core.errors import PgSenseError
from pypgsense.infrastructure.chunking.sql import split_statements

# Services are filled in by the `pypgsense mcp` command before run()
mcp = FastMCP("pypgsense")


@mcp.tool()
async def split_sql_statements(sql: str) -> str:
    """
    Split a SQL script into individual statements.

    Quotes, comments and PostgreSQL dollar-quoted bodies are respected, so
    semicolons inside them never end a statement.

    Args:
        sql: The SQL script to split.
    """
    spans = split_statements(sql)
    if not spans:
        return "No statements found."

    output = [f"Found {len(spans)} statements:\n"]
    for index, span in enumerate(spans, start=1):
        output.append(
            f"--- Statement {index} (offset {span.content_start}-{span.content_end}) ---\n"
            f"{span.content}\n"
        )
    return "\n".join(output)


@mcp.tool()
async def extract_embedded_sql(source: str, language: str = "python") -> str:
    """
    Find SQL assembled from string literals inside host-language source code.

    Args:
        source: The source code to inspect.
        language: The configured host language of the source (e.g. 'python').
    """
    service = _services.get("extraction")
    if not service:
        return "Error: Extraction service is not initialized."

    try:
        groups = service.extract(source, language)
    except ValueError as e:
        return f"Error: {e}"

    if not groups:
        return "No embedded SQL found."

    output = [f"Found {len(groups)} SQL candidates:\n"]
    for group in groups:
        output.append(
            f"--- Candidate at offset {group.start_offset} ({len(group.parts)} parts) ---\n"
            f"{group.content}\n"
        )
    return "\n".join(output)


@mcp.tool()
async def complete_sql(text: str, offset: int, language: str = "sql") -> str:
    """
    List schema-aware completions (keywords, tables, columns) at a cursor offset.

    Args:
        text: A SQL document, or host-language source holding embedded SQL.
        offset: Character offset of the cursor within `text`.
        language: 'sql' for SQL documents, otherwise a configured host language.
    """
    service = _services.get("completion")
    if not service:
        return "Error: Completion service is not initialized."

    try:
        items = await service.complete(text, offset, language)
    except ValueError as e:
        return f"Error: {e}"

    if not items:
        return "No completions available at this position."

    ranked = sorted(items, key=lambda item: item.sort_text)
    return "\n".join(f"{item.kind}: {item.label}" for item in ranked)


@mcp.tool()
async def describe_schema(table_filter: str | None = None) -> str:
    """
    Describe the tables, views and columns visible to the configured connection.

    Args:
        table_filter: Optional text the qualified table name must contain.
    """
    service = _services.get("schema_cache")
    if not service:
        return "Error: Schema service is not initialized."

    try:
        snapshot = await service.get_snapshot(force_refresh=False, interactive=True)
    except PgSenseError as e:
        return f"Schema lookup failed: {e}"

    if snapshot is None:
        return "No schema available. Is a PostgreSQL connection configured?"

    needle = (table_filter or "").lower()
    tables = [t for t in snapshot.tables if needle in t.qualified_name]
    if not tables:
        return f"No tables found matching '{table_filter}'."

    return "\n".join(f"{t.qualified_name}: {', '.join(t.columns)}" for t in tables)


@mcp.tool()
async def validate_sql(sql: str) -> str:
    """
    Check a single SQL statement against the database parser without executing it.

    Args:
        sql: Exactly one SQL statement.
    """
    service = _services.get("validation")
    if not service:
        return "Error: Validation service is not initialized."

    try:
        result = await service.validate_sql(sql, interactive=True)
    except PgSenseError as e:
        return f"Validation failed: {e}"

    if result.kind == "ok":
        return "OK: the statement is valid."
    if result.kind == "skipped":
        return "Skipped: validation needs exactly one statement without untyped parameters."
    location = f" at position {result.position}" if result.position else ""
    return f"Error{location}: {result.message} (SQLSTATE {result.code})"
