import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NamedTuple

import typer

from pypgsense.config import settings
from pypgsense.core.errors import PgSenseError
from pypgsense.core.models import ConnectionFormValues, Diagnostic
from pypgsense.core.ports import IChunker
from pypgsense.core.registry import ComponentRegistry
from pypgsense.infrastructure.chunking.sql import split_statements
from pypgsense.infrastructure.storage.connection_store import FileConnectionStore
from pypgsense.infrastructure.storage.postgres import AsyncpgQueryExecutor
from pypgsense.logger import configure_logger
from pypgsense.services.completion import CompletionService
from pypgsense.services.connection import ConnectionService
from pypgsense.services.execution import ExecutionService
from pypgsense.services.extraction import ExtractionService
from pypgsense.services.scanning import ScanService
from pypgsense.services.schema_cache import SchemaSnapshotCache
from pypgsense.services.validation import LintScheduler, SqlValidationService

app = typer.Typer(
    help="pypgsense: SQL extraction, statement splitting and schema-aware completion for PostgreSQL",
    no_args_is_help=True,
)


class SenseDeps(NamedTuple):
    """Container for resolved service dependencies."""

    extraction: ExtractionService
    schema_cache: SchemaSnapshotCache
    completion: CompletionService
    validation: SqlValidationService
    execution: ExecutionService
    connection: ConnectionService
    scanner: ScanService


@dataclass
class _FileDocument:
    """A file on disk seen as a lint target; files never change version."""

    uri: str
    text: str
    version: int = 0
    is_closed: bool = False


def version_callback(value: bool) -> None:
    if value:
        from pypgsense import __version__

        typer.echo(f"pypgsense version: {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    config_file: Annotated[
        str, typer.Option("--config-file", "-c", help="Path to config.yaml file.")
    ] = "config.yaml",
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show the version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """pypgsense: PostgreSQL-aware SQL tooling for SQL files and embedded SQL."""
    from pypgsense.config import load_settings

    # Export to environment so uvicorn subprocesses (in API mode) inherit it
    os.environ["PGSENSE_CONFIG_FILE"] = config_file

    # Dynamically update the current process global settings singleton
    new_settings = load_settings(config_file)
    for field in type(new_settings).model_fields:
        setattr(settings, field, getattr(new_settings, field))

    configure_logger(settings.log_level, settings.log_serialize)


def _build_chunkers(extraction: ExtractionService) -> list[IChunker]:
    chunkers: list[IChunker] = [ComponentRegistry.get_chunker("sql")()]
    EmbeddedChunkerClass = ComponentRegistry.get_chunker("embedded")
    for name, language in extraction.languages.items():
        parser = extraction.parser_factory(name, language)
        chunkers.append(EmbeddedChunkerClass(parser, language))
    return chunkers


def _build_dependencies() -> SenseDeps:
    """Dependency Injection Factory driven by config.yaml configuration."""
    executor = AsyncpgQueryExecutor()
    store = FileConnectionStore(settings.connection_file, fallback=settings.database_url)

    schema_cache = SchemaSnapshotCache(
        executor,
        store,
        ttl_seconds=settings.schema_cache_ttl_seconds,
        failure_backoff_seconds=settings.schema_failure_backoff_seconds,
    )
    extraction = ExtractionService(settings.languages)

    return SenseDeps(
        extraction=extraction,
        schema_cache=schema_cache,
        completion=CompletionService(schema_cache, extraction, settings.default_schema),
        validation=SqlValidationService(executor, store),
        execution=ExecutionService(executor, store, timeout=settings.connect_timeout_seconds),
        connection=ConnectionService(
            store, schema_cache, executor, test_timeout=settings.connect_timeout_seconds
        ),
        scanner=ScanService(_build_chunkers(extraction)),
    )


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as e:
        typer.echo(f"Error: cannot read '{path}': {e}", err=True)
        raise typer.Exit(code=1) from e


def _fail(error: Exception) -> typer.Exit:
    typer.echo(f"Error: {error}", err=True)
    return typer.Exit(code=1)


def _line_col(text: str, offset: int) -> str:
    line = text.count("\n", 0, offset) + 1
    col = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return f"{line}:{col}"


@app.command()
def split(
    path: Annotated[Path, typer.Argument(help="SQL file to split into statements.")],
) -> None:
    """Splits a SQL file into statements, respecting quotes, comments and dollar quoting."""
    text = _read_source(path)
    spans = split_statements(text)
    for index, span in enumerate(spans, start=1):
        typer.echo(f"-- [{index}] {path}:{_line_col(text, span.content_start)}")
        typer.echo(span.content)
    if not spans:
        typer.echo("No statements found.")


@app.command()
def extract(
    path: Annotated[Path, typer.Argument(help="Host-language source file to inspect.")],
    language: Annotated[
        str | None,
        typer.Option("--language", "-l", help="Host language (defaults to the file extension)."),
    ] = None,
    tokens: Annotated[
        bool, typer.Option("--tokens", help="Also print the SQL tokens found in each string.")
    ] = False,
) -> None:
    """Finds SQL assembled from string literals in host-language source."""
    deps = _build_dependencies()
    text = _read_source(path)
    language = language or deps.extraction.language_for_path(str(path))
    if language is None:
        typer.echo(f"Error: no host language configured for '{path}'.", err=True)
        raise typer.Exit(code=1)

    try:
        groups = deps.extraction.extract(text, language)
    except ValueError as e:
        raise _fail(e) from e

    if not groups:
        typer.echo("No embedded SQL found.")
        return

    for group in groups:
        typer.echo(f"-- {path}:{_line_col(text, group.start_offset)} ({len(group.parts)} parts)")
        typer.echo(group.content)

    if tokens:
        for token in deps.extraction.highlight(text, language):
            typer.echo(f"{_line_col(text, token.start):>8}  {token.type:<8} {token.value}")


@app.command()
def scan(
    path: Annotated[str, typer.Argument(help="Directory path or glob pattern to scan.")],
) -> None:
    """Reports SQL statements and embedded SQL across a directory tree."""
    deps = _build_dependencies()
    results = list(deps.scanner.scan_path(path))
    deps.scanner.print_results(results)


@app.command()
def complete(
    path: Annotated[Path, typer.Argument(help="SQL or host-language file to complete in.")],
    offset: Annotated[
        int, typer.Option("--offset", "-o", help="Character offset of the cursor.")
    ] = -1,
    language: Annotated[
        str | None,
        typer.Option("--language", "-l", help="'sql' or a configured host language."),
    ] = None,
) -> None:
    """Lists schema-aware completions at a cursor offset (end of file by default)."""
    deps = _build_dependencies()
    text = _read_source(path)
    if offset < 0:
        offset = len(text)
    if language is None and path.suffix.lower() == ".sql":
        language = "sql"
    elif language is None:
        language = deps.extraction.language_for_path(str(path))
    if language is None:
        typer.echo(f"Error: no host language configured for '{path}'.", err=True)
        raise typer.Exit(code=1)

    try:
        items = asyncio.run(deps.completion.complete(text, offset, language))
    except ValueError as e:
        raise _fail(e) from e

    if not items:
        typer.echo("No completions.")
        return
    for item in sorted(items, key=lambda i: i.sort_text):
        typer.echo(f"{item.kind:<8} {item.label}")


@app.command()
def validate(
    path: Annotated[Path, typer.Argument(help="File holding a single SQL statement.")],
) -> None:
    """Checks a single statement with PREPARE, without executing it."""
    deps = _build_dependencies()
    text = _read_source(path)
    try:
        result = asyncio.run(deps.validation.validate_sql(text, interactive=True))
    except PgSenseError as e:
        raise _fail(e) from e

    if result.kind == "ok":
        typer.echo("OK")
    elif result.kind == "skipped":
        typer.echo("Skipped: validation needs exactly one statement without untyped parameters.")
    else:
        where = _line_col(text, result.position - 1) if result.position else "1:1"
        typer.echo(f"{path}:{where}: {result.message} [{result.code}]", err=True)
        raise typer.Exit(code=1)


@app.command()
def lint(
    paths: Annotated[list[Path], typer.Argument(help="SQL files to lint.")],
    debounce: Annotated[
        float | None,
        typer.Option("--debounce", help="Quiet period in seconds before each validation."),
    ] = None,
) -> None:
    """Lints SQL files through the debounced scheduler used for open documents."""
    deps = _build_dependencies()
    found: list[tuple[str, str, Diagnostic]] = []

    async def _run() -> None:
        documents = {str(p): _FileDocument(uri=str(p), text=_read_source(p)) for p in paths}

        def publish(uri: str, diagnostics: list[Diagnostic]) -> None:
            found.extend((uri, documents[uri].text, d) for d in diagnostics)

        quiet_period = settings.lint_debounce_seconds if debounce is None else debounce
        scheduler = LintScheduler(deps.validation, publish, debounce_seconds=quiet_period)
        for document in documents.values():
            scheduler.schedule(document)
        await scheduler.join()

    asyncio.run(_run())
    for uri, text, diagnostic in found:
        typer.echo(f"{uri}:{_line_col(text, diagnostic.start)}: {diagnostic.message}")
    if found:
        raise typer.Exit(code=1)


@app.command()
def run(
    path: Annotated[Path, typer.Argument(help="SQL file to execute.")],
) -> None:
    """Executes the SQL in a file against the configured connection."""
    deps = _build_dependencies()
    try:
        outcome = asyncio.run(deps.execution.run_sql(_read_source(path)))
    except (PgSenseError, ValueError) as e:
        raise _fail(e) from e

    deps.execution.print_outcome(outcome)
    if outcome.error is not None:
        raise typer.Exit(code=1)


@app.command()
def schema(
    table_filter: Annotated[
        str | None, typer.Option("--filter", "-f", help="Only show tables containing this text.")
    ] = None,
) -> None:
    """Refreshes and prints the tables and columns visible to the connection."""
    deps = _build_dependencies()
    try:
        snapshot = asyncio.run(deps.schema_cache.refresh(interactive=True))
    except PgSenseError as e:
        raise _fail(e) from e

    tables = snapshot.tables if snapshot else ()
    for table in tables:
        if table_filter and table_filter.lower() not in table.qualified_name:
            continue
        typer.echo(f"{table.qualified_name} ({', '.join(table.columns)})")
    typer.echo(f"{len(tables)} tables/views cached.")


@app.command()
def connect(
    host: Annotated[str, typer.Option("--host", help="Database host.")] = "localhost",
    port: Annotated[str, typer.Option("--port", help="Database port.")] = "5432",
    database: Annotated[str, typer.Option("--database", "-d", help="Database name.")] = "",
    user: Annotated[str, typer.Option("--user", "-u", help="Database user.")] = "",
    password: Annotated[
        str, typer.Option("--password", help="Database password.", prompt=True, hide_input=True)
    ] = "",
    ssl_mode: Annotated[str, typer.Option("--ssl-mode", help="disable or require.")] = "disable",
    test: Annotated[
        bool, typer.Option("--test", help="Run SELECT 1 before saving the connection.")
    ] = False,
) -> None:
    """Saves the PostgreSQL connection used by every other command."""
    if ssl_mode not in ("disable", "require"):
        typer.echo(f"Error: --ssl-mode must be 'disable' or 'require', got '{ssl_mode}'.", err=True)
        raise typer.Exit(code=1)

    deps = _build_dependencies()
    values = ConnectionFormValues(
        host=host,
        port=port,
        database=database,
        user=user,
        password=password,
        ssl_mode=ssl_mode,  # type: ignore[arg-type]
    )

    if test:
        problem = asyncio.run(deps.connection.test(values))
        if problem:
            typer.echo(f"Connection failed: {problem}", err=True)
            raise typer.Exit(code=1)
        typer.echo("Connection succeeded.")

    try:
        deps.connection.save(values)
    except PgSenseError as e:
        raise _fail(e) from e
    typer.echo(f"Connection saved to {settings.connection_file}.")


@app.command()
def disconnect() -> None:
    """Removes the saved PostgreSQL connection."""
    deps = _build_dependencies()
    deps.connection.clear()
    typer.echo("Connection removed.")


@app.command()
def serve(
    host: Annotated[
        str, typer.Option("--host", "-h", help="Host to bind the API server to.")
    ] = "127.0.0.1",
    port: Annotated[
        int, typer.Option("--port", "-p", help="Port to bind the API server to.")
    ] = 8000,
    reload: Annotated[
        bool, typer.Option("--reload", help="Enable auto-reload for development.")
    ] = False,
) -> None:
    """Starts the asynchronous FastAPI server."""
    import uvicorn

    print(f"Starting pypgsense API server at http://{host}:{port}...")
    uvicorn.run("pypgsense.api.main:app", host=host, port=port, reload=reload)


@app.command()
def mcp() -> None:
    """Starts the FastMCP standard input/output (stdio) server for integrations."""
    import sys

    from pypgsense.api.mcp_server import mcp as mcp_server
    from pypgsense.api.state import _services

    print("[MCP Startup] Initializing SQL services...", file=sys.stderr)
    try:
        _services.update(_build_dependencies()._asdict())
    except Exception as e:
        print(f"[MCP Startup] Failed to initialize services: {e}", file=sys.stderr)
        raise

    mcp_server.run()


if __name__ == "__main__":
    app()
