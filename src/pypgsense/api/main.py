from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from loguru import logger
from pydantic import BaseModel, Field

from pypgsense.api.state import _services
from pypgsense.cli import _build_dependencies
from pypgsense.config import settings
from pypgsense.core.errors import (
    ConnectionNotConfiguredError,
    InvalidConnectionError,
    SchemaRefreshError,
)
from pypgsense.core.models import (
    CompletionItem,
    ConnectionFormValues,
    ExecutionOutcome,
    SqlCandidateGroup,
    SqlToken,
    StatementSpan,
    ValidationResult,
)
from pypgsense.infrastructure.chunking.sql import split_statements


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown events for the API."""
    logger.info("[Startup] Initializing SQL services...")

    try:
        _services.update(_build_dependencies()._asdict())
        logger.info("[Startup] API is ready to accept concurrent requests.")
    except Exception as e:
        logger.error("[Startup] Failed to initialize services: {}", e)
        raise

    yield

    logger.info("[Shutdown] Cleaning up resources...")
    _services.clear()


app = FastAPI(
    title="pypgsense API",
    description="Async API for SQL statement splitting, embedded SQL extraction and completion.",
    version="0.1.0",
    lifespan=lifespan,
)


class TextRequest(BaseModel):
    """Schema for a request carrying raw SQL text."""

    text: str = Field(..., description="Raw SQL text.")


class HostSourceRequest(BaseModel):
    """Schema for a request carrying host-language source."""

    text: str = Field(..., description="Host-language source code.")
    language: str = Field("python", description="Configured host language name.")


class CompletionRequest(BaseModel):
    """Schema for a completion request at a cursor offset."""

    text: str = Field(..., description="SQL document or host-language source.")
    offset: int = Field(..., ge=0, description="Character offset of the cursor.")
    language: str = Field("sql", description="'sql' or a configured host language.")


class SqlRequest(BaseModel):
    """Schema for validating or executing SQL."""

    sql: str = Field(..., description="SQL to validate or execute.")


class SplitResponse(BaseModel):
    statements: list[StatementSpan]


class ExtractResponse(BaseModel):
    language: str
    candidates: list[SqlCandidateGroup]


class HighlightResponse(BaseModel):
    language: str
    tokens: list[SqlToken]


class CompletionResponse(BaseModel):
    items: list[CompletionItem]


class SchemaTableResponse(BaseModel):
    qualified_name: str
    columns: list[str]


class SchemaResponse(BaseModel):
    refreshed_at: float | None
    tables: list[SchemaTableResponse]


class ConnectionResponse(BaseModel):
    configured: bool
    values: ConnectionFormValues | None = None


def _service(name: str) -> Any:
    service = _services.get(name)
    if not service:
        raise HTTPException(status_code=503, detail=f"The {name} service is not initialized.")
    return service


def _schema_response(snapshot: Any) -> SchemaResponse:
    if snapshot is None:
        return SchemaResponse(refreshed_at=None, tables=[])
    return SchemaResponse(
        refreshed_at=snapshot.refreshed_at,
        tables=[
            SchemaTableResponse(qualified_name=t.qualified_name, columns=list(t.columns))
            for t in snapshot.tables
        ],
    )


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Basic health check endpoint."""
    if not _services:
        raise HTTPException(status_code=503, detail="Services initializing or failed")

    status_dict = {"status": "healthy"}
    for language_name, config in settings.languages.items():
        status_dict[f"{language_name}_grammar"] = config.grammar_module

    return status_dict


@app.post("/statements/split", response_model=SplitResponse)
async def split_sql(request: TextRequest) -> SplitResponse:
    """Splits raw SQL text into trimmed statements."""
    return SplitResponse(statements=split_statements(request.text))


@app.post("/embedded/extract", response_model=ExtractResponse)
async def extract_embedded(request: HostSourceRequest) -> ExtractResponse:
    """Finds SQL candidate groups inside host-language source."""
    extraction = _service("extraction")
    try:
        groups = extraction.extract(request.text, request.language)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return ExtractResponse(language=request.language, candidates=groups)


@app.post("/embedded/highlight", response_model=HighlightResponse)
async def highlight_embedded(request: HostSourceRequest) -> HighlightResponse:
    """Classifies SQL tokens inside embedded strings, with offsets into the source."""
    extraction = _service("extraction")
    try:
        tokens = extraction.highlight(request.text, request.language)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return HighlightResponse(language=request.language, tokens=tokens)


@app.post("/complete", response_model=CompletionResponse)
async def complete(request: CompletionRequest) -> CompletionResponse:
    """Returns schema-aware completions at the cursor offset."""
    completion = _service("completion")
    try:
        items = await completion.complete(request.text, request.offset, request.language)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return CompletionResponse(items=items)


@app.post("/validate", response_model=ValidationResult)
async def validate(request: SqlRequest) -> ValidationResult:
    """Validates a single statement with PREPARE, without executing it."""
    validation = _service("validation")
    try:
        return await validation.validate_sql(request.sql, interactive=True)
    except ConnectionNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@app.post("/execute", response_model=ExecutionOutcome)
async def execute(request: SqlRequest) -> ExecutionOutcome:
    """Executes SQL; database errors come back inside the outcome."""
    execution = _service("execution")
    try:
        return await execution.run_sql(request.sql)
    except ConnectionNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@app.get("/schema", response_model=SchemaResponse)
async def get_schema() -> SchemaResponse:
    """Returns the cached schema snapshot, refreshing it when stale."""
    schema_cache = _service("schema_cache")
    snapshot = await schema_cache.get_snapshot(force_refresh=False, interactive=False)
    return _schema_response(snapshot)


@app.post("/schema/refresh", response_model=SchemaResponse)
async def refresh_schema() -> SchemaResponse:
    """Forces a schema refresh and reports failures."""
    schema_cache = _service("schema_cache")
    try:
        snapshot = await schema_cache.refresh(interactive=True)
    except ConnectionNotConfiguredError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except SchemaRefreshError as e:
        raise HTTPException(status_code=502, detail=str(e)) from e
    return _schema_response(snapshot)


@app.get("/connection", response_model=ConnectionResponse)
async def get_connection() -> ConnectionResponse:
    """Reports whether a connection is saved, with its fields (password omitted)."""
    connection = _service("connection")
    if connection.connection_store.get() is None:
        return ConnectionResponse(configured=False)
    values = connection.current_values().model_copy(update={"password": ""})
    return ConnectionResponse(configured=True, values=values)


@app.put("/connection", response_model=ConnectionResponse)
async def save_connection(values: ConnectionFormValues) -> ConnectionResponse:
    """Validates and saves the connection; the schema cache is discarded."""
    connection = _service("connection")
    try:
        connection.save(values)
    except InvalidConnectionError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return ConnectionResponse(configured=True, values=values.model_copy(update={"password": ""}))


@app.delete("/connection", response_model=ConnectionResponse)
async def clear_connection() -> ConnectionResponse:
    """Removes the saved connection."""
    _service("connection").clear()
    return ConnectionResponse(configured=False)


@app.post("/connection/test")
async def test_connection(values: ConnectionFormValues) -> dict[str, Any]:
    """Runs SELECT 1 against the given connection fields without saving them."""
    problem = await _service("connection").test(values)
    return {"ok": problem is None, "error": problem}
