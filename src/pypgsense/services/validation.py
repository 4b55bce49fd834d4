import asyncio
import uuid
from collections.abc import Callable

from loguru import logger

from pypgsense.core.errors import ConnectionNotConfiguredError, QueryExecutionError
from pypgsense.core.models import Diagnostic, ValidationResult
from pypgsense.core.ports import IConnectionStore, ILintDocument, IQueryExecutor
from pypgsense.infrastructure.chunking.sql import split_statements

# Parameter type could not be determined: expected for `$1` placeholders, not a real error
PARAMETER_TYPE_ERROR_CODES = frozenset({"42P18", "42P02"})

DiagnosticsCallback = Callable[[str, list[Diagnostic]], None]


def statement_for_validation(sql: str) -> tuple[str, int] | None:
    """Returns (statement, offset in `sql`) when `sql` holds exactly one statement.

    A single trailing terminator is dropped, since PREPARE rejects it.
    """
    spans = split_statements(sql)
    if len(spans) != 1:
        return None

    span = spans[0]
    statement = span.content
    if statement.endswith(";"):
        statement = statement[:-1].rstrip()
    if not statement:
        return None
    return statement, span.content_start


def diagnostic_range(text: str, position: int | None) -> tuple[int, int]:
    """Maps a 1-based error position to a one-character range, or the first line without one."""
    if not position:
        first_newline = text.find("\n")
        return 0, len(text) if first_newline == -1 else first_newline

    start = max(0, min(len(text), position - 1))
    line_end = text.find("\n", start)
    if line_end == -1:
        line_end = len(text)
    return start, min(line_end, start + 1)


class SqlValidationService:
    """Parser-level validation through PREPARE/DEALLOCATE: nothing is executed."""

    def __init__(self, executor: IQueryExecutor, connection_store: IConnectionStore) -> None:
        self.executor = executor
        self.connection_store = connection_store

    async def validate_sql(self, sql: str, interactive: bool = False) -> ValidationResult:
        target = statement_for_validation(sql)
        if target is None:
            return ValidationResult(kind="skipped")
        statement, statement_start = target

        dsn = await asyncio.to_thread(self.connection_store.get)
        if dsn is None:
            if interactive:
                raise ConnectionNotConfiguredError()
            return ValidationResult(kind="skipped")

        name = f"pypgsense_lint_{uuid.uuid4().hex[:12]}"
        prepare = f"PREPARE {name} AS {statement}"
        try:
            await self.executor.execute_session(dsn, [prepare, f"DEALLOCATE {name}"])
        except QueryExecutionError as e:
            if e.code in PARAMETER_TYPE_ERROR_CODES:
                return ValidationResult(kind="skipped")

            position = None
            wrapper_length = len(prepare) - len(statement)
            if e.position is not None and e.position > wrapper_length:
                position = statement_start + e.position - wrapper_length
            return ValidationResult(kind="error", message=e.message, position=position, code=e.code)

        return ValidationResult(kind="ok")


class LintScheduler:
    """
    Debounced per-document validation.

    Each schedule() restarts the document's quiet period. A result is only
    published if the document is still open at the version that was scheduled.
    """

    def __init__(
        self,
        validation: SqlValidationService,
        publish: DiagnosticsCallback,
        debounce_seconds: float = 0.45,
    ) -> None:
        self.validation = validation
        self.publish = publish
        self.debounce_seconds = debounce_seconds
        self._timers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    def schedule(self, document: ILintDocument) -> None:
        existing = self._timers.pop(document.uri, None)
        if existing is not None:
            existing.cancel()

        task = asyncio.get_running_loop().create_task(
            self._lint_after_quiet_period(document, document.version)
        )
        self._timers[document.uri] = task
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def clear(self, uri: str) -> None:
        """Stops pending work for a closed document and withdraws its diagnostics."""
        timer = self._timers.pop(uri, None)
        if timer is not None:
            timer.cancel()
        self.publish(uri, [])

    async def join(self) -> None:
        """Waits for every scheduled and in-flight lint to settle."""
        while True:
            pending = [task for task in self._tasks if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    def dispose(self) -> None:
        for task in self._tasks:
            task.cancel()
        self._timers.clear()

    async def _lint_after_quiet_period(self, document: ILintDocument, version: int) -> None:
        await asyncio.sleep(self.debounce_seconds)

        # From here on a newer schedule() must not cancel us; staleness checks drop the result
        if self._timers.get(document.uri) is asyncio.current_task():
            del self._timers[document.uri]

        if document.is_closed or document.version != version:
            return

        text = document.text
        if not text.strip():
            self.publish(document.uri, [])
            return

        try:
            result = await self.validation.validate_sql(text, interactive=False)
        except Exception:
            logger.exception("SQL lint failed for {}", document.uri)
            return

        if document.is_closed or document.version != version:
            return

        if result.kind != "error":
            self.publish(document.uri, [])
            return

        start, end = diagnostic_range(text, result.position)
        diagnostic = Diagnostic(
            uri=document.uri,
            message=result.message or "Invalid SQL",
            start=start,
            end=end,
            code=result.code,
        )
        self.publish(document.uri, [diagnostic])
