import asyncio
import time

from loguru import logger

from pypgsense.core.errors import ConnectionNotConfiguredError, QueryExecutionError
from pypgsense.core.models import ExecutionOutcome
from pypgsense.core.ports import IConnectionStore, IQueryExecutor


class ExecutionService:
    """Runs user SQL and reports rows, command tag and duration."""

    def __init__(
        self,
        executor: IQueryExecutor,
        connection_store: IConnectionStore,
        timeout: float | None = None,
    ) -> None:
        self.executor = executor
        self.connection_store = connection_store
        self.timeout = timeout

    async def run_sql(self, sql: str) -> ExecutionOutcome:
        """Executes SQL; database errors are returned in the outcome, not raised."""
        if not sql.strip():
            raise ValueError("No SQL to run.")

        dsn = await asyncio.to_thread(self.connection_store.get)
        if dsn is None:
            raise ConnectionNotConfiguredError()

        started = time.perf_counter()
        try:
            result = await self.executor.query(dsn, sql, timeout=self.timeout)
        except QueryExecutionError as e:
            duration_ms = (time.perf_counter() - started) * 1000
            logger.info("Query failed after {:.1f}ms: {}", duration_ms, e.message)
            return ExecutionOutcome(sql=sql, duration_ms=duration_ms, error=e.message)

        duration_ms = (time.perf_counter() - started) * 1000
        logger.info("{} ({} rows) in {:.1f}ms", result.command or "OK", result.row_count, duration_ms)
        return ExecutionOutcome(
            sql=sql,
            duration_ms=duration_ms,
            command=result.command,
            row_count=result.row_count,
            rows=result.rows,
        )

    def print_outcome(self, outcome: ExecutionOutcome) -> None:
        """Formats and logs an execution outcome."""
        if outcome.error is not None:
            logger.error("Query failed ({:.1f}ms): {}", outcome.duration_ms, outcome.error)
            return

        logger.info("{} | rows: {} | {:.1f}ms", outcome.command, outcome.row_count, outcome.duration_ms)
        for row in outcome.rows:
            logger.info("  {}", row)
