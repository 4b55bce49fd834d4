from collections.abc import Sequence
from typing import Any

import asyncpg
from loguru import logger

from pypgsense.core.errors import QueryExecutionError
from pypgsense.core.models import QueryResult
from pypgsense.infrastructure.chunking.sql import split_statements


def _row_count(status: str, fetched: int) -> int:
    """Extracts the affected-row count from a command tag such as `INSERT 0 5`."""
    last = status.rsplit(" ", 1)[-1] if status else ""
    if last.isdigit():
        return int(last)
    return fetched


def _as_query_error(error: Exception) -> QueryExecutionError:
    if isinstance(error, asyncpg.PostgresError):
        raw_position = getattr(error, "position", None)
        position = int(raw_position) if raw_position and str(raw_position).isdigit() else None
        message = getattr(error, "message", None) or str(error)
        return QueryExecutionError(message, code=error.sqlstate, position=position)
    return QueryExecutionError(str(error) or type(error).__name__)


async def _safe_close(conn: asyncpg.Connection) -> None:
    try:
        await conn.close()
    except (OSError, asyncpg.InterfaceError) as e:
        logger.debug("Ignoring close failure on partially-open session: {}", e)


class AsyncpgQueryExecutor:
    """
    PostgreSQL access through asyncpg.
    Every call opens its own short-lived connection.
    Implements the IQueryExecutor protocol.
    """

    async def _connect(self, dsn: str, timeout: float | None) -> asyncpg.Connection:
        kwargs: dict[str, Any] = {"dsn": dsn}
        if timeout is not None:
            kwargs["timeout"] = timeout
        try:
            return await asyncpg.connect(**kwargs)
        except Exception as e:
            raise _as_query_error(e) from e

    async def query(self, dsn: str, sql: str, timeout: float | None = None) -> QueryResult:
        conn = await self._connect(dsn, timeout)
        try:
            if len(split_statements(sql)) > 1:
                # Scripts go through the simple protocol, which returns no rows
                status = await conn.execute(sql, timeout=timeout)
                return QueryResult(
                    rows=[], row_count=_row_count(status, 0), command=status.split(" ", 1)[0]
                )

            statement = await conn.prepare(sql, timeout=timeout)
            records = await statement.fetch(timeout=timeout)
            status = statement.get_statusmsg() or ""
            rows = [dict(record) for record in records]
            return QueryResult(
                rows=rows,
                row_count=_row_count(status, len(rows)),
                command=status.split(" ", 1)[0],
            )
        except Exception as e:
            raise _as_query_error(e) from e
        finally:
            await _safe_close(conn)

    async def execute_session(self, dsn: str, statements: Sequence[str]) -> None:
        conn = await self._connect(dsn, None)
        try:
            for statement in statements:
                await conn.execute(statement)
        except Exception as e:
            raise _as_query_error(e) from e
        finally:
            await _safe_close(conn)
