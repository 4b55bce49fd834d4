import asyncio
import time
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from loguru import logger

from pypgsense.core.errors import ConnectionNotConfiguredError, SchemaRefreshError
from pypgsense.core.identifiers import normalize_identifier
from pypgsense.core.models import SchemaSnapshot, SchemaTable
from pypgsense.core.ports import IConnectionStore, IQueryExecutor

SCHEMA_QUERY = """
SELECT table_schema, table_name, column_name
FROM information_schema.columns
WHERE table_schema NOT IN ('pg_catalog', 'information_schema')
ORDER BY table_schema, table_name, ordinal_position
"""

_RefreshOutcome = tuple[SchemaSnapshot | None, Exception | None]


def build_schema_snapshot(rows: Iterable[Mapping[str, Any]], refreshed_at: float) -> SchemaSnapshot:
    """Groups (schema, table, column) rows into tables, first-seen column order preserved."""
    grouped: dict[str, tuple[str, str, list[str]]] = {}

    for row in rows:
        schema = normalize_identifier(str(row["table_schema"]))
        table = normalize_identifier(str(row["table_name"]))
        column = normalize_identifier(str(row["column_name"]))
        qualified_name = f"{schema}.{table}"

        entry = grouped.setdefault(qualified_name, (schema, table, []))
        if column not in entry[2]:
            entry[2].append(column)

    tables = tuple(
        SchemaTable(schema_name=schema, name=name, qualified_name=qualified, columns=tuple(columns))
        for qualified, (schema, name, columns) in grouped.items()
    )

    by_name: dict[str, list[SchemaTable]] = {}
    for table in tables:
        by_name.setdefault(table.name, []).append(table)

    return SchemaSnapshot(
        tables=tables,
        by_qualified={table.qualified_name: table for table in tables},
        by_name={name: tuple(group) for name, group in by_name.items()},
        refreshed_at=refreshed_at,
    )


class SchemaSnapshotCache:
    """
    Refreshable snapshot of table/column metadata for one logical connection.

    - A snapshot younger than the TTL is served without I/O.
    - Concurrent callers share a single in-flight refresh.
    - After a failed refresh with nothing cached, non-interactive callers get
      None without I/O until the backoff window has passed.
    - A failed refresh keeps the previous snapshot.
    - A refresh started before invalidate() never publishes its result.
    """

    def __init__(
        self,
        executor: IQueryExecutor,
        connection_store: IConnectionStore,
        ttl_seconds: float = 300.0,
        failure_backoff_seconds: float = 30.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.executor = executor
        self.connection_store = connection_store
        self.ttl_seconds = ttl_seconds
        self.failure_backoff_seconds = failure_backoff_seconds
        self._clock = clock

        self._snapshot: SchemaSnapshot | None = None
        self._refresh_task: asyncio.Task[_RefreshOutcome] | None = None
        self._last_failure_at: float | None = None
        self._generation = 0

    @property
    def snapshot(self) -> SchemaSnapshot | None:
        """The cached snapshot, without any freshness check."""
        return self._snapshot

    async def get_snapshot(
        self, force_refresh: bool = False, interactive: bool = False
    ) -> SchemaSnapshot | None:
        now = self._clock()

        if (
            not force_refresh
            and self._snapshot is not None
            and now - self._snapshot.refreshed_at < self.ttl_seconds
        ):
            return self._snapshot

        if not force_refresh and self._refresh_task is not None:
            snapshot, _ = await asyncio.shield(self._refresh_task)
            return snapshot

        if (
            not force_refresh
            and not interactive
            and self._snapshot is None
            and self._last_failure_at is not None
            and now - self._last_failure_at < self.failure_backoff_seconds
        ):
            elapsed = now - self._last_failure_at
            logger.debug("Schema refresh suppressed, last failure was {:.1f}s ago", elapsed)
            return None

        snapshot, _ = await self._start_refresh(force_refresh, interactive)
        return snapshot

    async def refresh(self, interactive: bool = True) -> SchemaSnapshot | None:
        """Forces a refresh; interactive callers get failures raised instead of logged."""
        if interactive and await asyncio.to_thread(self.connection_store.get) is None:
            raise ConnectionNotConfiguredError()

        snapshot, error = await self._start_refresh(True, interactive)
        if interactive and error is not None:
            raise SchemaRefreshError(error) from error
        return snapshot

    def invalidate(self) -> None:
        """Discards the cached snapshot (e.g. after the connection changed)."""
        self._snapshot = None
        self._last_failure_at = None
        self._generation += 1
        self._refresh_task = None

    async def _start_refresh(self, force_refresh: bool, interactive: bool) -> _RefreshOutcome:
        task = asyncio.ensure_future(self._load(force_refresh, interactive))
        self._refresh_task = task
        task.add_done_callback(self._clear_in_flight)
        # An in-flight refresh always runs to completion, even if a waiter is cancelled
        return await asyncio.shield(task)

    def _clear_in_flight(self, task: "asyncio.Task[_RefreshOutcome]") -> None:
        if self._refresh_task is task:
            self._refresh_task = None

    async def _load(self, force_refresh: bool, interactive: bool) -> _RefreshOutcome:
        generation = self._generation
        dsn = await asyncio.to_thread(self.connection_store.get)
        if dsn is None:
            return self._snapshot, None

        try:
            result = await self.executor.query(dsn, SCHEMA_QUERY)
            snapshot = build_schema_snapshot(result.rows, self._clock())
        except Exception as e:
            if generation != self._generation:
                logger.debug("Discarding failed schema refresh for a replaced connection: {}", e)
                return self._snapshot, e
            self._last_failure_at = self._clock()
            if interactive or force_refresh:
                logger.warning("Failed to refresh SQL schema cache: {}", e)
            else:
                logger.debug("Background schema refresh failed: {}", e)
            return self._snapshot, e

        if generation != self._generation:
            logger.debug("Discarding schema refresh for a replaced connection")
            return self._snapshot, None

        self._snapshot = snapshot
        self._last_failure_at = None
        logger.info("SQL schema cache refreshed ({} tables/views)", len(snapshot.tables))
        return snapshot, None
