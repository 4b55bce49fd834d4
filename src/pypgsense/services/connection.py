from urllib.parse import parse_qs, quote, unquote, urlsplit

from loguru import logger

from pypgsense.core.errors import InvalidConnectionError, QueryExecutionError
from pypgsense.core.models import ConnectionFormValues
from pypgsense.core.ports import IConnectionStore, IQueryExecutor
from pypgsense.services.schema_cache import SchemaSnapshotCache


def parse_connection_string(connection_string: str) -> ConnectionFormValues:
    """Splits a postgres:// URL into form values; anything unparsable yields the defaults."""
    defaults = ConnectionFormValues()
    if not connection_string.strip():
        return defaults

    try:
        parsed = urlsplit(connection_string.strip())
        if parsed.scheme not in ("postgres", "postgresql"):
            return defaults
        port = parsed.port
    except ValueError:
        return defaults

    ssl_mode = parse_qs(parsed.query).get("sslmode", [""])[0]
    return ConnectionFormValues(
        host=parsed.hostname or defaults.host,
        port=str(port) if port else defaults.port,
        database=unquote(parsed.path.lstrip("/")),
        user=unquote(parsed.username or ""),
        password=unquote(parsed.password or ""),
        ssl_mode="require" if ssl_mode == "require" else "disable",
    )


def validate_connection_form(values: ConnectionFormValues) -> str | None:
    """Returns a human-readable problem with the form, or None when it is usable."""
    if not values.host.strip():
        return "Host is required."
    if not values.database.strip():
        return "Database is required."
    if not values.user.strip():
        return "User is required."
    if not values.port.strip():
        return "Port is required."

    port = values.port.strip()
    if not port.isdigit() or not 1 <= int(port) <= 65535:
        return "Port must be a number between 1 and 65535."
    return None


def build_connection_string(values: ConnectionFormValues) -> str:
    user = quote(values.user.strip(), safe="")
    password = f":{quote(values.password, safe='')}" if values.password else ""
    database = quote(values.database.strip(), safe="")
    query = "?sslmode=require" if values.ssl_mode == "require" else ""
    return f"postgresql://{user}{password}@{values.host.strip()}:{values.port.strip()}/{database}{query}"


class ConnectionService:
    """Stores, clears and tests the connection; any change discards the schema snapshot."""

    def __init__(
        self,
        connection_store: IConnectionStore,
        schema_cache: SchemaSnapshotCache,
        executor: IQueryExecutor,
        test_timeout: float = 15.0,
    ) -> None:
        self.connection_store = connection_store
        self.schema_cache = schema_cache
        self.executor = executor
        self.test_timeout = test_timeout

    def current_values(self) -> ConnectionFormValues:
        return parse_connection_string(self.connection_store.get() or "")

    def save(self, values: ConnectionFormValues) -> str:
        problem = validate_connection_form(values)
        if problem:
            raise InvalidConnectionError(problem)

        connection_string = build_connection_string(values)
        self.connection_store.set(connection_string)
        self.schema_cache.invalidate()
        logger.info("PostgreSQL connection saved ({}@{})", values.user, values.host)
        return connection_string

    def clear(self) -> None:
        self.connection_store.clear()
        self.schema_cache.invalidate()
        logger.info("PostgreSQL connection removed")

    async def test(self, values: ConnectionFormValues) -> str | None:
        """Runs SELECT 1 against the form's connection; returns the failure message, if any."""
        problem = validate_connection_form(values)
        if problem:
            return problem

        try:
            await self.executor.query(
                build_connection_string(values), "SELECT 1", timeout=self.test_timeout
            )
        except QueryExecutionError as e:
            return e.message
        return None
