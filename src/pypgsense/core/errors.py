"""pypgsense error types."""


class PgSenseError(Exception):
    """Base error for pypgsense operations."""

    pass


class QueryExecutionError(PgSenseError):
    """The database rejected or failed to run a statement."""

    def __init__(self, message: str, code: str | None = None, position: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.position = position


class ConnectionNotConfiguredError(PgSenseError):
    """No connection string is stored or configured."""

    def __init__(self) -> None:
        super().__init__("PostgreSQL connection string is not configured.")


class InvalidConnectionError(PgSenseError):
    """Connection form values failed validation."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class SchemaRefreshError(PgSenseError):
    """A forced or interactive schema refresh failed."""

    def __init__(self, cause: Exception) -> None:
        super().__init__(f"Failed to refresh SQL schema cache: {cause}")
        self.cause = cause
