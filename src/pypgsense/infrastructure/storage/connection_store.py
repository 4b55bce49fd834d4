import os
from pathlib import Path

from loguru import logger


class FileConnectionStore:
    """
    Keeps the single connection string in a user-only file.
    Falls back to the configured default (e.g. PGSENSE_DATABASE_URL) when nothing is stored.
    Implements the IConnectionStore protocol.
    """

    def __init__(self, path: str, fallback: str = "") -> None:
        self.path = Path(path).expanduser()
        self.fallback = fallback

    def get(self) -> str | None:
        if self.path.is_file():
            stored = self.path.read_text(encoding="utf-8").strip()
            if stored:
                return stored

        fallback = self.fallback.strip()
        return fallback or None

    def set(self, connection_string: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(connection_string.strip())
        logger.debug("Stored connection string in {}", self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)


class InMemoryConnectionStore:
    """Process-local store, used by tests and embedding applications."""

    def __init__(self, initial: str | None = None) -> None:
        self._value = initial

    def get(self) -> str | None:
        if self._value and self._value.strip():
            return self._value.strip()
        return None

    def set(self, connection_string: str) -> None:
        self._value = connection_string

    def clear(self) -> None:
        self._value = None
