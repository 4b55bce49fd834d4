"""Pytest configuration and fixtures."""

import pytest
from loguru import logger

from pypgsense.config import LanguageConfig, Settings
from pypgsense.infrastructure.parsing.treesitter import create_parser


@pytest.fixture
def caplog(caplog):
    """Enable Loguru logging to be captured by pytest's caplog fixture."""
    import logging

    class PropagateHandler(logging.Handler):
        def emit(self, record):
            logging.getLogger(record.name).handle(record)

    handler_id = logger.add(PropagateHandler(), format="{message}")
    yield caplog
    logger.remove(handler_id)


@pytest.fixture
def python_language() -> LanguageConfig:
    """The default Python host-language configuration."""
    return Settings().languages["python"]


@pytest.fixture
def python_parser(python_language):
    """A real tree-sitter parser for Python source."""
    parser = create_parser(python_language)
    assert parser is not None, "tree-sitter-python grammar failed to load"
    return parser


@pytest.fixture
def schema_rows() -> list[dict[str, str]]:
    """information_schema.columns rows for a small two-schema database."""
    return [
        {"table_schema": "public", "table_name": "users", "column_name": "id"},
        {"table_schema": "public", "table_name": "users", "column_name": "email"},
        {"table_schema": "public", "table_name": "orders", "column_name": "id"},
        {"table_schema": "public", "table_name": "orders", "column_name": "user_id"},
        {"table_schema": "public", "table_name": "orders", "column_name": "total"},
        {"table_schema": "audit", "table_name": "users", "column_name": "changed_at"},
    ]
