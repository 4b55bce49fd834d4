import os
from pathlib import Path

import yaml
from loguru import logger
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LanguageConfig(BaseModel):
    """Syntax-tree shapes that mark SQL candidates in one host language."""

    description: str
    grammar_module: str
    file_extensions: list[str]

    # Node kinds whose value child is inspected (e.g. `q = "..."`)
    assignment_kinds: list[str]
    value_field: str = "right"

    # Node kinds whose first positional argument is inspected (e.g. `run("...")`)
    call_kinds: list[str]
    arguments_field: str = "arguments"

    # Node kinds holding the textual body of a string literal
    string_content_kinds: list[str]


def _default_languages() -> dict[str, LanguageConfig]:
    return {
        "python": LanguageConfig(
            description="Python source via tree-sitter-python",
            grammar_module="tree_sitter_python",
            file_extensions=[".py"],
            assignment_kinds=["assignment", "annotated_assignment"],
            call_kinds=["call"],
            string_content_kinds=["string_content"],
        )
    }


class Settings(BaseSettings):
    """Global configuration for the pypgsense application."""

    # Connection
    database_url: str = ""
    connection_file: str = "~/.config/pypgsense/connection"
    connect_timeout_seconds: float = 15.0

    # Schema cache policy
    schema_cache_ttl_seconds: float = 300.0
    schema_failure_backoff_seconds: float = 30.0
    default_schema: str = "public"

    # Linting
    lint_debounce_seconds: float = 0.45

    # General System
    log_level: str = "INFO"
    log_serialize: bool = False

    # Host languages dictionary
    languages: dict[str, LanguageConfig] = Field(default_factory=_default_languages)

    model_config = SettingsConfigDict(env_prefix="PGSENSE_", env_file=".env")


def load_settings(config_file: str | None = None) -> Settings:
    """Loads base settings and overrides them from config.yaml."""
    base_settings = Settings()

    if config_file is None:
        config_file = os.getenv("PGSENSE_CONFIG_FILE", "config.yaml")

    yaml_path = Path(config_file)
    if yaml_path.exists():
        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f)

            if not data:
                return base_settings

            # Override System configuration
            if "system" in data and isinstance(data["system"], dict):
                for key, value in data["system"].items():
                    if hasattr(base_settings, key) and key != "languages":
                        setattr(base_settings, key, value)

            # Override host language configuration
            if "languages" in data and isinstance(data["languages"], dict):
                languages = {k: LanguageConfig(**v) for k, v in data["languages"].items()}
                base_settings.languages = languages
    else:
        logger.warning("Configuration file '{}' not found, using defaults", yaml_path)

    return base_settings


# Global singleton instance
settings = load_settings()
