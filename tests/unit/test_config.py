"""Unit tests for the configuration module."""

import os
import tempfile
from pathlib import Path

from pypgsense.config import LanguageConfig, Settings, load_settings


class TestLanguageConfig:
    """Tests for LanguageConfig model."""

    def test_language_config_defaults(self):
        """Test the field defaults shared by tree-sitter grammars."""
        config = LanguageConfig(
            description="Test Language",
            grammar_module="tree_sitter_test",
            file_extensions=[".tst"],
            assignment_kinds=["assign"],
            call_kinds=["invoke"],
            string_content_kinds=["text"],
        )

        assert config.value_field == "right"
        assert config.arguments_field == "arguments"
        assert config.file_extensions == [".tst"]


class TestSettingsDefaults:
    """Tests for Settings default values."""

    def test_default_settings(self):
        """Test Settings with default values."""
        settings = Settings()

        assert settings.schema_cache_ttl_seconds == 300.0
        assert settings.schema_failure_backoff_seconds == 30.0
        assert settings.lint_debounce_seconds == 0.45
        assert settings.default_schema == "public"
        assert list(settings.languages) == ["python"]

    def test_default_python_language(self):
        """Test the shipped Python host-language configuration."""
        python = Settings().languages["python"]

        assert python.grammar_module == "tree_sitter_python"
        assert python.assignment_kinds == ["assignment", "annotated_assignment"]
        assert python.call_kinds == ["call"]
        assert python.string_content_kinds == ["string_content"]

    def test_settings_from_environment(self, monkeypatch):
        """Test that PGSENSE_ environment variables are honoured."""
        monkeypatch.setenv("PGSENSE_DATABASE_URL", "postgresql://app@db:5432/app")
        monkeypatch.setenv("PGSENSE_SCHEMA_CACHE_TTL_SECONDS", "60")

        settings = Settings()

        assert settings.database_url == "postgresql://app@db:5432/app"
        assert settings.schema_cache_ttl_seconds == 60.0


class TestLoadSettings:
    """Tests for load_settings function."""

    def test_load_settings_with_no_config_file(self, caplog):
        """Test loading settings when config file doesn't exist."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            non_existent_config = os.path.join(tmp_dir, "non_existent.yaml")
            settings = load_settings(non_existent_config)

            assert isinstance(settings, Settings)
            assert settings.default_schema == "public"
            assert "not found" in caplog.text

    def test_load_settings_with_empty_config_file(self):
        """Test loading settings with empty config file."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            Path(config_path).write_text("")

            settings = load_settings(config_path)

            assert settings.schema_cache_ttl_seconds == 300.0

    def test_load_settings_with_system_config(self):
        """Test loading settings with system configuration."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            config_content = """
system:
  database_url: "postgresql://reporting@localhost:5432/reports"
  schema_cache_ttl_seconds: 120
  default_schema: "reporting"
  unknown_key: "ignored"
"""
            Path(config_path).write_text(config_content)

            settings = load_settings(config_path)

            assert settings.database_url == "postgresql://reporting@localhost:5432/reports"
            assert settings.schema_cache_ttl_seconds == 120
            assert settings.default_schema == "reporting"
            assert not hasattr(settings, "unknown_key")

    def test_load_settings_with_languages(self):
        """Test that a languages section replaces the host-language table."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "config.yaml")
            config_content = """
languages:
  python:
    description: "Python, assignments only"
    grammar_module: "tree_sitter_python"
    file_extensions: [".py", ".pyi"]
    assignment_kinds: ["assignment"]
    call_kinds: []
    string_content_kinds: ["string_content"]
"""
            Path(config_path).write_text(config_content)

            settings = load_settings(config_path)

            python = settings.languages["python"]
            assert python.description == "Python, assignments only"
            assert python.file_extensions == [".py", ".pyi"]
            assert python.call_kinds == []

    def test_config_file_from_environment(self, monkeypatch):
        """Test that PGSENSE_CONFIG_FILE is used when no path is given."""
        with tempfile.TemporaryDirectory() as tmp_dir:
            config_path = os.path.join(tmp_dir, "custom.yaml")
            Path(config_path).write_text("system:\n  lint_debounce_seconds: 1.5\n")
            monkeypatch.setenv("PGSENSE_CONFIG_FILE", config_path)

            settings = load_settings()

            assert settings.lint_debounce_seconds == 1.5
