"""Tests for receipt pipeline config loading."""

import os
import tempfile

import pytest

from budgetbook.receipts.config import ReceiptsConfig, load_config


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch):
    monkeypatch.delenv("BUDGETBOOK_DB_PATH", raising=False)
    monkeypatch.delenv("BUDGETBOOK_SECRETS_SOURCE", raising=False)


def test_load_config_defaults():
    """Loading with no path returns all defaults."""
    config = load_config()
    assert isinstance(config, ReceiptsConfig)
    assert config.database.path == "~/.config/budgetbook/budget.db"
    assert config.secrets.source == "env"
    assert config.ocr.backend == "ocr_space"
    assert config.ocr.engine == 2
    assert config.structured.backend == "gemini"
    assert config.structured.mode == "ocr"
    assert config.pipeline.max_attempts == 3
    assert config.pipeline.attempt_backoff_s == 0.6
    assert config.pipeline.pointer_polls == 6
    assert config.pipeline.pointer_poll_backoff_s == 0.65
    assert config.pipeline.error_max_length == 500
    assert "grocery" in config.pipeline.grocery_keywords
    assert config.scheduler.retry_schedule == "*/15 * * * *"
    assert config.scheduler.retry_failed is False


def test_load_config_nonexistent_file():
    """Loading a nonexistent file returns defaults."""
    config = load_config("/nonexistent/path.toml")
    assert config.pipeline.max_attempts == 3


def test_load_config_from_toml():
    """Loading a valid TOML file populates config."""
    toml_content = b"""\
[database]
path = "/var/budget/budget.db"

[secrets]
source = "database"

[structured]
backend = "claude"
mode = "vision"

[structured.claude]
model = "claude-test"

[pipeline]
max_attempts = 5
grocery_keywords = ["food"]

[scheduler]
retry_schedule = "0 * * * *"
retry_failed = true

[server]
port = 9000
"""
    with tempfile.NamedTemporaryFile(suffix=".toml", delete=False) as f:
        f.write(toml_content)
        f.flush()
        config = load_config(f.name)

    os.unlink(f.name)

    assert config.database.path == "/var/budget/budget.db"
    assert config.secrets.source == "database"
    assert config.structured.backend == "claude"
    assert config.structured.mode == "vision"
    assert config.structured.claude.model == "claude-test"
    assert config.pipeline.max_attempts == 5
    assert config.pipeline.grocery_keywords == ["food"]
    assert config.scheduler.retry_schedule == "0 * * * *"
    assert config.scheduler.retry_failed is True
    assert config.server.port == 9000


def test_load_config_partial_toml():
    """Partial TOML uses defaults for missing sections and keys."""
    toml_content = b"""\
[pipeline]
attempt_backoff_s = 0.0
"""
    with tempfile.NamedTemporaryFile(suffix=".toml", delete=False) as f:
        f.write(toml_content)
        f.flush()
        config = load_config(f.name)

    os.unlink(f.name)
    assert config.pipeline.attempt_backoff_s == 0.0
    assert config.pipeline.max_attempts == 3
    assert config.structured.gemini.model == "gemini-2.5-flash"


def test_load_config_env_override(monkeypatch):
    """Environment variables override the database path and secret source."""
    monkeypatch.setenv("BUDGETBOOK_DB_PATH", "/tmp/env.db")
    monkeypatch.setenv("BUDGETBOOK_SECRETS_SOURCE", "database")

    toml_content = b"""\
[database]
path = "/var/file.db"
"""
    with tempfile.NamedTemporaryFile(suffix=".toml", delete=False) as f:
        f.write(toml_content)
        f.flush()
        config = load_config(f.name)

    os.unlink(f.name)
    assert config.database.path == "/tmp/env.db"
    assert config.secrets.source == "database"
