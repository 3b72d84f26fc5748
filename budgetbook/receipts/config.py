"""TOML configuration loader for the receipt pipeline."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]


_DEFAULT_DB_PATH = "~/.config/budgetbook/budget.db"


@dataclass
class DatabaseConfig:
    path: str = _DEFAULT_DB_PATH


@dataclass
class SecretsConfig:
    source: str = "env"  # env | database


@dataclass
class OCRConfig:
    backend: str = "ocr_space"
    endpoint: str = "https://api.ocr.space/parse/image"
    language: str = "eng"
    engine: int = 2
    timeout_s: float = 60.0


@dataclass
class GeminiStructuredConfig:
    model: str = "gemini-2.5-flash"


@dataclass
class ClaudeStructuredConfig:
    model: str = "claude-sonnet-4-5-20250929"


@dataclass
class StructuredConfig:
    backend: str = "gemini"
    mode: str = "ocr"  # ocr | vision
    gemini: GeminiStructuredConfig = field(default_factory=GeminiStructuredConfig)
    claude: ClaudeStructuredConfig = field(default_factory=ClaudeStructuredConfig)


@dataclass
class StorageConfig:
    signed_url_ttl_s: int = 3600
    timeout_s: float = 30.0


@dataclass
class PipelineConfig:
    max_attempts: int = 3
    attempt_backoff_s: float = 0.6
    pointer_polls: int = 6
    pointer_poll_backoff_s: float = 0.65
    error_max_length: int = 500
    stale_lock_after_s: int = 300
    grocery_keywords: list[str] = field(default_factory=lambda: ["grocery", "groceries"])


@dataclass
class SchedulerConfig:
    retry_schedule: str = "*/15 * * * *"
    retry_failed: bool = False
    batch_limit: int = 50


@dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class ReceiptsConfig:
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    secrets: SecretsConfig = field(default_factory=SecretsConfig)
    ocr: OCRConfig = field(default_factory=OCRConfig)
    structured: StructuredConfig = field(default_factory=StructuredConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None) -> ReceiptsConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    The database path and secret source can be overridden via environment
    variables. Credentials are never read from here; see ``secrets``.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    db = raw.get("database", {})
    sec = raw.get("secrets", {})
    ocr = raw.get("ocr", {})
    stc = raw.get("structured", {})
    sto = raw.get("storage", {})
    ppl = raw.get("pipeline", {})
    sch = raw.get("scheduler", {})
    srv = raw.get("server", {})
    log = raw.get("logging", {})

    gemini_cfg = stc.get("gemini", {})
    claude_cfg = stc.get("claude", {})

    # Resolve overridable values: environment variable → config file → default
    db_path = os.environ.get("BUDGETBOOK_DB_PATH", "") or db.get("path", _DEFAULT_DB_PATH)
    secrets_source = os.environ.get("BUDGETBOOK_SECRETS_SOURCE", "") or sec.get("source", "env")

    defaults = PipelineConfig()

    return ReceiptsConfig(
        database=DatabaseConfig(path=db_path),
        secrets=SecretsConfig(source=secrets_source),
        ocr=OCRConfig(
            backend=ocr.get("backend", "ocr_space"),
            endpoint=ocr.get("endpoint", "https://api.ocr.space/parse/image"),
            language=ocr.get("language", "eng"),
            engine=ocr.get("engine", 2),
            timeout_s=ocr.get("timeout_s", 60.0),
        ),
        structured=StructuredConfig(
            backend=stc.get("backend", "gemini"),
            mode=stc.get("mode", "ocr"),
            gemini=GeminiStructuredConfig(
                model=gemini_cfg.get("model", "gemini-2.5-flash"),
            ),
            claude=ClaudeStructuredConfig(
                model=claude_cfg.get("model", "claude-sonnet-4-5-20250929"),
            ),
        ),
        storage=StorageConfig(
            signed_url_ttl_s=sto.get("signed_url_ttl_s", 3600),
            timeout_s=sto.get("timeout_s", 30.0),
        ),
        pipeline=PipelineConfig(
            max_attempts=ppl.get("max_attempts", defaults.max_attempts),
            attempt_backoff_s=ppl.get("attempt_backoff_s", defaults.attempt_backoff_s),
            pointer_polls=ppl.get("pointer_polls", defaults.pointer_polls),
            pointer_poll_backoff_s=ppl.get(
                "pointer_poll_backoff_s", defaults.pointer_poll_backoff_s
            ),
            error_max_length=ppl.get("error_max_length", defaults.error_max_length),
            stale_lock_after_s=ppl.get("stale_lock_after_s", defaults.stale_lock_after_s),
            grocery_keywords=ppl.get("grocery_keywords", defaults.grocery_keywords),
        ),
        scheduler=SchedulerConfig(
            retry_schedule=sch.get("retry_schedule", "*/15 * * * *"),
            retry_failed=sch.get("retry_failed", False),
            batch_limit=sch.get("batch_limit", 50),
        ),
        server=ServerConfig(
            host=srv.get("host", "127.0.0.1"),
            port=srv.get("port", 8000),
        ),
        logging=LoggingConfig(
            level=log.get("level", "INFO"),
        ),
    )
