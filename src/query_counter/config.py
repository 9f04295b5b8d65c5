# src/query_counter/config.py
"""
Configuration schema and loading for the query counter.

Uses Pydantic for validation and Dynaconf for multi-source loading.
Settings are frozen (immutable) after construction; applying them to a
QueryCounter copies the values into its mutable runtime structures.
"""

from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

# Statement kinds that never count as queries: query-cache hits, schema
# introspection and EXPLAIN plans issued by tooling.
DEFAULT_IGNORED_STATEMENT_KINDS: frozenset[str] = frozenset({"CACHE", "SCHEMA", "EXPLAIN"})


class ThresholdSettings(BaseModel):
    """Notification thresholds.

    Every field is optional; None means "no limit". Times are in seconds.
    This model also validates runtime ThresholdSet.set() calls, so unknown
    names are rejected the same way in files and in code.

    Example YAML:
        thresholds:
          query_time: 0.5          # Notify for any query taking 500ms or more
          row_count: 1000          # Notify for any query returning 1000+ rows
          transaction_time: 2.0    # Notify for any transaction held 2s or more
          transaction_count: 20    # Notify when a scope finishes 20+ transactions
    """

    model_config = {"frozen": True, "extra": "forbid"}

    query_time: float | None = Field(
        default=None,
        description="Notify when a single query takes at least this many seconds",
    )
    row_count: int | None = Field(
        default=None,
        description="Notify when a single query returns at least this many rows",
    )
    transaction_time: float | None = Field(
        default=None,
        description="Notify when a single outermost transaction lasts at least this many seconds",
    )
    transaction_count: int | None = Field(
        default=None,
        description="Notify at scope end when at least this many transactions were recorded",
    )


class LoggingSettings(BaseModel):
    """Structured logging output settings."""

    model_config = {"frozen": True, "extra": "forbid"}

    json_output: bool = Field(default=False, description="Render log lines as JSON")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.upper()
        return v


class QueryCounterSettings(BaseModel):
    """Top-level settings for a QueryCounter instance."""

    model_config = {"frozen": True, "extra": "forbid"}

    thresholds: ThresholdSettings = Field(default_factory=ThresholdSettings)
    ignored_statement_kinds: frozenset[str] = Field(
        default=DEFAULT_IGNORED_STATEMENT_KINDS,
        description="Statement kinds excluded from all counters (case-insensitive)",
    )
    log_notifications: bool = Field(
        default=True,
        description="Register the built-in subscriber that logs every notification",
    )
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("ignored_statement_kinds", mode="before")
    @classmethod
    def normalize_kinds(cls, v: Any) -> Any:
        if isinstance(v, str):
            v = [v]
        if isinstance(v, list | tuple | set | frozenset):
            return frozenset(str(kind).upper() for kind in v)
        return v


def load_settings(config_path: Path) -> QueryCounterSettings:
    """Load settings from a YAML or TOML file with environment variable overrides.

    Uses Dynaconf for multi-source loading with precedence:
    1. Environment variables (QUERY_COUNTER_*) - highest priority
    2. Config file
    3. Defaults from the Pydantic schema - lowest priority

    Environment variable format: QUERY_COUNTER_THRESHOLDS__QUERY_TIME for
    nested keys.

    Args:
        config_path: Path to the configuration file

    Returns:
        Validated QueryCounterSettings instance

    Raises:
        ValidationError: If configuration fails Pydantic validation
        FileNotFoundError: If config file doesn't exist
    """
    from dynaconf import Dynaconf

    # Dynaconf silently accepts missing files
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    dynaconf_settings = Dynaconf(
        envvar_prefix="QUERY_COUNTER",
        settings_files=[str(config_path)],
        environments=False,
        load_dotenv=False,
        merge_enabled=True,
    )

    # Dynaconf returns uppercase keys; Pydantic expects lowercase
    internal_keys = {"LOAD_DOTENV", "ENVIRONMENTS", "SETTINGS_FILES"}
    raw_config = _lower_keys({k: v for k, v in dynaconf_settings.as_dict().items() if k not in internal_keys})
    return QueryCounterSettings(**raw_config)


def _lower_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k).lower(): _lower_keys(v) for k, v in value.items()}
    return value
