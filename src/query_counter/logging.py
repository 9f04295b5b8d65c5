# src/query_counter/logging.py
"""Optional structlog setup for applications that embed the query counter.

The package itself only ever calls structlog.get_logger(); it never
configures logging on import. configure_logging() is a convenience for
hosts without their own setup (and for configure_from_file(), which calls
it by default): threshold warnings from LoggingSubscriber and the
application's stdlib logging records then come out in one format, either
JSON lines for log shippers or plain console lines for development.

SQLAlchemy's own statement logging is held at WARNING or stricter, so the
counter's warnings are not buried under per-statement echo.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import ProcessorFormatter

# SQLAlchemy loggers that echo statements and pool activity at INFO/DEBUG.
_SQLALCHEMY_LOGGERS: tuple[str, ...] = (
    "sqlalchemy",
    "sqlalchemy.engine",
    "sqlalchemy.engine.Engine",
    "sqlalchemy.pool",
    "sqlalchemy.orm",
)

_SHARED_PROCESSORS: tuple[Any, ...] = (
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.stdlib.PositionalArgumentsFormatter(),
    structlog.processors.StackInfoRenderer(),
)


def _drop_formatter_fields(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Strip the _record/_from_structlog keys ProcessorFormatter adds to every event."""
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _renderers(json_output: bool) -> list[Any]:
    if json_output:
        return [
            _drop_formatter_fields,
            structlog.processors.format_exc_info,
            # Notification fields may hold CallSiteTrace, bind tuples or other
            # driver values json cannot encode; render those via str()
            structlog.processors.JSONRenderer(default=str),
        ]
    return [_drop_formatter_fields, structlog.dev.ConsoleRenderer(colors=False)]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
) -> None:
    """Route structlog and stdlib logging to one stdout handler.

    Replaces the root logger's handlers. Safe to call again, e.g. after
    loading new settings.

    Args:
        json_output: JSON lines if True, console lines otherwise
        level: Root level name, case-insensitive (DEBUG ... CRITICAL)
    """
    log_level = getattr(logging, level.upper())

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            processors=_renderers(json_output),
            foreign_pre_chain=list(_SHARED_PROCESSORS),
        )
    )

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(log_level)

    # WARNING at the least, stricter if the root level is stricter
    sqlalchemy_level = max(log_level, logging.WARNING)
    for logger_name in _SQLALCHEMY_LOGGERS:
        logging.getLogger(logger_name).setLevel(sqlalchemy_level)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """structlog logger for a query_counter module."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
