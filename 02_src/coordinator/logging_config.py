"""Structured logging configuration for the hackathon coordinator."""

import json
import logging
import logging.config
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path

from .config import DEFAULT_LOG_PATH

# Chatty client libraries are capped at this level
QUIET_LOGGERS = ("httpx", "httpcore", "anthropic", "openai", "google_genai", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Agent-scoped loggers attach a context dict
        if hasattr(record, "context"):
            log_data["context"] = record.context

        return json.dumps(log_data, default=str)


class AgentLoggerAdapter(logging.LoggerAdapter):
    """Logger that stamps every record with a fixed context (e.g. agent id)."""

    def process(self, msg, kwargs):
        extra = kwargs.setdefault("extra", {})
        context = dict(self.extra)
        context.update(extra.get("context", {}))
        extra["context"] = context
        return msg, kwargs


def setup_logging(
    log_level: str | None = None,
    log_file: str | None = None,
) -> None:
    """
    Setup structured logging for the application.

    Args:
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
                   Defaults to LOG_LEVEL env var or INFO.
        log_file: Path to log file. Defaults to 04_logs/app.log.
    """
    if log_level is None:
        log_level = os.getenv("LOG_LEVEL", "INFO")

    if log_file is None:
        log_file = str(DEFAULT_LOG_PATH)

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "coordinator.logging_config.JSONFormatter",
            },
        },
        "handlers": {
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": log_file,
                "maxBytes": 10 * 1024 * 1024,  # 10 MB
                "backupCount": 5,
                "formatter": "json",
                "encoding": "utf-8",
            },
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "json",
                "stream": "ext://sys.stdout",
            },
        },
        "loggers": {name: {"level": "WARNING"} for name in QUIET_LOGGERS},
        "root": {
            "level": log_level.upper(),
            "handlers": ["file", "console"],
        },
    }

    logging.config.dictConfig(logging_config)


def get_logger(name: str, **context) -> logging.Logger | AgentLoggerAdapter:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__ of the module)
        **context: Fixed fields added to every record (e.g. agent_id="decision_engine")

    Returns:
        Logger, or an adapter carrying the context when one is given
    """
    logger = logging.getLogger(name)
    if context:
        return AgentLoggerAdapter(logger, context)
    return logger
