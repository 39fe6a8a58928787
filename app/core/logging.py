"""
Structured logging setup.

Production: one JSON object per line, with the campaign context fields
(campaign_id, vendor_message_id, ...) lifted to the top level so log
tooling can filter a single campaign or message.
Development: coloured, human readable.

Context is passed with `extra`:
    logger.info("[Dispatcher] Campaign completed", extra={"campaign_id": campaign.id})
"""
import logging
import sys
import json
from datetime import datetime, timezone
from typing import Optional

from app.core.config import settings

# Record attributes copied into JSON output when a caller sets them
CONTEXT_FIELDS = ("campaign_id", "segment_id", "customer_id", "vendor_message_id")

NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "postgrest", "uvicorn.access", "asyncio")


class JSONFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                log_data[name] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class ColoredFormatter(logging.Formatter):
    """Coloured formatter for local development."""

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        # colour a copy; other handlers share the record
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname, self.RESET)
        record.levelname = f"{color}{record.levelname}{self.RESET}"
        return super().format(record)


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> logging.Handler:
    """
    Configure the root logger.

    Args:
        level: Overrides LOG_LEVEL
        json_output: Overrides the ENVIRONMENT based choice (JSON in production)

    Returns:
        The stdout handler that was installed
    """
    level = (level or settings.LOG_LEVEL).upper()
    if json_output is None:
        json_output = settings.is_production

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(ColoredFormatter(
            fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))

    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, level, logging.INFO))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return handler
