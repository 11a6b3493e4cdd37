import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from config.settings import settings

# Extra fields copied onto structured log lines when present
EXTRA_FIELDS = (
    "request_id", "tenant_id", "deal_id", "state", "method", "url",
    "status_code", "process_time", "source", "count"
)

class StructuredFormatter(logging.Formatter):
    """JSON lines formatter for log aggregation"""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0]:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
            }

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry, default=str)

class SimpleFormatter(logging.Formatter):
    """Human-readable formatter for development"""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

_initialized = False

def setup_logging(
    level: Optional[str] = None,
    fmt: Optional[str] = None,
    log_file: Optional[str] = None
) -> logging.Logger:
    """
    Configure root logging once at application startup

    Args:
        level: Log level override (default: settings.LOG_LEVEL)
        fmt: "structured" or "simple" (default: settings.LOG_FORMAT)
        log_file: Optional log file path (default: settings.LOG_FILE)

    Returns:
        The application logger
    """
    global _initialized
    app_logger = logging.getLogger("deal_signal_engine")
    if _initialized:
        return app_logger
    _initialized = True

    level = level or settings.LOG_LEVEL
    fmt = fmt or settings.LOG_FORMAT
    log_file = log_file or settings.LOG_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    formatter = StructuredFormatter() if fmt == "structured" else SimpleFormatter()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    # Quiet down noisy libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("google").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    app_logger.info(f"Logging configured: level={level}, format={fmt}")
    return app_logger
