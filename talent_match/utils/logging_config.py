"""
Logging setup for the Talent Match API.

Everything under the ``talent_match`` logger tree goes to the console and,
outside of tests, to rotating files. Records carry the request id the
middleware attaches (``extra={"request_id": ...}``) so a streamed run can be
followed across the match/extraction services.
"""
import logging
import logging.config
import os
import time
from pathlib import Path
from typing import Any, Dict, Optional

LOGGER_ROOT = "talent_match"
MAX_LOG_BYTES = 10 * 1024 * 1024

FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)-36s | %(request_id)-36s | %(message)s",
}

# ENVIRONMENT -> setup_logging kwargs; LOG_LEVEL overrides the level
ENVIRONMENT_PROFILES: Dict[str, Dict[str, Any]] = {
    "production": {"level": "INFO", "log_to_file": True, "format_style": "detailed"},
    "development": {"level": "DEBUG", "log_to_file": True, "format_style": "detailed"},
    "testing": {"level": "WARNING", "log_to_file": False, "format_style": "simple"},
}

# Chatty third-party loggers; their warnings still get through
QUIET_LOGGERS = ("pymongo", "httpx", "httpcore", "pdfminer", "unstructured")


class RequestContextFilter(logging.Filter):
    """Guarantees ``record.request_id`` so the detailed format never fails."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "request_id"):
            record.request_id = "-"
        return True


def setup_logging(
    level: str = "INFO",
    log_dir: Optional[str] = None,
    log_to_file: bool = True,
    format_style: str = "detailed",
) -> None:
    """
    Configure the ``talent_match`` and uvicorn loggers.

    Args:
        level: Level for the application loggers
        log_dir: Directory for talent_match.log / talent_match_errors.log (LOG_DIR, default "logs")
        log_to_file: Add the rotating file handlers
        format_style: 'simple' or 'detailed'
    """
    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": format_style if format_style in FORMATS else "detailed",
            "filters": ["request_context"],
            "stream": "ext://sys.stdout",
        }
    }

    log_path = None
    if log_to_file:
        log_path = Path(log_dir or os.getenv("LOG_DIR", "logs"))
        log_path.mkdir(parents=True, exist_ok=True)
        for name, file_level, filename in (
            ("file", level, "talent_match.log"),
            ("error_file", "ERROR", "talent_match_errors.log"),
        ):
            handlers[name] = {
                "class": "logging.handlers.RotatingFileHandler",
                "level": file_level,
                "formatter": "detailed",
                "filters": ["request_context"],
                "filename": str(log_path / filename),
                "maxBytes": MAX_LOG_BYTES,
                "backupCount": 5,
                "encoding": "utf8",
            }

    app_handlers = list(handlers)
    server_handlers = [h for h in app_handlers if h != "error_file"]
    loggers: Dict[str, Dict[str, Any]] = {
        LOGGER_ROOT: {"level": level, "handlers": app_handlers, "propagate": False},
        "uvicorn": {"level": "INFO", "handlers": server_handlers, "propagate": False},
        "uvicorn.access": {"level": "INFO", "handlers": ["console"], "propagate": False},
    }
    for name in QUIET_LOGGERS:
        loggers[name] = {"level": "WARNING"}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"request_context": {"()": RequestContextFilter}},
        "formatters": {
            "detailed": {"format": FORMATS["detailed"], "datefmt": "%Y-%m-%d %H:%M:%S"},
            "simple": {"format": FORMATS["simple"]},
        },
        "handlers": handlers,
        "loggers": loggers,
    })

    logger = get_logger("logging")
    logger.info(f"Logging configured - level={level}, files={log_path or 'off'}")


def get_logger(name: str) -> logging.Logger:
    """Logger under the ``talent_match`` tree (module __name__ already is)."""
    if name == LOGGER_ROOT or name.startswith(LOGGER_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_ROOT}.{name}")


def configure_for_environment(environment: Optional[str] = None) -> None:
    """Pick a profile from ENVIRONMENT (production/development/testing); LOG_LEVEL wins if set."""
    environment = (environment or os.getenv("ENVIRONMENT", "development")).lower()
    profile = dict(ENVIRONMENT_PROFILES.get(environment, ENVIRONMENT_PROFILES["production"]))
    if os.getenv("LOG_LEVEL"):
        profile["level"] = os.getenv("LOG_LEVEL").upper()
    setup_logging(**profile)


class PerformanceMonitor:
    """
    Times a block and logs the result: info when under threshold_ms, a
    warning when over, an error (with the elapsed time) when the block raised.
    """

    def __init__(self, operation_name: str, logger: logging.Logger = None, threshold_ms: float = 1000):
        self.operation_name = operation_name
        self.logger = logger or get_logger("performance")
        self.threshold_ms = threshold_ms
        self.elapsed_ms: Optional[float] = None
        self._start = None

    def __enter__(self):
        self._start = time.perf_counter()
        self.logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000
        extra = {"operation": self.operation_name, "elapsed_ms": round(self.elapsed_ms, 2)}

        if exc_type is not None:
            self.logger.error(f"{self.operation_name} failed after {self.elapsed_ms:.2f}ms: {exc_val}", extra=extra)
        elif self.elapsed_ms > self.threshold_ms:
            self.logger.warning(
                f"{self.operation_name} took {self.elapsed_ms:.2f}ms (threshold {self.threshold_ms}ms)", extra=extra
            )
        else:
            self.logger.info(f"{self.operation_name} completed in {self.elapsed_ms:.2f}ms", extra=extra)
        return False
