"""
Structured JSON logging for the vesting ledger.

Ledger modules log through ``logging.getLogger(__name__)`` and pass their
structured fields in ``extra``. This module installs the JSON formatter
and handlers once per process.

Usage:
    from vestledger.core.logging_config import setup_logging

    logger = setup_logging(name="vestledger", level="INFO")
    logger.info("Options granted", extra={"beneficiary": "0xabc", "amount": 100})
"""

import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Dict, Any

from pythonjsonlogger import jsonlogger


class LedgerJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter that stamps every record with a UTC timestamp, level,
    environment and service name.
    """

    def __init__(
        self,
        fmt: str = "%(timestamp)s %(level)s %(name)s %(message)s",
        environment: Optional[str] = None,
        service_name: str = "vestledger",
    ):
        super().__init__(fmt=fmt)
        self.environment = environment or "production"
        self.service_name = service_name

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()

        log_record["environment"] = self.environment
        log_record["service"] = self.service_name
        log_record["level"] = record.levelname.lower()

        log_record["source"] = {
            "function": record.funcName,
            "module": record.module,
            "line": record.lineno,
        }


def setup_logging(
    name: str = "vestledger",
    log_file: Optional[str] = None,
    level: str = "INFO",
    environment: str = "production",
    enable_console: bool = True,
    max_bytes: int = 100 * 1024 * 1024,  # 100MB
    backup_count: int = 10,
) -> logging.Logger:
    """
    Setup structured JSON logging.

    Args:
        name: Logger name; child loggers such as ``vestledger.core.grant_ledger``
            propagate to it
        log_file: Path to JSON log file (optional)
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Environment identifier (dev, staging, prod)
        enable_console: Whether to log to stdout
        max_bytes: Maximum log file size before rotation
        backup_count: Number of backup files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = LedgerJsonFormatter(
        environment=environment,
        service_name=name.split(".")[0],
    )

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, level.upper()))
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file:
        try:
            log_path = Path(log_file)
            log_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
            )
            file_handler.setLevel(getattr(logging, level.upper()))
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"Could not create file handler for {log_file}: {e}")

    return logger


def get_logger(
    name: str,
    log_file: Optional[str] = None,
    level: str = "INFO",
) -> logging.Logger:
    """
    Get or create a logger with standard configuration.

    Only configures the logger if it has no handlers yet.
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        return setup_logging(name=name, log_file=log_file, level=level)

    return logger
