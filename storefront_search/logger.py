"""Logging configuration with timestamps and request IDs."""

import logging
import os
import uuid
from datetime import datetime
from pathlib import Path
from typing import Optional

LOGGER_NAME = "storefront_search"


def setup_logger(log_level: str = "INFO", log_file: Optional[str] = None) -> logging.Logger:
    """
    Set up the search logger with file and console handlers.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Path to log file (default: logs/search.log)

    Returns:
        Configured logger instance
    """
    if log_file is None:
        log_dir = Path("logs")
        log_dir.mkdir(exist_ok=True)
        log_file = str(log_dir / "search.log")
    else:
        log_dir = Path(log_file).parent
        log_dir.mkdir(parents=True, exist_ok=True)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    class RequestFormatter(logging.Formatter):
        """Formatter that includes the request ID."""

        def format(self, record: logging.LogRecord) -> str:
            if not hasattr(record, 'request_id'):
                record.request_id = "N/A"
            record.iso_timestamp = datetime.now().isoformat()
            return super().format(record)

    formatter = RequestFormatter(
        fmt='[%(iso_timestamp)s] [%(request_id)s] [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    file_handler = logging.FileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """Get the search logger, configuring it from LOG_LEVEL on first use."""
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        setup_logger(log_level=os.getenv("LOG_LEVEL", "INFO"))
    return logger


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def request_logger(request_id: Optional[str] = None) -> logging.LoggerAdapter:
    """
    Search logger whose records carry one request ID.

    Args:
        request_id: ID to stamp; a new one is generated when omitted

    Returns:
        LoggerAdapter over the search logger
    """
    return logging.LoggerAdapter(get_logger(), {"request_id": request_id or new_request_id()})
