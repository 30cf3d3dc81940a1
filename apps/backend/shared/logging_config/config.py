"""
Unified Logging Configuration for the workflow runtime services
"""

import logging
import os
import sys
from typing import Optional

from .formatters import SimpleConsoleFormatter, StructuredJSONFormatter

NOISY_LOGGERS = (
    "uvicorn",
    "uvicorn.error",
    "httpx",
    "httpcore",
    "apscheduler",
    "asyncio",
    "watchfiles",
    "supabase",
    "gotrue",
    "postgrest",
    "realtime",
    "storage3",
    "supafunc",
)


def setup_logging(
    service_name: str,
    log_level: str = "INFO",
    log_format: Optional[str] = None,
) -> logging.Logger:
    """
    Setup unified logging for a service

    Args:
        service_name: Name of the service (e.g., "workflow-scheduler")
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Format type ("simple", "json", "standard")

    Returns:
        Configured logger instance
    """
    if log_format is None:
        log_format = os.getenv("LOG_FORMAT", "simple")

    log_level = os.getenv("LOG_LEVEL", log_level).upper()
    level = getattr(logging, log_level, logging.INFO)

    root_logger = logging.getLogger()
    # Clear existing handlers to avoid duplicates on reload
    root_logger.handlers.clear()
    root_logger.setLevel(level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if log_format == "json":
        formatter: logging.Formatter = StructuredJSONFormatter()
    elif log_format == "simple":
        formatter = SimpleConsoleFormatter()
    else:
        formatter = logging.Formatter(
            fmt="%(levelname)s:     %(asctime)s - %(name)s - [%(filename)s:%(lineno)d] - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    _configure_third_party_loggers()

    logger = logging.getLogger(service_name)
    logger.info(f"Logging configured for {service_name} with level={log_level}, format={log_format}")
    return logger


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


def _configure_third_party_loggers():
    """Configure log levels for third-party libraries to reduce noise"""
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    # Only show errors and above for access logs
    logging.getLogger("uvicorn.access").setLevel(logging.ERROR)
