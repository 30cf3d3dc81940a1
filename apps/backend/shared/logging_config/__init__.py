"""
Unified Logging System for the workflow runtime services
统一的日志系统，支持本地开发和 JSON 结构化输出
"""

from .config import get_logger, setup_logging
from .formatters import SimpleConsoleFormatter, StructuredJSONFormatter

__all__ = [
    "setup_logging",
    "get_logger",
    "SimpleConsoleFormatter",
    "StructuredJSONFormatter",
]
