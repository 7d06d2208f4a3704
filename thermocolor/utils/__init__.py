"""Utility modules."""

from .config_loader import ConfigLoader, get_nested
from .logger import LoggerMixin, get_logger, setup_logger

__all__ = [
    "ConfigLoader",
    "get_nested",
    "setup_logger",
    "get_logger",
    "LoggerMixin",
]
