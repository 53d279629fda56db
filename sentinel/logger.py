"""
Sentinel Logger Module

Provides a centralized logging factory for the sentinel components.
Supports text and JSON output, configurable log levels, and per-component tagging.
"""

import logging
import os
import sys
from typing import ClassVar

from pythonjsonlogger import jsonlogger

TEXT_FORMAT = "[{component}] %(asctime)s.%(msecs)03d - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ComponentFilter(logging.Filter):
    """Tags every record with the component that emitted it."""

    def __init__(self, component: str):
        super().__init__()
        self.component = component

    def filter(self, record: logging.LogRecord) -> bool:
        record.component = self.component
        return True


class SentinelLogger:
    """
    Centralized logger factory for sentinel components.

    Every logger writes whole lines to stdout through a single handler, so output from
    concurrent monitor tasks never interleaves within a line.
    """

    _loggers: ClassVar[dict[str, logging.Logger]] = {}
    _configured: ClassVar[bool] = False

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """
        Get or create a logger with the given name.

        Args:
            name: Component name (e.g. 'monitor', 'responder', 'orchestrator')

        Returns:
            Configured logging.Logger instance named 'sentinel.<name>'
        """
        full_name = f"sentinel.{name}"

        if full_name not in cls._loggers:
            logger = logging.getLogger(full_name)
            cls._configure_logger(logger, name)
            cls._loggers[full_name] = logger

        return cls._loggers[full_name]

    @classmethod
    def _configure_logger(cls, logger: logging.Logger, component: str) -> None:
        """
        Attach a stdout handler and formatter to a logger.

        Args:
            logger: Logger instance to configure
            component: Component name used in the output
        """
        if logger.handlers:
            return

        log_level = cls._get_log_level()
        log_format_type = os.getenv("LOG_FORMAT", "text").lower()

        logger.setLevel(log_level)
        # Root handler would print every line twice
        logger.propagate = False

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)

        if log_format_type == "json":
            handler.setFormatter(cls._get_json_formatter())
        else:
            handler.setFormatter(cls._get_text_formatter(component))

        handler.addFilter(_ComponentFilter(component))
        logger.addHandler(handler)

    @staticmethod
    def _get_log_level() -> int:
        log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
        log_level = logging.getLevelName(log_level_str)
        if not isinstance(log_level, int):
            return logging.INFO
        return log_level

    @staticmethod
    def _get_text_formatter(component: str) -> logging.Formatter:
        """
        Create a text formatter with millisecond timestamps.

        Args:
            component: Name of the component for the line prefix

        Returns:
            Configured logging.Formatter for text output
        """
        fmt = TEXT_FORMAT.format(component=component.upper())
        return logging.Formatter(fmt, datefmt=DATE_FORMAT)

    @staticmethod
    def _get_json_formatter() -> logging.Formatter:
        """
        Create a JSON formatter.

        Returns:
            jsonlogger.JsonFormatter emitting timestamp, level, component and message
        """
        return jsonlogger.JsonFormatter(
            fmt="%(timestamp)s %(levelname)s %(component)s %(message)s",
            rename_fields={"levelname": "level"},
            timestamp=True,
        )

    @classmethod
    def configure_root_logger(cls) -> None:
        """
        Configure the root logger with basic settings.

        Called once at startup so third-party libraries (docker, redis) log consistently.
        """
        if cls._configured:
            return

        root_logger = logging.getLogger()
        log_level = cls._get_log_level()
        root_logger.setLevel(log_level)

        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt=DATE_FORMAT,
            )
        )
        root_logger.addHandler(handler)

        cls._configured = True

    @classmethod
    def reset(cls) -> None:
        """
        Drop all cached loggers and their handlers.

        Useful for testing or reconfiguration.
        """
        for logger in cls._loggers.values():
            for handler in logger.handlers[:]:
                logger.removeHandler(handler)
        cls._loggers.clear()
        cls._configured = False
