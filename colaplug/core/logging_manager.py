from __future__ import annotations

import logging
import sys
from typing import Any, Dict, List, Optional, TextIO

import structlog
from pythonjsonlogger import jsonlogger

from colaplug.core.base import ColaManager
from colaplug.utils.exceptions import ManagerInitializationError


class LoggingManager(ColaManager):
    """Configures console logging for a run.

    structlog loggers are routed through the standard library so that one
    handler on the root logger decides the output: human-readable text or
    one JSON object per line.
    """

    # Mapping from string log levels to logging module constants
    LOG_LEVELS = {
        "debug": logging.DEBUG,
        "info": logging.INFO,
        "warning": logging.WARNING,
        "error": logging.ERROR,
        "critical": logging.CRITICAL,
    }

    def __init__(self, level: str = "info", format: str = "text", stream: Optional[TextIO] = None) -> None:
        """Initialize the Logging Manager.

        Args:
            level: Minimum level name
            format: ``text`` or ``json``
            stream: Output stream, stderr by default
        """
        super().__init__(name="logging_manager")
        self._level_name = level.lower()
        self._format = format.lower()
        self._stream = stream
        self._root_logger: Optional[logging.Logger] = None
        self._handlers: List[logging.Handler] = []

    def initialize(self) -> None:
        """Install the console handler and configure structlog.

        Raises:
            ManagerInitializationError: If the level or format is unknown
        """
        if self._level_name not in self.LOG_LEVELS:
            raise ManagerInitializationError(
                f"Unknown log level: {self._level_name}", manager_name=self.name
            )
        if self._format not in ("text", "json"):
            raise ManagerInitializationError(
                f"Unknown log format: {self._format}", manager_name=self.name
            )

        log_level = self.LOG_LEVELS[self._level_name]
        self._root_logger = logging.getLogger()
        self._root_logger.setLevel(log_level)

        for handler in list(self._root_logger.handlers):
            self._root_logger.removeHandler(handler)

        handler = logging.StreamHandler(self._stream or sys.stderr)
        handler.setLevel(log_level)
        handler.setFormatter(self._create_formatter())
        self._root_logger.addHandler(handler)
        self._handlers.append(handler)

        self._configure_structlog()

        self._initialized = True
        self._healthy = True

    def _create_formatter(self) -> logging.Formatter:
        if self._format == "json":
            return self._create_json_formatter()
        return structlog.stdlib.ProcessorFormatter(
            processor=structlog.dev.ConsoleRenderer(colors=False),
            foreign_pre_chain=self._shared_processors(),
        )

    def _create_json_formatter(self) -> logging.Formatter:
        """Create a JSON formatter for log records.

        Returns:
            logging.Formatter: A formatter that outputs logs in JSON format.
        """
        return jsonlogger.JsonFormatter(
            fmt="%(asctime)s %(name)s %(levelname)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
            json_ensure_ascii=False,
        )

    @staticmethod
    def _shared_processors() -> List[Any]:
        return [
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ]

    def _configure_structlog(self) -> None:
        """Configure structlog for structured logging."""
        if self._format == "json":
            # Event dict goes to the JSON formatter as record attributes
            final_processor = structlog.stdlib.render_to_log_kwargs
        else:
            final_processor = structlog.stdlib.ProcessorFormatter.wrap_for_formatter

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *self._shared_processors(),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.UnicodeDecoder(),
                final_processor,
            ],
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )

    def get_logger(self, name: str) -> Any:
        return structlog.get_logger(name)

    def shutdown(self) -> None:
        """Remove the handlers installed by initialize."""
        if not self._initialized:
            return

        for handler in self._handlers:
            if self._root_logger is not None:
                self._root_logger.removeHandler(handler)
            handler.flush()
            handler.close()
        self._handlers.clear()

        self._initialized = False
        self._healthy = False

    def status(self) -> Dict[str, Any]:
        status = super().status()
        status.update({
            "level": self._level_name,
            "format": self._format,
            "handlers": len(self._handlers),
        })
        return status
