"""
Logging Utility for the OKR Assistant.

Provides root logging configuration and a structured (JSON) logger used for
audit events such as chat turns and workflow transitions.
"""

import logging
import sys
from datetime import datetime
import json

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once.

    Args:
        level: Logging level name
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    # Prevent adding handlers multiple times
    if not root.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(console_handler)


class StructuredLogger:
    """Emits one JSON document per event through a standard logger."""

    def __init__(self, name: str, level: int = logging.INFO):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            level: Minimum level emitted by this logger
        """
        self.logger = logging.getLogger(name)
        self.level = level

    def _log_structured(self, level: int, event: str, **kwargs):
        """
        Log a structured event.

        Args:
            level: Logging level
            event: Event name
            **kwargs: Additional structured data
        """
        if level >= self.level and self.logger.isEnabledFor(level):
            log_data = {
                "timestamp": datetime.utcnow().isoformat(),
                "level": logging.getLevelName(level),
                "event": event,
                "service": self.logger.name
            }
            log_data.update(kwargs)

            self.logger.log(level, json.dumps(log_data, default=str))

    def info(self, event: str, **kwargs):
        self._log_structured(logging.INFO, event, **kwargs)

    def warning(self, event: str, **kwargs):
        self._log_structured(logging.WARNING, event, **kwargs)

    def error(self, event: str, **kwargs):
        self._log_structured(logging.ERROR, event, **kwargs)


def get_structured_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger for the given component.

    Args:
        name: Logger name

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)
