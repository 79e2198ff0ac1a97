"""Structured logging configuration for the API service."""

import logging
import sys

from backoffice.constants import ServiceName
from backoffice.logging.formatter import JSONLogFormatter


def configure_logging(service: ServiceName = ServiceName.API, level: str = "INFO") -> None:
    """Set up structured JSON logging on the root logger."""
    root = logging.getLogger()
    root.setLevel(logging.getLevelName(level.upper()))
    for handler in root.handlers[:]:
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONLogFormatter(service=service))
    root.addHandler(handler)
