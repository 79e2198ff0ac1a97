"""Structured JSON logging."""

from backoffice.logging.formatter import JSONLogFormatter
from backoffice.logging.setup import configure_logging

__all__ = ["JSONLogFormatter", "configure_logging"]
