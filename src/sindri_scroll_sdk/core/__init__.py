"""
Core infrastructure shared across the Sindri proving adapter.

This package intentionally stays dependency-free apart from the standard
library: it only exposes the logging helpers used by the transport, the
translation layer and the CLI.
"""

from .logging import StructuredLogFormatter, configure_logging, get_logger

__all__ = [
    "StructuredLogFormatter",
    "configure_logging",
    "get_logger",
]
