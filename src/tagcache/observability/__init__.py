"""
tagcache - Observability Module

Structured logging for the whole package. Modules log through
logging.getLogger(__name__); configure_logging() installs the JSON formatter
on the "tagcache" logger.

Usage:
    from tagcache.observability import configure_logging, request_context

    configure_logging("DEBUG")
    with request_context():
        ...
"""

from .formatting import JSONFormatter, configure_logging, get_request_id, request_context

__all__ = [
    "JSONFormatter",
    "configure_logging",
    "get_request_id",
    "request_context",
]
