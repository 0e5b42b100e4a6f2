"""FastAPI middleware components.

This package contains custom middleware for request/response processing:
correlation ids, structured request logging and HTTP metrics.
"""

from api.src.middleware.request_logging import (
    CORRELATION_ID_HEADER,
    RequestLoggingMiddleware,
)

__all__ = [
    "CORRELATION_ID_HEADER",
    "RequestLoggingMiddleware",
]
