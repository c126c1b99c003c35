"""Middleware package."""

from taskhub.middleware.logging import LoggingMiddleware, configure_logging
from taskhub.middleware.request_id import RequestIDMiddleware

__all__ = ["LoggingMiddleware", "RequestIDMiddleware", "configure_logging"]
