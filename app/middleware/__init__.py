"""
Middleware modules for the segmentation API.

- Request ID tracking and response timing
"""

from .correlation import CorrelationIdMiddleware, CorrelationLogFilter, request_id_ctx

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "request_id_ctx",
]
