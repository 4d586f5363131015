"""Logging, metrics and request middleware for the share engine."""

from .logging import configure_logging, get_logger, request_id_ctx
from .metrics import metrics_text, observe_decision, observe_issued, observe_recorded

__all__ = [
    "configure_logging",
    "get_logger",
    "metrics_text",
    "observe_decision",
    "observe_issued",
    "observe_recorded",
    "request_id_ctx",
]
