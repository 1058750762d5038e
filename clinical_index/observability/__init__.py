"""
Observability module.

Provides logging configuration and structured-logging helpers.
"""

from clinical_index.observability.log_utils import (
    log_exception_with_context,
    log_with_context,
    safe_log_value,
)
from clinical_index.observability.logger import configure_logging

__all__ = [
    "configure_logging",
    "log_exception_with_context",
    "log_with_context",
    "safe_log_value",
]
