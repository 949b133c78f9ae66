"""Utility functions."""

from bookquest.utils.response import (
    engine_error,
    error_response,
    success_response,
    unauthorized,
    validation_error,
)
from bookquest.utils.timeutil import ensure_utc, isoformat, local_time, to_storage

__all__ = [
    "success_response",
    "error_response",
    "engine_error",
    "unauthorized",
    "validation_error",
    "ensure_utc",
    "to_storage",
    "local_time",
    "isoformat",
]
