"""
Shared utilities for Insulin Advisor.
"""

from .localtime import (
    format_local,
    local_hour,
    resolve_timezone,
    to_local,
    utcnow,
)

__all__ = [
    "format_local",
    "local_hour",
    "resolve_timezone",
    "to_local",
    "utcnow",
]
