"""
Pydantic data models package.

Contains the immutable log record passed through masking and batching.
"""

from .log_record import LogLevel, LogRecord

__all__ = [
    "LogLevel",
    "LogRecord",
]
