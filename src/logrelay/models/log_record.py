"""
Log record data model.

- Immutable value type: masking produces a copy with only the message replaced
- Error classification and message are optional and read by the record filter
- Everything else is passthrough and preserved verbatim
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class LogLevel(str, Enum):
    """Allowed log levels."""
    
    DEBUG = "DEBUG"
    INFO = "INFO" 
    WARN = "WARN"
    ERROR = "ERROR"
    FATAL = "FATAL"


_STDLIB_LEVELS = {
    logging.DEBUG: LogLevel.DEBUG,
    logging.INFO: LogLevel.INFO,
    logging.WARNING: LogLevel.WARN,
    logging.ERROR: LogLevel.ERROR,
    logging.CRITICAL: LogLevel.FATAL,
}


# Attributes every stdlib record carries; anything else arrived through ``extra=``
_STDLIB_ATTRIBUTES = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}


def level_from_stdlib(levelno: int) -> LogLevel:
    """Map a stdlib numeric level onto the closest LogLevel at or below it."""
    for threshold in sorted(_STDLIB_LEVELS, reverse=True):
        if levelno >= threshold:
            return _STDLIB_LEVELS[threshold]
    return LogLevel.DEBUG


class LogRecord(BaseModel):
    """
    Individual log record.
    
    Frozen: a masked record is a new instance sharing all unchanged fields.
    """
    
    message: str = Field(
        default="",
        description="Log message content"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the log event occurred"
    )
    level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Log level (DEBUG, INFO, WARN, ERROR, FATAL)"
    )
    
    # Optional fields
    logger_name: Optional[str] = Field(
        default=None,
        description="Name of the emitting logger"
    )
    thread: Optional[str] = Field(
        default=None,
        description="Name of the emitting thread"
    )
    location: Optional[str] = Field(
        default=None,
        description="Source location as module:function:line"
    )
    error_class: Optional[str] = Field(
        default=None,
        description="Fully-qualified class name of the attached error"
    )
    error_message: Optional[str] = Field(
        default=None,
        description="Message of the attached error"
    )
    extra: Dict[str, Any] = Field(
        default_factory=dict,
        description="Additional structured passthrough fields"
    )
    
    model_config = ConfigDict(
        frozen=True,
        validate_default=True,
        # Use enum values in serialization
        use_enum_values=True,
    )
    
    @property
    def has_error(self) -> bool:
        return self.error_class is not None or self.error_message is not None
    
    def with_message(self, message: str) -> "LogRecord":
        """Return a copy carrying ``message``; every other field is shared."""
        return self.model_copy(update={"message": message})
    
    @classmethod
    def from_stdlib(cls, record: logging.LogRecord) -> "LogRecord":
        """Build a record from a stdlib ``logging.LogRecord``."""
        error_class = None
        error_message = None
        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value = record.exc_info[0], record.exc_info[1]
            error_class = f"{exc_type.__module__}.{exc_type.__qualname__}"
            error_message = str(exc_value) if exc_value is not None else None
        
        return cls(
            message=record.getMessage(),
            timestamp=datetime.fromtimestamp(record.created, tz=timezone.utc),
            level=level_from_stdlib(record.levelno),
            logger_name=record.name,
            thread=record.threadName,
            location=f"{record.module}:{record.funcName}:{record.lineno}",
            error_class=error_class,
            error_message=error_message,
            extra={
                key: value
                for key, value in vars(record).items()
                if key not in _STDLIB_ATTRIBUTES and not key.startswith("_")
            },
        )
