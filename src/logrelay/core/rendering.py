"""
Record rendering.

The dispatcher never interprets rendering rules; it asks a renderer for the
text of each record and concatenates the results.
"""

from typing import Optional, Protocol

from ..models.log_record import LogRecord

DEFAULT_PATTERN = "{timestamp:%Y-%m-%d %H:%M:%S} [{thread}] {level} {logger_name}: {message}"


class _Extra(dict):
    """Passthrough fields for patterns; unknown keys render as ``-``."""

    def __missing__(self, key: str) -> str:
        return "-"


class Renderer(Protocol):
    """Deterministic, side-effect-free record formatter."""

    def render(self, record: LogRecord) -> str:
        ...


class PatternRenderer:
    """
    Render records with a ``str.format`` pattern, one line block per record.

    Passthrough fields are available as ``{extra[request_id]}``.
    """

    def __init__(self, pattern: Optional[str] = None) -> None:
        self.pattern = pattern or DEFAULT_PATTERN

    def render(self, record: LogRecord) -> str:
        level = getattr(record.level, "value", record.level)
        text = self.pattern.format(
            timestamp=record.timestamp,
            level=level,
            logger_name=record.logger_name or "root",
            thread=record.thread or "-",
            location=record.location or "-",
            message=record.message,
            extra=_Extra(record.extra),
        )

        if record.has_error:
            text += f"\n{record.error_class or 'Error'}: {record.error_message or ''}"

        return text + "\n"
