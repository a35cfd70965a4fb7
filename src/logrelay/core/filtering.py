"""
Include/exclude filter deciding which records enter the batching pipeline.

Matching is plain substring search on lower-cased text, never regex.
"""

from typing import Iterable, Optional, Tuple

import structlog

from ..config import DispatchSettings
from ..models.log_record import LogRecord

logger = structlog.get_logger(__name__)


def _normalize(tokens: Optional[Iterable[str]]) -> Tuple[str, ...]:
    if not tokens:
        return ()
    return tuple(token.strip().lower() for token in tokens if token and token.strip())


def _contains_any(text: Optional[str], tokens: Tuple[str, ...]) -> bool:
    if not text:
        return False
    lowered = text.lower()
    return any(token in lowered for token in tokens)


class RecordFilter:
    """
    Case-insensitive include/exclude predicate over log records.
    
    - Include (if configured): the message must contain at least one token
    - Exclude (if configured): the message, error class or error message
      must contain none of the tokens
    
    Pure and safe for concurrent use.
    """
    
    def __init__(
        self,
        include: Optional[Iterable[str]] = None,
        exclude: Optional[Iterable[str]] = None,
    ) -> None:
        self.include = _normalize(include)
        self.exclude = _normalize(exclude)
    
    @classmethod
    def from_settings(cls, settings: DispatchSettings) -> "RecordFilter":
        return cls(include=settings.include, exclude=settings.exclude)
    
    def accepts(self, record: LogRecord) -> bool:
        """Return True if ``record`` should be batched."""
        if self.include and not _contains_any(record.message, self.include):
            return False
        
        if self.exclude:
            if _contains_any(record.message, self.exclude):
                return False
            if _contains_any(record.error_class, self.exclude):
                return False
            if _contains_any(record.error_message, self.exclude):
                return False
        
        return True
    
    __call__ = accepts
