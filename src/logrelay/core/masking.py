"""
Data masking engine for redacting marked substrings of log messages.

A rule names a start marker and either an end marker or a fixed length.
Everything between the markers (or the fixed number of characters after
the start marker) is overwritten with the replacement character.
Executes before rendering so no sensitive text ever leaves the process.
"""

from dataclasses import dataclass
from typing import Any, Iterable, List, Optional, Tuple

import structlog

from ..config import MaskingSettings, get_settings, parse_positive_int
from ..models.log_record import LogRecord

logger = structlog.get_logger(__name__)

DEFAULT_REPLACE_CHARACTER = "*"


@dataclass(frozen=True)
class FilterRule:
    """One masking rule: a start marker plus an end marker or a fixed length."""
    start_marker: str
    end_marker: Optional[str] = None
    fixed_length: Optional[int] = None

    @classmethod
    def create(
        cls,
        start_marker: Optional[str],
        end_marker: Optional[str] = None,
        fixed_length: Any = None,
    ) -> Optional["FilterRule"]:
        """
        Build a rule from raw configuration values.

        Returns None for an unusable rule: an empty start marker, or neither
        an end marker nor a positive fixed length. When both are configured
        the end marker wins.
        """
        start = (start_marker or "").strip()
        if not start:
            return None

        end = (end_marker or "").strip() or None
        if end is not None:
            return cls(start_marker=start, end_marker=end)

        length = parse_positive_int(fixed_length)
        if length is None:
            return None
        return cls(start_marker=start, fixed_length=length)

    def apply(self, text: str, replace_character: str) -> Tuple[str, int]:
        """
        Mask every occurrence of this rule in ``text``.

        Returns the (possibly) new text and the number of spans replaced.
        """
        replaced = 0
        marker_len = len(self.start_marker)

        pos = text.find(self.start_marker)
        while pos >= 0:
            start = pos + marker_len

            if self.end_marker is not None:
                end = text.find(self.end_marker, start)
                if end >= 0:
                    text = text[:start] + replace_character * (end - start) + text[end:]
                    replaced += 1
            else:
                end = min(start + (self.fixed_length or 0), len(text))
                text = text[:start] + replace_character * (end - start) + text[end:]
                replaced += 1

            # Resume one past the previous match so adjacent occurrences are found
            pos = text.find(self.start_marker, pos + 1)

        return text, replaced


class MaskingEngine:
    """
    Applies an ordered, immutable set of filter rules to log messages.

    Features:
    - Start/end marker masking and fixed-length masking
    - Configurable replacement character
    - Optional search limit: text beyond it is reattached untouched
    - Rules apply cumulatively in configuration order

    Holds no mutable state and is safe to share between threads.
    """

    def __init__(
        self,
        rules: Iterable[FilterRule] = (),
        replace_character: str = DEFAULT_REPLACE_CHARACTER,
        search_length: Optional[int] = None,
    ) -> None:
        self.rules: Tuple[FilterRule, ...] = tuple(rules)
        self.replace_character = (replace_character or DEFAULT_REPLACE_CHARACTER)[0]
        self.search_length = parse_positive_int(search_length)

        logger.info(
            "Masking engine initialized",
            rules=len(self.rules),
            replace_character=self.replace_character,
            search_length=self.search_length,
        )

    @classmethod
    def from_settings(cls, settings: MaskingSettings) -> "MaskingEngine":
        """Create an engine from typed masking settings, discarding unusable rules."""
        rules: List[FilterRule] = []
        for rule_settings in settings.rules:
            rule = FilterRule.create(
                rule_settings.prefix,
                rule_settings.suffix,
                rule_settings.fixed_length,
            )
            if rule is None:
                logger.warning("Discarding unusable masking rule", prefix=rule_settings.prefix)
                continue
            rules.append(rule)

        return cls(
            rules=rules,
            replace_character=settings.replace_character,
            search_length=settings.search_length,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.rules)

    def mask_message(self, message: str) -> str:
        """
        Mask a message string.

        Returns the very same string object when nothing was replaced.
        """
        masked, replaced = self._mask(message)
        return masked if replaced else message

    def mask(self, record: LogRecord) -> LogRecord:
        """
        Mask the message of a log record.

        Args:
            record: The record to mask

        Returns:
            A new record with only the message replaced, or ``record`` itself
            when no rule matched
        """
        masked, replaced = self._mask(record.message)
        if not replaced:
            return record

        logger.debug("Masked log record", spans=replaced, logger_name=record.logger_name)
        return record.with_message(masked)

    def _mask(self, message: str) -> Tuple[str, int]:
        if not message or not self.rules:
            return message, 0

        tail = ""
        text = message
        if self.search_length is not None and len(message) > self.search_length:
            text = message[:self.search_length]
            tail = message[self.search_length:]

        total = 0
        for rule in self.rules:
            text, replaced = rule.apply(text, self.replace_character)
            total += replaced

        if not total:
            return message, 0
        return text + tail, total


# Global masking engine instance
_masking_engine: Optional[MaskingEngine] = None


def get_masking_engine() -> MaskingEngine:
    """Get or create the global masking engine instance."""
    global _masking_engine

    if _masking_engine is None:
        _masking_engine = MaskingEngine.from_settings(get_settings().masking)

    return _masking_engine
