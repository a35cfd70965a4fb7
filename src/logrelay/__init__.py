"""
LogRelay - masking and batching for outbound log notifications

Redacts marked substrings of log messages and coalesces records into
rate-limited batch deliveries (one combined message per interval).
"""

__version__ = "0.1.0"

from .core.dispatcher import Dispatcher
from .core.masking import FilterRule, MaskingEngine
from .handler import MaskedFileHandler, RelayHandler, create_relay_handler, install_relay_handler
from .models.log_record import LogLevel, LogRecord

__all__ = [
    "Dispatcher",
    "FilterRule",
    "LogLevel",
    "LogRecord",
    "MaskedFileHandler",
    "MaskingEngine",
    "RelayHandler",
    "create_relay_handler",
    "install_relay_handler",
]
