"""
Thread-safe buffer of records awaiting dispatch.
"""

import threading
from collections import deque
from typing import Deque, List

from ..models.log_record import LogRecord


class BatchBuffer:
    """
    Ordered collection of pending records.
    
    ``append`` and ``drain_all`` are the only mutations and both run under
    the same lock, so concurrent producers never lose or interleave records.
    """
    
    def __init__(self) -> None:
        self._pending: Deque[LogRecord] = deque()
        self._lock = threading.Lock()
    
    def append(self, record: LogRecord) -> int:
        """
        Insert a record at the head (most recent first).
        
        Returns the buffer size observed right after the insertion.
        """
        with self._lock:
            self._pending.appendleft(record)
            return len(self._pending)
    
    def drain_all(self) -> List[LogRecord]:
        """
        Remove and return every pending record, oldest first.
        
        Returns an empty list when nothing is pending.
        """
        with self._lock:
            if not self._pending:
                return []
            records = list(reversed(self._pending))
            self._pending.clear()
            return records
    
    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)
