"""
Dispatch scheduler: decides when buffered records are sent.

States:
- IDLE: no cooldown active, no timer armed
- COOLDOWN_UNARMED: the minimum interval has not elapsed, no timer yet
- COOLDOWN_ARMED: one delayed flush is outstanding

The first record after a quiet period is sent immediately; records arriving
during the cooldown are collected and flushed by a single delayed timer.
"""

import threading
import time
from enum import Enum
from typing import Callable, Optional, Protocol

import structlog

logger = structlog.get_logger(__name__)


class TimerHandle(Protocol):
    """Anything that can cancel a pending delayed call."""

    def cancel(self) -> None:
        ...


class DispatchState(str, Enum):
    """Observable scheduler states."""
    
    IDLE = "idle"
    COOLDOWN_UNARMED = "cooldown_unarmed"
    COOLDOWN_ARMED = "cooldown_armed"


class Decision(str, Enum):
    """Outcome of evaluating a newly buffered record."""
    
    SEND_NOW = "send_now"
    ARMED = "armed"
    ALREADY_ARMED = "already_armed"


class DispatchScheduler:
    """
    Minimum-interval state machine with at most one armed timer.
    
    Args:
        interval_seconds: Minimum time between two sends; None sends on every record
        arm_timer: Called with a delay in seconds, must return a cancellable handle
            that fires the delayed flush
        clock: Monotonic clock, injectable for tests
    """
    
    def __init__(
        self,
        interval_seconds: Optional[float],
        arm_timer: Callable[[float], TimerHandle],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.interval_seconds = interval_seconds if interval_seconds and interval_seconds > 0 else None
        self._arm_timer = arm_timer
        self._clock = clock
        self._next_allowed: Optional[float] = None
        self._timer: Optional[TimerHandle] = None
        self._lock = threading.Lock()
    
    @property
    def next_allowed_send_time(self) -> Optional[float]:
        return self._next_allowed
    
    @property
    def timer_armed(self) -> bool:
        return self._timer is not None
    
    @property
    def state(self) -> DispatchState:
        with self._lock:
            if self._timer is not None:
                return DispatchState.COOLDOWN_ARMED
            if self._next_allowed is not None and self._clock() < self._next_allowed:
                return DispatchState.COOLDOWN_UNARMED
            return DispatchState.IDLE
    
    def on_record_buffered(self) -> Decision:
        """Decide what to do about a record that was just buffered."""
        if self.interval_seconds is None:
            return Decision.SEND_NOW
        
        with self._lock:
            if self._timer is not None:
                return Decision.ALREADY_ARMED
            
            now = self._clock()
            if self._next_allowed is None or now >= self._next_allowed:
                return Decision.SEND_NOW
            
            delay = self._next_allowed - now
            self._timer = self._arm_timer(delay)
        
        logger.debug("Delayed flush armed", delay_seconds=round(delay, 3))
        return Decision.ARMED
    
    def on_flushed(self, sent: bool = True) -> None:
        """
        Record that a flush happened.
        
        Clears (and cancels, if still pending) the armed timer. When a batch
        was actually sent the cooldown restarts from now.
        """
        with self._lock:
            timer, self._timer = self._timer, None
            if sent and self.interval_seconds is not None:
                self._next_allowed = self._clock() + self.interval_seconds
        
        if timer is not None:
            # No-op when the timer is the one currently firing
            timer.cancel()
    
    def cancel(self) -> None:
        """Cancel any armed timer without touching the cooldown."""
        with self._lock:
            timer, self._timer = self._timer, None
        
        if timer is not None:
            timer.cancel()
