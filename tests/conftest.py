"""
Pytest configuration and shared fixtures.

Contains common test fixtures and setup for all test modules.
"""

import asyncio
import threading
import time
from typing import Any, Callable, Dict, Generator, List

import pytest

from logrelay.config import get_settings
from logrelay.core.dispatcher import Dispatcher
from logrelay.core.exceptions import DeliveryError
from logrelay.models.log_record import LogRecord


class RecordingTransport:
    """In-memory transport that records every delivered batch."""
    
    def __init__(self, fail: bool = False, delay: float = 0.0, fail_open: bool = False) -> None:
        self.fail = fail
        self.fail_open = fail_open
        self.opened = False
        self.delay = delay
        self.batches: List[str] = []
        self.attempts = 0
        self.closed = False
        self._lock = threading.Lock()
    
    async def open(self) -> None:
        if self.fail_open:
            raise DeliveryError("destination unreachable")
        self.opened = True
    
    async def deliver(self, text: str) -> None:
        with self._lock:
            self.attempts += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise DeliveryError("transport unavailable")
        with self._lock:
            self.batches.append(text)
    
    async def close(self) -> None:
        self.closed = True


class MessageRenderer:
    """Render only the message, one per line."""
    
    def render(self, record: LogRecord) -> str:
        return record.message + "\n"


def _wait_until(predicate: Callable[[], bool], timeout: float = 3.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Settings are cached per process; start and end every test clean."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_record() -> Callable[..., LogRecord]:
    """Factory for log records."""
    def factory(message: str = "Test log message", **fields: Any) -> LogRecord:
        return LogRecord(message=message, logger_name="tests", thread="MainThread", **fields)
    return factory


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def failing_transport() -> RecordingTransport:
    return RecordingTransport(fail=True)


@pytest.fixture
def slow_transport() -> RecordingTransport:
    return RecordingTransport(delay=2.0)


@pytest.fixture
def unreachable_transport() -> RecordingTransport:
    return RecordingTransport(fail_open=True)


@pytest.fixture
def wait_until() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""
    return _wait_until


@pytest.fixture
def make_dispatcher() -> Generator[Callable[..., Dispatcher], None, None]:
    """Factory for dispatchers that are always shut down after the test."""
    created: List[Dispatcher] = []
    
    def factory(**kwargs: Any) -> Dispatcher:
        kwargs.setdefault("renderer", MessageRenderer())
        dispatcher = Dispatcher(**kwargs)
        created.append(dispatcher)
        return dispatcher
    
    yield factory
    
    for dispatcher in created:
        if not dispatcher.closed:
            try:
                dispatcher.shutdown(timeout=1.0)
            except DeliveryError:
                pass


@pytest.fixture
def masking_properties() -> Dict[str, str]:
    """Writer-style properties with one prefix/suffix rule."""
    return {
        "filter.prefix": "<ele>",
        "filter.suffix": "<ele/>",
    }
