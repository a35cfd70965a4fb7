"""
Batching dispatcher.

Orchestrates the flow of a record:
1. Include/exclude filtering
2. Buffering (on the caller's thread)
3. Scheduling decision (on the dispatch loop)
4. Rendering and delivery of the drained batch

The dispatch loop is a dedicated asyncio event loop on a background thread,
so the logging thread never blocks on transport I/O. Delivery is at most
once: a drained batch is never re-queued.
"""

import asyncio
import concurrent.futures
import threading
import time
from typing import Callable, Optional, Set

import structlog

from ..config import Settings
from ..models.log_record import LogRecord
from .buffer import BatchBuffer
from .exceptions import DeliveryError, DispatcherClosedError
from .filtering import RecordFilter
from .metrics import MetricsCollector
from .rendering import PatternRenderer, Renderer
from .scheduler import Decision, DispatchScheduler
from .transport import Transport, build_transport

logger = structlog.get_logger(__name__)


class Dispatcher:
    """
    Coalesces records into rate-limited batch deliveries.

    Handles:
    - Filtering and buffering of submitted records
    - Minimum-interval scheduling with a single delayed flush
    - Bounded concurrent delivery through the transport
    - Best-effort drain on shutdown
    """

    def __init__(
        self,
        transport: Transport,
        renderer: Optional[Renderer] = None,
        record_filter: Optional[RecordFilter] = None,
        interval_seconds: Optional[float] = None,
        max_concurrent_sends: int = 2,
        metrics: Optional[MetricsCollector] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.transport = transport
        self.renderer = renderer or PatternRenderer()
        self.record_filter = record_filter or RecordFilter()
        self.metrics = metrics
        self.buffer = BatchBuffer()

        self._loop = asyncio.new_event_loop()
        self._send_slots = asyncio.Semaphore(max(1, max_concurrent_sends))
        self.scheduler = DispatchScheduler(
            interval_seconds,
            arm_timer=self._arm_timer,
            clock=clock,
        )

        self._closed = False
        self._lock = threading.Lock()
        self._in_flight: Set["concurrent.futures.Future[None]"] = set()
        self._timer_tasks: Set["asyncio.Task[int]"] = set()

        self._thread = threading.Thread(
            target=self._run_loop,
            name="logrelay-dispatch",
            daemon=True,
        )
        self._thread.start()

        try:
            asyncio.run_coroutine_threadsafe(self.transport.open(), self._loop).result()
        except Exception as e:
            logger.error("Transport unusable, dispatcher not started", error=str(e))
            self._closed = True
            self._stop_loop()
            raise

        logger.info(
            "Dispatcher started",
            interval_seconds=self.scheduler.interval_seconds,
            max_concurrent_sends=max_concurrent_sends,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: Optional[Transport] = None,
        renderer: Optional[Renderer] = None,
        metrics: Optional[MetricsCollector] = None,
    ) -> "Dispatcher":
        """Create a dispatcher from typed settings."""
        return cls(
            transport=transport or build_transport(settings.transport),
            renderer=renderer or PatternRenderer(settings.render_pattern),
            record_filter=RecordFilter.from_settings(settings.dispatch),
            interval_seconds=settings.dispatch.interval_seconds,
            max_concurrent_sends=settings.dispatch.max_concurrent_sends,
            metrics=metrics,
        )

    @property
    def closed(self) -> bool:
        return self._closed

    def submit(
        self,
        record: LogRecord,
        prepare: Optional[Callable[[LogRecord], LogRecord]] = None,
    ) -> bool:
        """
        Offer a record for batching.

        Args:
            record: The record to batch
            prepare: Applied to records the filter accepts, before buffering

        Returns True if the record was buffered, False if it was filtered
        out or the dispatcher is shut down. Never blocks on delivery.
        """
        if not self.record_filter.accepts(record):
            if self.metrics:
                self.metrics.record_dropped("filtered")
            return False

        if prepare is not None:
            record = prepare(record)

        with self._lock:
            if self._closed:
                logger.debug("Record rejected, dispatcher shut down")
                if self.metrics:
                    self.metrics.record_dropped("closed")
                return False

            size = self.buffer.append(record)
            future = asyncio.run_coroutine_threadsafe(self._evaluate(), self._loop)
            self._in_flight.add(future)

        future.add_done_callback(self._forget)

        if self.metrics:
            self.metrics.record_submitted()
        logger.debug("Record buffered", buffered=size)
        return True

    def force_flush(self) -> int:
        """
        Send everything buffered now, ignoring the cooldown.

        Blocks until delivery finished. Returns the number of records sent.

        Raises:
            DeliveryError: If the transport fails
            DispatcherClosedError: If the dispatch loop is already stopped
        """
        if threading.current_thread() is self._thread:
            raise RuntimeError("force_flush() cannot be called from the dispatch loop")
        if self._loop.is_closed():
            raise DispatcherClosedError()

        future = asyncio.run_coroutine_threadsafe(self._send_batch(raise_errors=True), self._loop)
        return future.result()

    def shutdown(self, timeout: Optional[float] = None) -> int:
        """
        Stop accepting records, drain in-flight work and flush what is left.

        Args:
            timeout: Seconds to wait for in-flight evaluations; None waits for all

        Returns:
            Number of records delivered by the final flush

        Raises:
            DeliveryError: If the final flush fails to deliver
        """
        with self._lock:
            if self._closed:
                return 0
            self._closed = True
            pending = set(self._in_flight)

        logger.info("Dispatcher shutting down", in_flight=len(pending), timeout=timeout)

        if pending:
            _, not_done = concurrent.futures.wait(pending, timeout=timeout)
            if not_done:
                logger.warning(
                    "Shutdown timed out waiting for in-flight sends",
                    abandoned=len(not_done),
                )
                for future in not_done:
                    future.cancel()

        try:
            future = asyncio.run_coroutine_threadsafe(self._final_flush(), self._loop)
            sent = future.result()
        finally:
            self._stop_loop()

        logger.info("Dispatcher stopped", final_batch_records=sent)
        return sent

    # ------------------------------------------------------------------
    # Dispatch loop
    # ------------------------------------------------------------------

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()

    def _stop_loop(self, join_timeout: float = 5.0) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(join_timeout)
        if not self._loop.is_running():
            self._loop.close()

    def _forget(self, future: "concurrent.futures.Future[None]") -> None:
        with self._lock:
            self._in_flight.discard(future)

    def _arm_timer(self, delay: float) -> asyncio.TimerHandle:
        # Only called from the dispatch loop via the scheduler
        return self._loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        task = self._loop.create_task(self._send_batch(raise_errors=False))
        self._timer_tasks.add(task)
        task.add_done_callback(self._timer_tasks.discard)

    async def _evaluate(self) -> None:
        decision = self.scheduler.on_record_buffered()
        if decision is Decision.SEND_NOW:
            await self._send_batch(raise_errors=False)

    async def _final_flush(self) -> int:
        self.scheduler.cancel()
        if self._timer_tasks:
            await asyncio.gather(*self._timer_tasks, return_exceptions=True)

        try:
            return await self._send_batch(raise_errors=True)
        finally:
            await self.transport.close()

    async def _send_batch(self, raise_errors: bool) -> int:
        """
        Drain the buffer and deliver it as one unit.

        An empty drain is a successful no-op. Failed batches are dropped.
        """
        records = self.buffer.drain_all()
        self.scheduler.on_flushed(sent=bool(records))

        if not records:
            return 0

        try:
            text = "".join(self.renderer.render(record) for record in records)
            async with self._send_slots:
                await self.transport.deliver(text)
        except DeliveryError as e:
            logger.error(
                "Batch delivery failed",
                records=len(records),
                error=str(e),
                details=e.details,
            )
            if self.metrics:
                self.metrics.record_delivery_failure(e.error_code)
            if raise_errors:
                raise
            return 0
        except Exception as e:
            logger.error(
                "Batch delivery failed",
                records=len(records),
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            if self.metrics:
                self.metrics.record_delivery_failure("unexpected_error")
            if raise_errors:
                raise DeliveryError("Batch delivery failed", details={"error": str(e)}) from e
            return 0

        if self.metrics:
            self.metrics.record_batch_sent(len(records))
        logger.info("Batch delivered", records=len(records), size_chars=len(text))
        return len(records)
