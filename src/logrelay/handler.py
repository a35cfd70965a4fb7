"""
Logging handlers wiring masking and batching into stdlib ``logging``.

- ``RelayHandler``: mask, filter and batch records into rate-limited deliveries
- ``MaskedFileHandler``: mask records before writing them to a file
"""

import logging
from typing import Mapping, Optional

import structlog

from .config import Settings, TransportSettings, get_settings
from .core.dispatcher import Dispatcher
from .core.exceptions import DeliveryError, MaskingError
from .core.masking import MaskingEngine, get_masking_engine
from .core.metrics import MetricsCollector, get_metrics_collector
from .core.transport import Transport
from .log_config import configure_logging
from .models.log_record import LogRecord

logger = structlog.get_logger(__name__)

# Records from these loggers never enter the pipeline
_OWN_LOGGER_PREFIX = "logrelay"


def _is_own_record(record: logging.LogRecord) -> bool:
    return record.name == _OWN_LOGGER_PREFIX or record.name.startswith(_OWN_LOGGER_PREFIX + ".")


class RelayHandler(logging.Handler):
    """
    Handler that masks records and hands them to a batching dispatcher.
    
    ``emit`` never blocks on delivery; ``close`` drains and shuts the
    dispatcher down.
    """
    
    def __init__(
        self,
        dispatcher: Dispatcher,
        masking_engine: Optional[MaskingEngine] = None,
        shutdown_timeout: Optional[float] = 10.0,
        metrics: Optional[MetricsCollector] = None,
        level: int = logging.NOTSET,
    ) -> None:
        super().__init__(level)
        self.dispatcher = dispatcher
        self.masking_engine = masking_engine
        self.shutdown_timeout = shutdown_timeout
        self.metrics = metrics
    
    def emit(self, record: logging.LogRecord) -> None:
        if _is_own_record(record):
            return
        
        try:
            self.handle_record(LogRecord.from_stdlib(record))
        except Exception:
            self.handleError(record)
    
    def handle_record(self, record: LogRecord) -> bool:
        """
        Submit a record, masking it once the filter has accepted it.
        
        Returns True if the dispatcher buffered it.
        """
        if self.masking_engine is None or not self.masking_engine.enabled:
            return self.dispatcher.submit(record)
        return self.dispatcher.submit(record, prepare=self._mask)
    
    def _mask(self, record: LogRecord) -> LogRecord:
        try:
            masked = self.masking_engine.mask(record)
        except Exception as e:
            raise MaskingError(
                "Failed to mask log record",
                details={"logger_name": record.logger_name},
            ) from e
        
        if masked is not record and self.metrics:
            self.metrics.record_masked()
        return masked
    
    def flush(self) -> None:
        """Deliver everything buffered, ignoring the send interval."""
        if self.dispatcher.closed:
            return
        
        try:
            self.dispatcher.force_flush()
        except DeliveryError as e:
            logger.error("Flush failed", error=str(e), details=e.details)
    
    def close(self, timeout: Optional[float] = None) -> None:
        """Shut the dispatcher down, delivering what is still buffered."""
        try:
            self.dispatcher.shutdown(self.shutdown_timeout if timeout is None else timeout)
        finally:
            super().close()


class MaskedFileHandler(logging.FileHandler):
    """File handler that masks each message before it is formatted."""
    
    def __init__(
        self,
        filename: str,
        masking_engine: Optional[MaskingEngine] = None,
        mode: str = "a",
        encoding: Optional[str] = "utf-8",
        delay: bool = False,
    ) -> None:
        super().__init__(filename, mode=mode, encoding=encoding, delay=delay)
        self.masking_engine = masking_engine or get_masking_engine()
    
    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            masked = self.masking_engine.mask_message(message)
            if masked is not message:
                # Copy so other handlers still see the original record
                record = logging.makeLogRecord({**record.__dict__, "msg": masked, "args": None})
        except Exception:
            self.handleError(record)
            return
        
        super().emit(record)


def create_relay_handler(
    settings: Optional[Settings] = None,
    transport: Optional[Transport] = None,
    metrics: Optional[MetricsCollector] = None,
) -> RelayHandler:
    """Build a fully wired RelayHandler from settings (defaults to ``get_settings()``)."""
    settings = settings or get_settings()
    
    dispatcher = Dispatcher.from_settings(settings, transport=transport, metrics=metrics)
    
    return RelayHandler(
        dispatcher,
        masking_engine=MaskingEngine.from_settings(settings.masking),
        shutdown_timeout=settings.dispatch.shutdown_timeout_seconds,
        metrics=metrics,
    )


def relay_handler_from_properties(
    properties: Mapping[str, Optional[str]],
    transport: Optional[Transport] = None,
    transport_settings: Optional[TransportSettings] = None,
    metrics: Optional[MetricsCollector] = None,
) -> RelayHandler:
    """Build a RelayHandler from writer-style key/value properties."""
    settings = Settings.from_properties(properties, transport=transport_settings)
    return create_relay_handler(settings, transport=transport, metrics=metrics)


def install_relay_handler(
    logger_name: Optional[str] = None,
    settings: Optional[Settings] = None,
    transport: Optional[Transport] = None,
    metrics: Optional[MetricsCollector] = None,
) -> RelayHandler:
    """
    Configure diagnostics logging and attach a RelayHandler to a logger.
    
    Args:
        logger_name: Logger to attach to; the root logger when None
        settings: Settings to use (defaults to ``get_settings()``)
        transport: Transport overriding the configured one
        metrics: Metrics collector; the shared default-registry collector when None
    
    Returns:
        The attached handler; close it (or call ``logging.shutdown()``) to
        deliver what is still buffered
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)
    metrics = metrics or get_metrics_collector()
    
    handler = create_relay_handler(settings, transport=transport, metrics=metrics)
    logging.getLogger(logger_name).addHandler(handler)
    
    logger.info(
        "Relay handler installed",
        logger_name=logger_name or "root",
        transport=settings.transport.kind,
        rules=len(handler.masking_engine.rules) if handler.masking_engine else 0,
    )
    return handler
