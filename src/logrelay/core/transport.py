"""
Outbound transports for rendered batches.

Features:
- HTTP delivery with aiohttp
- File delivery with aiofiles
- Mail delivery with aiosmtplib
- Payload size validation before delivery
"""

import asyncio
import time
from email.message import EmailMessage
from email.utils import parseaddr
from pathlib import Path
from typing import Dict, Optional, Protocol

import aiofiles
import aiohttp
import aiosmtplib
import structlog

from ..config import TransportSettings
from .exceptions import ConfigurationError, DeliveryError

logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """Delivers one block of text to a destination."""

    async def open(self) -> None:
        """Prepare the destination; raise DeliveryError if it is unusable."""
        ...

    async def deliver(self, text: str) -> None:
        """Deliver ``text`` or raise DeliveryError."""
        ...

    async def close(self) -> None:
        ...


def _validate_payload(text: str, max_bytes: int) -> bytes:
    payload = text.encode("utf-8")
    if len(payload) > max_bytes:
        raise DeliveryError(
            "Batch exceeds maximum payload size",
            details={"size_bytes": len(payload), "max_bytes": max_bytes},
        )
    return payload


class HttpTransport:
    """
    POST each batch to an HTTP endpoint.
    
    The client session is created lazily on the event loop that first
    delivers, and closed by ``close()``.
    """
    
    def __init__(self, settings: TransportSettings):
        self.settings = settings
        self.session: Optional[aiohttp.ClientSession] = None
        
        logger.info("HTTP transport initialized", url=settings.url)
    
    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
            )
        return self.session
    
    async def open(self) -> None:
        await self._get_session()
    
    async def deliver(self, text: str) -> None:
        payload = _validate_payload(text, self.settings.max_payload_bytes)
        
        headers: Dict[str, str] = {
            "Content-Type": self.settings.content_type,
            "User-Agent": "logrelay/0.1",
        }
        headers.update(self.settings.headers)
        
        session = await self._get_session()
        started = time.monotonic()
        try:
            async with session.post(self.settings.url, data=payload, headers=headers) as response:
                if 200 <= response.status < 300:
                    logger.debug(
                        "Batch posted",
                        status=response.status,
                        size_bytes=len(payload),
                        duration_seconds=round(time.monotonic() - started, 3),
                    )
                    return
                
                error_text = await response.text()
                raise DeliveryError(
                    "Endpoint rejected batch",
                    status_code=response.status,
                    details={"response": error_text[:512]},
                )
        except asyncio.TimeoutError as e:
            raise DeliveryError(
                "HTTP delivery timed out",
                details={"url": self.settings.url, "timeout_seconds": self.settings.timeout_seconds},
            ) from e
        except aiohttp.ClientError as e:
            raise DeliveryError(
                "HTTP delivery failed",
                details={"url": self.settings.url, "error": str(e)},
            ) from e
    
    async def close(self) -> None:
        if self.session:
            await self.session.close()
            self.session = None
        
        logger.info("HTTP transport closed")


class FileTransport:
    """Append each batch to a file."""
    
    def __init__(self, path: Path, max_payload_bytes: int = 1048576):
        self.path = Path(path)
        self.max_payload_bytes = max_payload_bytes
        
        logger.info("File transport initialized", path=str(self.path))
    
    async def open(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DeliveryError(
                "File destination unusable",
                details={"path": str(self.path), "error": str(e)},
            ) from e
    
    async def deliver(self, text: str) -> None:
        _validate_payload(text, self.max_payload_bytes)
        
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self.path, "a", encoding="utf-8") as f:
                await f.write(text)
        except OSError as e:
            raise DeliveryError(
                "File delivery failed",
                details={"path": str(self.path), "error": str(e)},
            ) from e
    
    async def close(self) -> None:
        pass


def _is_address(value: Optional[str]) -> bool:
    if not value:
        return False
    _, address = parseaddr(value)
    return "@" in address and not any(c in value for c in "\r\n")


class MailTransport:
    """
    Send each batch as one plain-text email.
    
    Every batch opens its own SMTP connection; ``open()`` verifies the
    server (and the login, if configured) so a bad configuration fails
    when the dispatcher starts rather than on the first batch.
    """
    
    _SMTP_ERRORS = (aiosmtplib.SMTPException, OSError, asyncio.TimeoutError)
    
    def __init__(self, settings: TransportSettings):
        if not _is_address(settings.mail_from):
            raise ConfigurationError("Mail sender address missing or invalid", details={"mail_from": settings.mail_from})
        if not settings.mail_to:
            raise ConfigurationError("Mail transport needs at least one recipient")
        
        invalid = [rcpt for rcpt in settings.mail_to if not _is_address(rcpt)]
        if invalid:
            raise ConfigurationError("Invalid recipient address", details={"mail_to": invalid})
        
        self.settings = settings
        
        logger.info(
            "Mail transport initialized",
            host=settings.smtp_host,
            port=settings.smtp_port,
            recipients=len(settings.mail_to),
        )
    
    @property
    def _details(self) -> Dict[str, object]:
        return {"host": self.settings.smtp_host, "port": self.settings.smtp_port}
    
    def _client(self) -> aiosmtplib.SMTP:
        return aiosmtplib.SMTP(
            hostname=self.settings.smtp_host,
            port=self.settings.smtp_port,
            use_tls=self.settings.smtp_use_tls,
            start_tls=self.settings.smtp_start_tls,
            timeout=self.settings.timeout_seconds,
        )
    
    async def open(self) -> None:
        """Connect, log in and disconnect again."""
        smtp = self._client()
        try:
            await smtp.connect()
            if self.settings.smtp_username:
                await smtp.login(self.settings.smtp_username, self.settings.smtp_password or "")
            await smtp.noop()
            await smtp.quit()
        except self._SMTP_ERRORS as e:
            smtp.close()
            raise DeliveryError(
                "SMTP connection check failed",
                details={**self._details, "error": str(e)},
            ) from e
        
        logger.info("SMTP connection verified", **self._details)
    
    def build_message(self, text: str) -> EmailMessage:
        """
        Build the mail for one batch.
        
        Raises:
            DeliveryError: If the batch cannot be carried by a valid mail
        """
        _validate_payload(text, self.settings.max_payload_bytes)
        if not text.strip():
            raise DeliveryError("Refusing to send an empty mail")
        
        message = EmailMessage()
        try:
            message["From"] = self.settings.mail_from
            message["To"] = ", ".join(self.settings.mail_to)
            message["Subject"] = self.settings.mail_subject
            message.set_content(text)
        except ValueError as e:
            raise DeliveryError("Invalid mail", details={"error": str(e)}) from e
        return message
    
    async def deliver(self, text: str) -> None:
        message = self.build_message(text)
        
        try:
            await aiosmtplib.send(
                message,
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_username,
                password=self.settings.smtp_password,
                use_tls=self.settings.smtp_use_tls,
                start_tls=self.settings.smtp_start_tls,
                timeout=self.settings.timeout_seconds,
            )
        except self._SMTP_ERRORS as e:
            raise DeliveryError(
                "Mail delivery failed",
                details={**self._details, "error": str(e)},
            ) from e
        
        logger.debug("Batch mailed", recipients=len(self.settings.mail_to), size_chars=len(text))
    
    async def close(self) -> None:
        pass


def build_transport(settings: TransportSettings) -> Transport:
    """Create the transport selected by ``settings.kind``."""
    if settings.kind == "http":
        return HttpTransport(settings)
    if settings.kind == "file":
        return FileTransport(settings.file_path, settings.max_payload_bytes)
    if settings.kind == "mail":
        return MailTransport(settings)
    raise ConfigurationError(f"Unknown transport kind: {settings.kind}")
