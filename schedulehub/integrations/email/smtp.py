"""SMTP transport; the blocking smtplib session runs in a worker thread."""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

from .base import EmailMessage, SendResult

logger = logging.getLogger(__name__)


class SmtpEmailTransport:
    def __init__(
        self,
        *,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        from_address: str,
        starttls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_address = from_address
        self._starttls = starttls
        self._timeout = timeout

    def _build(self, message: EmailMessage, message_id: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self._from_address
        msg["To"] = message.to
        msg["Message-ID"] = message_id
        msg.attach(MIMEText(message.text, "plain", "utf-8"))
        msg.attach(MIMEText(message.html, "html", "utf-8"))
        return msg

    def _send_sync(self, message: EmailMessage) -> str:
        message_id = make_msgid(domain=self._from_address.split("@")[-1].rstrip(">") or None)
        msg = self._build(message, message_id)
        context = ssl.create_default_context()
        if self._port == 465:
            server = smtplib.SMTP_SSL(self._host, self._port, context=context, timeout=self._timeout)
        else:
            server = smtplib.SMTP(self._host, self._port, timeout=self._timeout)
        try:
            if self._port != 465 and self._starttls:
                server.starttls(context=context)
            if self._username:
                server.login(self._username, self._password)
            server.sendmail(self._from_address, [message.to], msg.as_string())
        finally:
            server.quit()
        return message_id

    async def send(self, message: EmailMessage) -> SendResult:
        try:
            message_id = await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("email.smtp.failed", extra={"error": str(exc)})
            return SendResult(success=False, error=str(exc))
        return SendResult(success=True, message_id=message_id)


__all__ = ["SmtpEmailTransport"]
