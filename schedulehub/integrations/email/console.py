"""Transports that never leave the process."""

from __future__ import annotations

import itertools
import logging
from typing import List

from .base import EmailMessage, SendResult

logger = logging.getLogger(__name__)


class ConsoleEmailTransport:
    """Logs a one-line summary; message bodies are not logged."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)

    async def send(self, message: EmailMessage) -> SendResult:
        message_id = f"console-{next(self._ids)}"
        logger.info(
            "email.console.sent",
            extra={"message_id": message_id, "subject": message.subject, "text_length": len(message.text)},
        )
        return SendResult(success=True, message_id=message_id)


class InMemoryEmailTransport:
    """Collects messages for assertions; ``fail_next`` makes the next sends fail."""

    def __init__(self) -> None:
        self.sent: List[EmailMessage] = []
        self._failures = 0
        self._ids = itertools.count(1)

    def fail_next(self, times: int = 1) -> None:
        self._failures += times

    async def send(self, message: EmailMessage) -> SendResult:
        if self._failures:
            self._failures -= 1
            return SendResult(success=False, error="injected send failure")
        self.sent.append(message)
        return SendResult(success=True, message_id=f"mem-{next(self._ids)}")


__all__ = ["ConsoleEmailTransport", "InMemoryEmailTransport"]
