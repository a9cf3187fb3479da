"""Outbound email contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class SendResult:
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


@runtime_checkable
class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> SendResult:
        ...


__all__ = ["EmailMessage", "EmailTransport", "SendResult"]
