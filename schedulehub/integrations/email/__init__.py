from .base import EmailMessage, EmailTransport, SendResult
from .console import ConsoleEmailTransport, InMemoryEmailTransport

__all__ = [
    "ConsoleEmailTransport",
    "EmailMessage",
    "EmailTransport",
    "InMemoryEmailTransport",
    "SendResult",
]
