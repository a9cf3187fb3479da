from .base import ApplicationSummary, AtsClient
from .memory import InMemoryAtsClient

__all__ = ["ApplicationSummary", "AtsClient", "InMemoryAtsClient"]
