from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass
class BatchResult:
    """Counters for one pass over a job queue."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def record_failure(self, error: str) -> None:
        self.failed += 1
        self.errors.append(error)


__all__ = ["BatchResult"]
