from __future__ import annotations

from typing import Optional

from fastapi import Header, Request

from schedulehub.container import ServiceContainer
from schedulehub.domain.scheduling.service import SchedulingService


def get_container(request: Request) -> ServiceContainer:
    container: Optional[ServiceContainer] = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Service container is not initialised")
    return container


def get_scheduling(request: Request) -> SchedulingService:
    return get_container(request).scheduling


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """Coordinator identity forwarded by the upstream gateway."""
    if not x_actor_id:
        return None
    return x_actor_id.strip() or None
