from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from schedulehub.domain.models import ActorType, AuditLog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditActor:
    """Who performed an audited action."""

    type: str = ActorType.SYSTEM
    id: Optional[str] = None

    @classmethod
    def candidate(cls) -> "AuditActor":
        return cls(type=ActorType.CANDIDATE)

    @classmethod
    def coordinator(cls, actor_id: Optional[str]) -> "AuditActor":
        return cls(type=ActorType.COORDINATOR, id=actor_id)

    @classmethod
    def system(cls, name: Optional[str] = None) -> "AuditActor":
        return cls(type=ActorType.SYSTEM, id=name)


SYSTEM = AuditActor()


def _normalize_payload(payload: Optional[Mapping[str, Any]]) -> dict:
    if not payload:
        return {}
    try:
        return json.loads(json.dumps(payload, default=str))
    except (TypeError, ValueError) as exc:
        logger.warning("Failed to serialise audit payload: %s", exc)
        return {"_unserializable": str(payload)}


def build_audit_entry(
    action: str,
    *,
    actor: AuditActor = SYSTEM,
    request_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    payload: Optional[Mapping[str, Any]] = None,
) -> AuditLog:
    return AuditLog(
        action=action,
        actor_type=actor.type,
        actor_id=actor.id,
        scheduling_request_id=request_id,
        booking_id=booking_id,
        payload=_normalize_payload(payload),
    )


async def log_audit_action(
    uow,
    action: str,
    *,
    actor: AuditActor = SYSTEM,
    request_id: Optional[str] = None,
    booking_id: Optional[str] = None,
    payload: Optional[Mapping[str, Any]] = None,
) -> AuditLog:
    """Stage an audit entry in the caller's unit of work; the caller commits."""
    entry = build_audit_entry(
        action, actor=actor, request_id=request_id, booking_id=booking_id, payload=payload
    )
    (await uow.audit.add(entry)).unwrap()
    return entry


__all__ = ["AuditActor", "SYSTEM", "build_audit_entry", "log_audit_action"]
