"""Coordinator endpoints for scheduling requests."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, status

from schedulehub.domain.scheduling.service import SchedulingService
from schedulehub.domain.scheduling.types import CreateRequestInput

from ..dependencies import get_actor_id, get_scheduling
from ..schemas import (
    CancelPayload,
    CancelResponse,
    CreateRequestPayload,
    CreateRequestResponse,
    RequestDetailsOut,
    ResendConfirmationResponse,
    ResendLinkResponse,
    ReschedulePayload,
    RescheduleResponse,
    SlotsResponse,
)

router = APIRouter(prefix="/api/scheduling-requests", tags=["scheduling-requests"])


@router.post("", response_model=CreateRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    payload: CreateRequestPayload,
    service: SchedulingService = Depends(get_scheduling),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> CreateRequestResponse:
    result = await service.create_request(CreateRequestInput(**payload.model_dump()), created_by=actor_id)
    return CreateRequestResponse.model_validate(result)


@router.get("/{request_id}", response_model=RequestDetailsOut)
async def get_request(request_id: str, service: SchedulingService = Depends(get_scheduling)) -> RequestDetailsOut:
    return RequestDetailsOut.model_validate(await service.get_request(request_id))


@router.get("/{request_id}/reschedule-slots", response_model=SlotsResponse)
async def reschedule_slots(request_id: str, service: SchedulingService = Depends(get_scheduling)) -> SlotsResponse:
    return SlotsResponse.model_validate(await service.get_reschedule_slots(request_id))


@router.post("/{request_id}/reschedule", response_model=RescheduleResponse)
async def reschedule(
    request_id: str,
    payload: ReschedulePayload,
    service: SchedulingService = Depends(get_scheduling),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> RescheduleResponse:
    result = await service.reschedule(
        request_id,
        payload.new_start,
        reason=payload.reason,
        candidate_timezone=payload.candidate_timezone,
        actor_id=actor_id,
    )
    return RescheduleResponse.model_validate(result)


@router.post("/{request_id}/cancel", response_model=CancelResponse)
async def cancel(
    request_id: str,
    payload: CancelPayload,
    service: SchedulingService = Depends(get_scheduling),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> CancelResponse:
    result = await service.cancel(
        request_id,
        payload.reason,
        notify_participants=payload.notify_participants,
        actor_id=actor_id,
    )
    return CancelResponse.model_validate(result)


@router.post("/{request_id}/resend-link", response_model=ResendLinkResponse)
async def resend_link(
    request_id: str,
    service: SchedulingService = Depends(get_scheduling),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> ResendLinkResponse:
    return ResendLinkResponse.model_validate(await service.resend_link(request_id, actor_id=actor_id))


@router.post("/{request_id}/resend-confirmation", response_model=ResendConfirmationResponse)
async def resend_confirmation(
    request_id: str,
    service: SchedulingService = Depends(get_scheduling),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> ResendConfirmationResponse:
    job_id = await service.resend_confirmation(request_id, actor_id=actor_id)
    return ResendConfirmationResponse(notification_id=job_id)
