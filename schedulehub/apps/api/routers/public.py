"""Candidate self-scheduling endpoints, addressed by the public token."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from schedulehub.domain.scheduling.service import SchedulingService

from ..dependencies import get_scheduling
from ..schemas import BookPayload, BookResponse, SlotsResponse

router = APIRouter(prefix="/api/public/book", tags=["public"])


@router.get("/{token}", response_model=SlotsResponse)
async def available_slots(token: str, service: SchedulingService = Depends(get_scheduling)) -> SlotsResponse:
    return SlotsResponse.model_validate(await service.get_available_slots(token))


@router.post("/{token}", response_model=BookResponse)
async def book(
    token: str, payload: BookPayload, service: SchedulingService = Depends(get_scheduling)
) -> BookResponse:
    return BookResponse.model_validate(await service.book_slot(token, payload.slot_id))
