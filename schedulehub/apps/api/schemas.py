from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CreateRequestPayload(BaseModel):
    candidate_name: str = Field(min_length=1, max_length=200)
    candidate_email: str = Field(min_length=3, max_length=320)
    interviewer_emails: List[str] = Field(min_length=1)
    duration_minutes: int = Field(gt=0, le=480)
    window_start: datetime
    window_end: datetime
    candidate_timezone: str = "UTC"
    application_id: Optional[str] = None
    requisition_id: Optional[str] = None
    requisition_title: Optional[str] = None
    interview_type: str = "video"
    organizer_email: Optional[str] = None

    @field_validator("candidate_email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("candidate_email must be an email address")
        return value


class CreateRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    public_link: str
    expires_at: datetime


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    booking_id: str
    request_id: str
    status: str
    start: datetime
    end: datetime
    calendar_event_id: Optional[str] = None
    join_url: Optional[str] = None


class RequestSummaryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    candidate_name: str
    requisition_title: Optional[str] = None
    interview_type: str
    duration_minutes: int
    status: str


class SlotOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    slot_id: str
    start: datetime
    end: datetime
    display_start: str
    display_end: str
    available_interviewers: List[str]
    score: float = 0.0
    rationale: str = ""


class SlotsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request: RequestSummaryOut
    slots: List[SlotOut]
    timezone: str


class RequestDetailsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    status: str
    candidate_name: str
    candidate_email: str
    application_id: Optional[str] = None
    requisition_title: Optional[str] = None
    interview_type: str
    duration_minutes: int
    interviewer_emails: List[str]
    organizer_email: str
    window_start: datetime
    window_end: datetime
    candidate_timezone: str
    expires_at: datetime
    needs_attention: bool
    needs_attention_reason: Optional[str] = None
    created_at: datetime
    booking: Optional[BookingOut] = None


class BookPayload(BaseModel):
    slot_id: str = Field(min_length=1)


class BookResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    success: bool
    booking: BookingOut
    message: str


class ReschedulePayload(BaseModel):
    new_start: datetime
    reason: Optional[str] = Field(default=None, max_length=2000)
    candidate_timezone: Optional[str] = None


class RescheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    booking_id: str
    start: datetime
    end: datetime
    calendar_event_id: Optional[str] = None
    join_url: Optional[str] = None


class CancelPayload(BaseModel):
    reason: str = Field(min_length=1, max_length=2000)
    notify_participants: bool = True


class CancelResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    status: str
    cancelled_at: datetime
    calendar_event_id: Optional[str] = None


class ResendLinkResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: str
    public_link: str
    expires_at: datetime
    notification_id: Optional[str] = None


class ResendConfirmationResponse(BaseModel):
    notification_id: str


class ErrorResponse(BaseModel):
    error: str
    message: str
