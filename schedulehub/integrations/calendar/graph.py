"""Microsoft Graph calendar client (client-credentials flow)."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import quote

from schedulehub.domain.errors import TerminalCollaboratorError
from schedulehub.integrations.http import JsonHttpClient

from .base import (
    BusyInterval,
    CreatedEvent,
    EventPayload,
    EventUpdate,
    InterviewerAvailability,
    WorkingHours,
)

logger = logging.getLogger(__name__)

TOKEN_URL_TEMPLATE = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"
GRAPH_SCOPE = "https://graph.microsoft.com/.default"
# Refresh a little before Graph says the token expires.
TOKEN_REFRESH_MARGIN_SECONDS = 300

_DAY_NAMES = {
    "monday": 1,
    "tuesday": 2,
    "wednesday": 3,
    "thursday": 4,
    "friday": 5,
    "saturday": 6,
    "sunday": 7,
}


def _graph_datetime(value: datetime) -> Dict[str, str]:
    utc_value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return {"dateTime": utc_value.isoformat(timespec="seconds"), "timeZone": "UTC"}


def _parse_graph_datetime(raw: Dict[str, Any]) -> datetime:
    # Graph returns "2025-01-15T14:00:00.0000000" in the requested (UTC) zone.
    text = str(raw.get("dateTime", ""))[:19]
    return datetime.fromisoformat(text).replace(tzinfo=timezone.utc)


def _map_schedule(schedule: Dict[str, Any]) -> InterviewerAvailability:
    busy = tuple(
        BusyInterval(
            start=_parse_graph_datetime(item["start"]),
            end=_parse_graph_datetime(item["end"]),
            status=item.get("status", "busy"),
            is_private=bool(item.get("isPrivate", False)),
        )
        for item in schedule.get("scheduleItems") or []
        if item.get("status") != "free"
    )
    raw_hours = schedule.get("workingHours")
    if raw_hours:
        working_hours = WorkingHours(
            start=str(raw_hours.get("startTime", "09:00"))[:5],
            end=str(raw_hours.get("endTime", "17:00"))[:5],
            timezone=(raw_hours.get("timeZone") or {}).get("name") or "UTC",
            days_of_week=tuple(
                _DAY_NAMES[name.lower()]
                for name in raw_hours.get("daysOfWeek") or []
                if name.lower() in _DAY_NAMES
            ),
        )
    else:
        working_hours = WorkingHours()
    return InterviewerAvailability(email=schedule["scheduleId"], busy_intervals=busy, working_hours=working_hours)


class GraphCalendarClient:
    def __init__(
        self,
        *,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        organizer_email: str,
        base_url: str = "https://graph.microsoft.com/v1.0",
        timeout: float = 10.0,
    ) -> None:
        if not (tenant_id and client_id and client_secret):
            raise ValueError("GRAPH_TENANT_ID, GRAPH_CLIENT_ID and GRAPH_CLIENT_SECRET are required")
        self._tenant_id = tenant_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._organizer_email = organizer_email
        self._http = JsonHttpClient("calendar", base_url, timeout=timeout)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        data = await self._http.request(
            "POST",
            "/oauth2/token",
            absolute_url=TOKEN_URL_TEMPLATE.format(tenant=self._tenant_id),
            data={
                "client_id": self._client_id,
                "client_secret": self._client_secret,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            },
        )
        token = data.get("access_token")
        if not token:
            raise TerminalCollaboratorError("calendar", "token endpoint returned no access_token")
        expires_in = int(data.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 60)
        return token

    async def _headers(self) -> Dict[str, str]:
        token = await self._get_token()
        return {
            "Authorization": f"Bearer {token}",
            "Prefer": 'outlook.timezone="UTC"',
        }

    def _mailbox_path(self) -> str:
        # Events always live in the configured organizer mailbox.
        return f"/users/{quote(self._organizer_email)}"

    async def get_free_busy(
        self, emails: Sequence[str], start: datetime, end: datetime
    ) -> List[InterviewerAvailability]:
        data = await self._http.request(
            "POST",
            f"{self._mailbox_path()}/calendar/getSchedule",
            json={
                "schedules": list(emails),
                "startTime": _graph_datetime(start),
                "endTime": _graph_datetime(end),
                "availabilityViewInterval": 15,
            },
            headers=await self._headers(),
        )
        result: List[InterviewerAvailability] = []
        for schedule in data.get("value") or []:
            if schedule.get("error"):
                # Unknown calendars are left out so they never count as free.
                logger.warning(
                    "calendar.graph.schedule_error",
                    extra={"error": (schedule.get("error") or {}).get("message")},
                )
                continue
            result.append(_map_schedule(schedule))
        return result

    async def create_event(self, organizer_email: str, payload: EventPayload) -> CreatedEvent:
        body = {
            "subject": payload.subject,
            "body": {"contentType": "HTML", "content": payload.body_html},
            "start": _graph_datetime(payload.start),
            "end": _graph_datetime(payload.end),
            "attendees": [
                {
                    "emailAddress": {"address": attendee.email, "name": attendee.name},
                    "type": "required" if attendee.required else "optional",
                }
                for attendee in payload.attendees
            ],
            "isOnlineMeeting": payload.is_online_meeting,
            "allowNewTimeProposals": False,
        }
        if payload.is_online_meeting:
            body["onlineMeetingProvider"] = "teamsForBusiness"
        if payload.transaction_id:
            body["transactionId"] = payload.transaction_id
        event = await self._http.request(
            "POST",
            f"{self._mailbox_path()}/calendar/events",
            json=body,
            headers=await self._headers(),
        )
        return CreatedEvent(
            event_id=event["id"],
            ical_uid=event.get("iCalUId"),
            join_url=(event.get("onlineMeeting") or {}).get("joinUrl"),
            web_link=event.get("webLink"),
        )

    async def update_event(self, organizer_email: str, event_id: str, update: EventUpdate) -> None:
        body: Dict[str, Any] = {}
        if update.subject:
            body["subject"] = update.subject
        if update.body_html:
            body["body"] = {"contentType": "HTML", "content": update.body_html}
        if update.start:
            body["start"] = _graph_datetime(update.start)
        if update.end:
            body["end"] = _graph_datetime(update.end)
        await self._http.request(
            "PATCH",
            f"{self._mailbox_path()}/calendar/events/{quote(event_id)}",
            json=body,
            headers=await self._headers(),
        )

    async def cancel_event(self, organizer_email: str, event_id: str, comment: Optional[str] = None) -> None:
        await self._http.request(
            "POST",
            f"{self._mailbox_path()}/events/{quote(event_id)}/cancel",
            json={"comment": comment or "This meeting has been cancelled."},
            headers=await self._headers(),
        )

    async def close(self) -> None:
        await self._http.close()


__all__ = ["GraphCalendarClient"]
