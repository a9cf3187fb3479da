"""iCIMS REST client."""

from __future__ import annotations

from typing import Any, Dict, Optional

from schedulehub.integrations.http import JsonHttpClient

from .base import ApplicationSummary


def _map_application(data: Dict[str, Any], application_id: str) -> ApplicationSummary:
    # iCIMS returns either nested ``candidate``/``requisition`` objects or flat fields.
    candidate = data.get("candidate") or {}
    requisition = data.get("requisition") or {}
    return ApplicationSummary(
        id=str(data.get("id") or application_id),
        candidate_name=candidate.get("name") or data.get("candidateName") or f"Candidate {application_id}",
        candidate_email=candidate.get("email") or data.get("candidateEmail") or "",
        requisition_id=str(requisition.get("id") or data.get("requisitionId") or ""),
        requisition_title=requisition.get("title") or data.get("requisitionTitle") or "Unknown Position",
        status=data.get("status") or "Unknown",
    )


class IcimsClient:
    def __init__(
        self,
        *,
        base_url: str,
        customer_id: str,
        api_key: str,
        timeout: float = 10.0,
    ) -> None:
        if not api_key:
            raise ValueError("ICIMS_API_KEY is required when ATS_PROVIDER=icims")
        self._customer_id = customer_id
        self._api_key = api_key
        self._http = JsonHttpClient("ats", base_url, timeout=timeout)

    def _headers(self, idempotency_key: Optional[str] = None) -> Dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Accept": "application/json",
        }
        if self._customer_id:
            headers["X-Customer-Id"] = self._customer_id
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    async def get_application(self, application_id: str) -> ApplicationSummary:
        data = await self._http.request(
            "GET", f"/api/v1/applications/{application_id}", headers=self._headers()
        )
        return _map_application(data, application_id)

    async def add_application_note(
        self, application_id: str, text: str, *, idempotency_key: Optional[str] = None
    ) -> Optional[str]:
        data = await self._http.request(
            "POST",
            f"/api/v1/applications/{application_id}/notes",
            json={"content": text, "noteType": "scheduling"},
            headers=self._headers(idempotency_key),
        )
        note_id = data.get("id")
        return str(note_id) if note_id is not None else None

    async def close(self) -> None:
        await self._http.close()


__all__ = ["IcimsClient"]
