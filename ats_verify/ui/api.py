from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

import httpx

from ats_verify.tickets.models import AttachmentFile, Ticket, TicketDraft, TicketField, tickets_from_payload
from ats_verify.tickets.state import TicketStatus

logger = logging.getLogger(__name__)


class APIError(RuntimeError):
    """Error raised for failed ticket service calls."""

    def __init__(self, message: str, *, status_code: int | None = None, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response = response

    @property
    def is_forbidden(self) -> bool:
        return self.status_code == 403

    def __str__(self) -> str:
        prefix = f"[{self.status_code}] " if self.status_code is not None else ""
        return f"{prefix}{super().__str__()}"


def _canonical_ticket(data: Any) -> Ticket | None:
    """Return the ticket echoed back by a write, or ``None`` when the body carries none."""

    if not isinstance(data, Mapping) or "id" not in data:
        return None
    try:
        return Ticket.from_payload(data)
    except (KeyError, TypeError, ValueError) as exc:
        raise APIError(f"Ticket service returned an unreadable ticket: {exc}") from exc


def _extract_error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or "Unknown server error"

    if isinstance(data, Mapping):
        for key in ("detail", "message", "error"):
            detail = data.get(key)
            if isinstance(detail, str):
                return detail
            if isinstance(detail, Mapping) and "msg" in detail:
                return str(detail["msg"])
        detail = data.get("detail")
        if isinstance(detail, list) and detail and isinstance(detail[0], Mapping):
            return str(detail[0].get("msg", "Validation error"))
    return "The request could not be completed"


@dataclass(slots=True)
class TicketAPIClient:
    """Async client for the ticket service REST boundary.

    Every call opens a short-lived ``httpx.AsyncClient``, so concurrent calls never
    share connection state. Requests are not retried; a failure surfaces once as
    :class:`APIError`.
    """

    base_url: str
    token: str | None = None
    timeout: float = 10.0
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = self._build_url(path)
        headers: dict[str, str] = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        headers.update(kwargs.pop("headers", {}))

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise APIError(f"Ticket service request failed: {exc}") from exc

        if response.status_code >= 400:
            message = _extract_error_message(response)
            raise APIError(message, status_code=response.status_code, response=response)

        if response.status_code == 204 or not response.content:
            return None

        content_type = response.headers.get("Content-Type", "")
        if "application/json" in content_type:
            try:
                return response.json()
            except ValueError as exc:
                raise APIError(
                    f"Ticket service returned malformed JSON: {exc}", status_code=response.status_code, response=response
                ) from exc
        return response.text

    def _build_url(self, path: str) -> str:
        normalized = path if path.startswith("/") else f"/{path}"
        return f"{self.base_url.rstrip('/')}{normalized}"

    async def list_tickets(self) -> list[Ticket]:
        data = await self._request("GET", "/tickets")
        if data is not None and not isinstance(data, list):
            raise APIError("Ticket service returned an unexpected ticket list")
        try:
            return tickets_from_payload(data or [])
        except (KeyError, TypeError, ValueError) as exc:
            raise APIError(f"Ticket service returned an unreadable ticket: {exc}") from exc

    async def create_ticket(self, draft: TicketDraft) -> str:
        data = await self._request("POST", "/tickets", json=draft.to_payload())
        if not isinstance(data, Mapping) or not data.get("id"):
            raise APIError("Ticket service did not return the new ticket id")
        return str(data["id"])

    async def upload_attachments(self, ticket_id: str, files: Sequence[AttachmentFile]) -> list[str]:
        multipart = [("attachments", (item.filename, item.content, item.content_type)) for item in files]
        data = await self._request("POST", f"/tickets/{ticket_id}/attachments", files=multipart)
        if isinstance(data, Mapping):
            return [str(url) for url in data.get("attachments", [])]
        return []

    async def change_ticket_status(self, ticket_id: str, *, status: TicketStatus) -> Ticket | None:
        data = await self._request("PATCH", f"/tickets/{ticket_id}/status", json={"status": status.value})
        return _canonical_ticket(data)

    async def update_comment(self, ticket_id: str, *, field: TicketField, value: str) -> Ticket | None:
        payload = {"field": TicketField(field).value, "value": value}
        data = await self._request("PATCH", f"/tickets/{ticket_id}/comment", json=payload)
        return _canonical_ticket(data)

    async def get_audit_log(self, ticket_id: str) -> list[Mapping[str, Any]]:
        data = await self._request("GET", f"/tickets/{ticket_id}/audit")
        return list(data or [])

    async def ping(self) -> Mapping[str, Any]:
        return await self._request("GET", "/ping")
