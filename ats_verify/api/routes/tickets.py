from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel, ConfigDict, Field

from ats_verify.dependencies.tickets import AuthenticatedUser, get_ticket_service
from ats_verify.tickets.errors import (
    DuplicateTicketError,
    TicketConflictError,
    TicketNotFoundError,
    TicketPermissionError,
)
from ats_verify.tickets.models import (
    APPLICATION_NUMBER_RE,
    IIN_RE,
    SUPPORT_TICKET_ID_RE,
    AttachmentFile,
    RejectionReason,
    Ticket,
    TicketAuditEntry,
    TicketDraft,
    TicketField,
)
from ats_verify.tickets.service import TicketService
from ats_verify.tickets.state import RiskLevel, TicketPriority, TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    support_ticket_id: str = Field(..., pattern=SUPPORT_TICKET_ID_RE.pattern)
    iin: str = Field(..., pattern=IIN_RE.pattern)
    full_name: str = Field(..., min_length=1, max_length=255)
    application_number: str = Field(..., pattern=APPLICATION_NUMBER_RE.pattern)
    document_number: str = Field(..., min_length=1, max_length=255)
    rejection_reason: RejectionReason
    priority: TicketPriority = TicketPriority.MEDIUM
    support_comment: str = Field(default="", max_length=4000)
    linked_ticket_id: str | None = Field(default=None, pattern=SUPPORT_TICKET_ID_RE.pattern)

    def to_draft(self) -> TicketDraft:
        return TicketDraft(
            support_ticket_id=self.support_ticket_id,
            iin=self.iin,
            full_name=self.full_name.strip(),
            application_number=self.application_number,
            document_number=self.document_number.strip(),
            rejection_reason=self.rejection_reason.value,
            priority=self.priority,
            support_comment=self.support_comment,
            linked_ticket_id=self.linked_ticket_id or None,
        )


class TicketCreatedResponse(BaseModel):
    id: UUID


class TicketStatusChangeRequest(BaseModel):
    status: TicketStatus


class TicketCommentRequest(BaseModel):
    field: Literal["support_comment", "customs_comment"]
    value: str = Field(..., max_length=4000)


class TicketAttachmentsResponse(BaseModel):
    attachments: list[str]


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    support_ticket_id: str
    status: TicketStatus
    priority: TicketPriority
    iin: str
    full_name: str
    application_number: str
    document_number: str
    rejection_reason: str
    linked_ticket_id: str | None
    risk_level: RiskLevel | None
    risk_comment: str | None
    support_comment: str
    customs_comment: str
    attachments: list[str]
    assigned_to: str | None
    created_at: datetime | None
    updated_at: datetime | None


class TicketAuditResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_id: UUID
    action: str
    actor: str
    from_status: TicketStatus | None
    to_status: TicketStatus | None
    metadata: dict[str, Any]
    created_at: datetime


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_audit_response(entry: TicketAuditEntry) -> TicketAuditResponse:
    return TicketAuditResponse.model_validate(entry)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(service: TicketServiceDep, _: AuthenticatedUser) -> list[TicketResponse]:
    tickets = await service.list_tickets()
    return [_to_response(ticket) for ticket in tickets]


@router.post("", response_model=TicketCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketCreatedResponse:
    try:
        ticket = await service.create_ticket(payload.to_draft(), actor=user)
    except TicketPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except DuplicateTicketError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return TicketCreatedResponse(id=UUID(ticket.id))


@router.post("/{ticket_id}/attachments", response_model=TicketAttachmentsResponse)
async def upload_attachments(
    ticket_id: UUID,
    service: TicketServiceDep,
    user: AuthenticatedUser,
    attachments: Annotated[list[UploadFile], File(...)],
) -> TicketAttachmentsResponse:
    # Refuse before any upload is read.
    try:
        service.ensure_may_attach(user)
    except TicketPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc

    files = [
        AttachmentFile(
            filename=upload.filename or "attachment",
            content=await upload.read(),
            content_type=upload.content_type or "application/octet-stream",
        )
        for upload in attachments
    ]
    try:
        urls = await service.add_attachments(ticket_id, files, actor=user)
    except TicketPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return TicketAttachmentsResponse(attachments=urls)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    ticket_id: UUID,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.change_status(ticket_id, new_status=payload.status, actor=user)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    except TicketConflictError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}/comment", response_model=TicketResponse)
async def update_ticket_comment(
    ticket_id: UUID,
    payload: TicketCommentRequest,
    service: TicketServiceDep,
    user: AuthenticatedUser,
) -> TicketResponse:
    try:
        ticket = await service.update_comment(
            ticket_id, field=TicketField(payload.field), value=payload.value, actor=user
        )
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except TicketPermissionError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return _to_response(ticket)


@router.get("/{ticket_id}/audit", response_model=list[TicketAuditResponse])
async def get_ticket_audit(
    ticket_id: UUID, service: TicketServiceDep, _: AuthenticatedUser
) -> list[TicketAuditResponse]:
    try:
        entries = await service.get_audit_log(ticket_id)
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [_to_audit_response(entry) for entry in entries]
