from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Sequence

from .state import RiskLevel, TicketPriority, TicketStateMachine, TicketStatus

SUPPORT_TICKET_ID_RE = re.compile(r"^[A-Z0-9]{3}-[A-Z0-9]{3}-[A-Z0-9]{4}$")
IIN_RE = re.compile(r"^\d{12}$")
APPLICATION_NUMBER_RE = re.compile(r"^\d{1,13}$")


class TicketField(str, Enum):
    """Fields addressable through the field-edit authorization check."""

    SUPPORT_COMMENT = "support_comment"
    CUSTOMS_COMMENT = "customs_comment"
    STATUS = "status"
    PRIORITY = "priority"
    ATTACHMENTS = "attachments"
    ASSIGNED_TO = "assigned_to"


COMMENT_FIELDS: frozenset[TicketField] = frozenset({TicketField.SUPPORT_COMMENT, TicketField.CUSTOMS_COMMENT})


class RejectionReason(str, Enum):
    """Reasons a device-import confirmation was rejected."""

    DOCUMENT_NOT_FOUND = "Документ не найден"
    DOCUMENT_NOT_RELATED = (
        "Документ не связан с подтверждением ввоза устройства на территорию Казахстана"
    )
    IIN_MISMATCH = "ИИН/БИН не соответствует"
    IMEI_NOT_FOUND = "IMEI/устройства не найдены в документе"
    DEVICE_COUNT_MISMATCH = "Количество устройств не соответствует"


@dataclass(frozen=True, slots=True)
class Ticket:
    """Customs-verification dispute as mirrored from the ticket service."""

    id: str
    support_ticket_id: str
    status: TicketStatus
    priority: TicketPriority
    iin: str
    full_name: str
    application_number: str
    document_number: str
    rejection_reason: str
    linked_ticket_id: str | None = None
    risk_level: RiskLevel | None = None
    risk_comment: str | None = None
    support_comment: str = ""
    customs_comment: str = ""
    attachments: tuple[str, ...] = ()
    assigned_to: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Ticket":
        """Build a ticket from a JSON payload, rejecting statuses outside the board."""

        risk = payload.get("risk_level")
        return cls(
            id=str(payload["id"]),
            support_ticket_id=str(payload["support_ticket_id"]),
            status=TicketStateMachine.parse(payload["status"]),
            priority=TicketPriority(str(payload.get("priority") or TicketPriority.MEDIUM.value)),
            iin=str(payload.get("iin") or ""),
            full_name=str(payload.get("full_name") or ""),
            application_number=str(payload.get("application_number") or ""),
            document_number=str(payload.get("document_number") or ""),
            rejection_reason=str(payload.get("rejection_reason") or ""),
            linked_ticket_id=payload.get("linked_ticket_id") or None,
            risk_level=RiskLevel(str(risk)) if risk else None,
            risk_comment=payload.get("risk_comment") or None,
            support_comment=str(payload.get("support_comment") or ""),
            customs_comment=str(payload.get("customs_comment") or ""),
            attachments=tuple(str(url) for url in payload.get("attachments") or ()),
            assigned_to=payload.get("assigned_to") or None,
            created_at=_parse_datetime(payload.get("created_at")),
            updated_at=_parse_datetime(payload.get("updated_at")),
        )

    def identity(self) -> tuple[str, str]:
        return self.id, self.support_ticket_id


@dataclass(frozen=True, slots=True)
class TicketDraft:
    """Scalar fields submitted when a new ticket is created."""

    support_ticket_id: str
    iin: str
    full_name: str
    application_number: str
    document_number: str
    rejection_reason: str
    priority: TicketPriority = TicketPriority.MEDIUM
    support_comment: str = ""
    linked_ticket_id: str | None = None

    def validate(self) -> None:
        """Raise ``ValueError`` listing every malformed field."""

        problems = validate_ticket_fields(
            support_ticket_id=self.support_ticket_id,
            iin=self.iin,
            full_name=self.full_name,
            application_number=self.application_number,
            document_number=self.document_number,
            rejection_reason=self.rejection_reason,
            linked_ticket_id=self.linked_ticket_id,
        )
        if problems:
            raise ValueError("; ".join(problems))

    def to_payload(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["priority"] = TicketPriority(self.priority).value
        if not self.linked_ticket_id:
            payload.pop("linked_ticket_id")
        return payload


@dataclass(slots=True)
class TicketAuditEntry:
    """History entry describing a state or content change on a ticket."""

    id: str
    ticket_id: str
    action: str
    actor: str
    from_status: TicketStatus | None
    to_status: TicketStatus | None
    created_at: datetime
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AttachmentFile:
    """File staged for upload."""

    filename: str
    content: bytes
    content_type: str = "application/octet-stream"


def validate_ticket_fields(
    *,
    support_ticket_id: str,
    iin: str,
    full_name: str,
    application_number: str,
    document_number: str,
    rejection_reason: str,
    linked_ticket_id: str | None = None,
) -> list[str]:
    problems: list[str] = []
    if not SUPPORT_TICKET_ID_RE.match(support_ticket_id or ""):
        problems.append("support_ticket_id must look like XXX-XXX-XXXX")
    if linked_ticket_id and not SUPPORT_TICKET_ID_RE.match(linked_ticket_id):
        problems.append("linked_ticket_id must look like XXX-XXX-XXXX")
    if not IIN_RE.match(iin or ""):
        problems.append("iin must be exactly 12 digits")
    if not (full_name or "").strip():
        problems.append("full_name is required")
    if not APPLICATION_NUMBER_RE.match(application_number or ""):
        problems.append("application_number must be 1-13 digits")
    if not (document_number or "").strip():
        problems.append("document_number is required")
    if rejection_reason not in {reason.value for reason in RejectionReason}:
        problems.append("rejection_reason is not one of the supported reasons")
    return problems


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def tickets_from_payload(items: Sequence[Mapping[str, Any]]) -> list[Ticket]:
    return [Ticket.from_payload(item) for item in items]
