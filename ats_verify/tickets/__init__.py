"""Ticket workflow domain: state, authorization matrix and store."""

from .errors import (
    DuplicateTicketError,
    InvalidTicketTransitionError,
    TicketConflictError,
    TicketCreationError,
    TicketNotFoundError,
    TicketPermissionError,
    TicketRemoteError,
    TicketServiceError,
)
from .models import AttachmentFile, RejectionReason, Ticket, TicketAuditEntry, TicketDraft, TicketField
from .permissions import AuthorizationMatrix
from .state import RiskLevel, TicketPriority, TicketStateMachine, TicketStatus
from .store import TicketStore

__all__ = [
    "AttachmentFile",
    "AuthorizationMatrix",
    "DuplicateTicketError",
    "InvalidTicketTransitionError",
    "RejectionReason",
    "RiskLevel",
    "Ticket",
    "TicketAuditEntry",
    "TicketConflictError",
    "TicketCreationError",
    "TicketDraft",
    "TicketField",
    "TicketNotFoundError",
    "TicketPermissionError",
    "TicketPriority",
    "TicketRemoteError",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStore",
]
