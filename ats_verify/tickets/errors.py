from __future__ import annotations


class TicketServiceError(RuntimeError):
    """Base error for ticket workflow issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""


class TicketPermissionError(TicketServiceError, PermissionError):
    """Raised when the actor's role does not allow the requested change."""


class InvalidTicketTransitionError(TicketPermissionError):
    """Raised when the actor may not move a ticket into the requested status."""


class DuplicateTicketError(TicketServiceError):
    """Raised when a support ticket code is already taken."""


class TicketConflictError(TicketServiceError):
    """Raised when a ticket changed status after the caller read it."""


class TicketRemoteError(TicketServiceError):
    """Raised when the ticket service could not be reached or failed unexpectedly."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TicketCreationError(TicketServiceError):
    """Raised when the two-phase ticket creation did not complete.

    ``partial`` is true when the ticket record was persisted but its attachments
    were not; that ticket is left in place.
    """

    def __init__(self, message: str, *, ticket_id: str | None = None, partial: bool = False) -> None:
        super().__init__(message)
        self.ticket_id = ticket_id
        self.partial = partial
