from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from ats_verify.dependencies.auth import User, get_current_user
from ats_verify.tickets.service import TicketService

# Any authenticated role may reach the ticket routes; what it may change is
# decided per operation by the authorization matrix inside the service.
AuthenticatedUser = Annotated[User, Depends(get_current_user)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service
