"""Declarative authorization rules for ticket transitions and field edits.

The same :class:`AuthorizationMatrix` is evaluated in two places. The ticket
service uses it as the authoritative gate. The board client uses it only to
decide which drag targets and editors to offer; a permitted-looking move can
still be refused by the service, and the client never skips the request on
the strength of its own copy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AbstractSet, Mapping

from ats_verify.dependencies.auth import Role, coerce_role

from .models import TicketField
from .state import TicketStateMachine, TicketStatus

_ALL_MOVES = TicketStateMachine.transitions()

DEFAULT_TRANSITIONS: Mapping[Role, frozenset[tuple[TicketStatus, TicketStatus]]] = {
    Role.ADMIN: _ALL_MOVES,
    Role.ATS_STAFF: _ALL_MOVES,
    Role.CUSTOMS_STAFF: frozenset(
        {
            (TicketStatus.TO_DO, TicketStatus.IN_PROGRESS),
            (TicketStatus.IN_PROGRESS, TicketStatus.COMPLETED),
            (TicketStatus.COMPLETED, TicketStatus.IN_PROGRESS),
        }
    ),
    Role.PAID_USER: frozenset(),
    Role.MARKETPLACE_STAFF: frozenset(),
}

DEFAULT_FIELD_OWNERS: Mapping[TicketField, Role] = {
    TicketField.SUPPORT_COMMENT: Role.ATS_STAFF,
    TicketField.CUSTOMS_COMMENT: Role.CUSTOMS_STAFF,
}

DEFAULT_CREATORS: frozenset[Role] = frozenset({Role.ATS_STAFF, Role.ADMIN})


@dataclass(frozen=True, slots=True)
class AuthorizationMatrix:
    """Pure predicates over (role, status move) and (role, field)."""

    transitions: Mapping[Role, AbstractSet[tuple[TicketStatus, TicketStatus]]]
    field_owners: Mapping[TicketField, Role]
    creators: AbstractSet[Role]

    @classmethod
    def default(cls) -> "AuthorizationMatrix":
        return cls(transitions=DEFAULT_TRANSITIONS, field_owners=DEFAULT_FIELD_OWNERS, creators=DEFAULT_CREATORS)

    def may_transition(self, actor_role: Role | str | None, current: TicketStatus, target: TicketStatus) -> bool:
        role = coerce_role(actor_role)
        if role is None or current == target:
            return False
        return (current, target) in self.transitions.get(role, frozenset())

    def may_edit_field(self, actor_role: Role | str | None, field: TicketField | str) -> bool:
        role = coerce_role(actor_role)
        try:
            ticket_field = TicketField(field)
        except ValueError:
            return False
        owner = self.field_owners.get(ticket_field)
        return role is not None and owner == role

    def comment_field_for(self, actor_role: Role | str | None) -> TicketField | None:
        """Return the single narrative field ``actor_role`` owns, if any."""

        role = coerce_role(actor_role)
        for ticket_field, owner in self.field_owners.items():
            if owner == role:
                return ticket_field
        return None

    def may_create(self, actor_role: Role | str | None) -> bool:
        return coerce_role(actor_role) in self.creators

    def allowed_targets(self, actor_role: Role | str | None, current: TicketStatus) -> set[TicketStatus]:
        return {target for target in TicketStatus if self.may_transition(actor_role, current, target)}


def _who(actor_role: Role | str | None) -> str:
    role = coerce_role(actor_role)
    return role.label if role is not None else "Your account"


def denial_message(actor_role: Role | str | None, target: TicketStatus) -> str:
    """Refusal for a status move, naming the actor's role and the column."""

    return f"{_who(actor_role)} may not move tickets to {target.label}."


def comment_denial_message(actor_role: Role | str | None) -> str:
    return f"{_who(actor_role)} may not add comments to tickets."


def attachment_denial_message(actor_role: Role | str | None) -> str:
    return f"{_who(actor_role)} may not attach files to tickets."


def creation_denial_message(actor_role: Role | str | None) -> str:
    return f"{_who(actor_role)} may not create tickets."


DEFAULT_MATRIX = AuthorizationMatrix.default()
