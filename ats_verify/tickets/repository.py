from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence
from uuid import UUID, uuid4

import asyncpg

from .errors import DuplicateTicketError, TicketConflictError
from .models import Ticket, TicketAuditEntry, TicketDraft, TicketField
from .state import RiskLevel, TicketPriority, TicketStatus

_TICKET_COLUMNS = """
    t.id, t.support_ticket_id, t.status, t.priority, t.iin, t.full_name, t.application_number,
    t.document_number, t.rejection_reason, t.linked_ticket_id, t.support_comment, t.customs_comment,
    t.attachments, t.assigned_to, t.created_at, t.updated_at,
    r.risk_level AS risk_level, r.reason AS risk_comment
"""

_TICKET_FROM = """
    FROM tickets t
    LEFT JOIN risk_profiles r ON r.iin_bin = t.iin
"""


class TicketRepository:
    """Data access layer for verification tickets and their audit trail."""

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id UUID PRIMARY KEY,
        support_ticket_id TEXT NOT NULL UNIQUE,
        status TEXT NOT NULL,
        priority TEXT NOT NULL,
        iin TEXT NOT NULL,
        full_name TEXT NOT NULL,
        application_number TEXT NOT NULL,
        document_number TEXT NOT NULL,
        rejection_reason TEXT NOT NULL,
        linked_ticket_id TEXT NULL,
        support_comment TEXT NOT NULL DEFAULT '',
        customs_comment TEXT NOT NULL DEFAULT '',
        attachments TEXT[] NOT NULL DEFAULT '{}',
        assigned_to TEXT NULL,
        created_by TEXT NOT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    # Owned by the risk engine; created here only so the annotation join resolves.
    _CREATE_RISK_PROFILES_SQL = """
    CREATE TABLE IF NOT EXISTS risk_profiles (
        id UUID PRIMARY KEY,
        iin_bin TEXT NOT NULL UNIQUE,
        risk_level TEXT NOT NULL,
        flagged_by TEXT NOT NULL,
        reason TEXT NOT NULL DEFAULT '',
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    _CREATE_AUDIT_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_audit_logs (
        id UUID PRIMARY KEY,
        ticket_id UUID NOT NULL REFERENCES tickets(id),
        action TEXT NOT NULL,
        actor TEXT NOT NULL,
        from_status TEXT NULL,
        to_status TEXT NULL,
        metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    _INSERT_TICKET_SQL = """
    INSERT INTO tickets (
        id, support_ticket_id, status, priority, iin, full_name, application_number,
        document_number, rejection_reason, linked_ticket_id, support_comment, created_by
    )
    VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
    """

    _SELECT_TICKET_SQL = f"SELECT {_TICKET_COLUMNS} {_TICKET_FROM} WHERE t.id = $1"

    _LIST_TICKETS_SQL = f"SELECT {_TICKET_COLUMNS} {_TICKET_FROM} ORDER BY t.created_at DESC"

    _UPDATE_STATUS_SQL = """
    UPDATE tickets
    SET status = $2, updated_at = $3
    WHERE id = $1 AND status = $4
    RETURNING id
    """

    _SELECT_STATUS_SQL = "SELECT status FROM tickets WHERE id = $1"

    # Column names cannot be bound as parameters, so each writable comment field
    # gets its own statement.
    _UPDATE_COMMENT_SQL: Mapping[TicketField, str] = {
        TicketField.SUPPORT_COMMENT: """
        UPDATE tickets SET support_comment = $2, updated_at = $3 WHERE id = $1 RETURNING id
        """,
        TicketField.CUSTOMS_COMMENT: """
        UPDATE tickets SET customs_comment = $2, updated_at = $3 WHERE id = $1 RETURNING id
        """,
    }

    _APPEND_ATTACHMENTS_SQL = """
    UPDATE tickets
    SET attachments = attachments || $2::text[], updated_at = $3
    WHERE id = $1
    RETURNING id
    """

    _INSERT_AUDIT_SQL = """
    INSERT INTO ticket_audit_logs (id, ticket_id, action, actor, from_status, to_status, metadata, created_at)
    VALUES ($1, $2, $3, $4, $5, $6, $7::jsonb, $8)
    """

    _SELECT_AUDIT_SQL = """
    SELECT id, ticket_id, action, actor, from_status, to_status, metadata, created_at
    FROM ticket_audit_logs
    WHERE ticket_id = $1
    ORDER BY created_at ASC
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def ensure_schema(self) -> None:
        async with self._pool.acquire() as connection:
            await connection.execute(self._CREATE_TICKETS_SQL)
            await connection.execute(self._CREATE_RISK_PROFILES_SQL)
            await connection.execute(self._CREATE_AUDIT_SQL)

    async def create_ticket(
        self,
        *,
        ticket_id: UUID,
        draft: TicketDraft,
        status: TicketStatus,
        created_by: str,
    ) -> Ticket:
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                try:
                    await connection.execute(
                        self._INSERT_TICKET_SQL,
                        ticket_id,
                        draft.support_ticket_id,
                        status.value,
                        TicketPriority(draft.priority).value,
                        draft.iin,
                        draft.full_name,
                        draft.application_number,
                        draft.document_number,
                        draft.rejection_reason,
                        draft.linked_ticket_id or None,
                        draft.support_comment or "",
                        created_by,
                    )
                except asyncpg.UniqueViolationError as exc:
                    raise DuplicateTicketError(
                        f"Ticket {draft.support_ticket_id} already exists"
                    ) from exc
                await self._insert_audit(
                    connection,
                    ticket_id=ticket_id,
                    action="created",
                    actor=created_by,
                    from_status=None,
                    to_status=status,
                    metadata={"support_ticket_id": draft.support_ticket_id},
                )
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        if row is None:
            raise RuntimeError("Failed to insert ticket")
        return self._row_to_ticket(row)

    async def get_ticket(self, ticket_id: UUID) -> Ticket | None:
        async with self._pool.acquire() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def list_tickets(self) -> list[Ticket]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._LIST_TICKETS_SQL)
        return [self._row_to_ticket(row) for row in rows]

    async def change_status(
        self,
        *,
        ticket_id: UUID,
        from_status: TicketStatus,
        to_status: TicketStatus,
        actor: str,
    ) -> Ticket | None:
        now = datetime.now(timezone.utc)
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                updated = await connection.fetchrow(
                    self._UPDATE_STATUS_SQL, ticket_id, to_status.value, now, from_status.value
                )
                if updated is None:
                    current = await connection.fetchval(self._SELECT_STATUS_SQL, ticket_id)
                    if current is None:
                        return None
                    raise TicketConflictError(
                        f"Ticket {ticket_id} is {current}, not {from_status.value}; reload and try again"
                    )
                await self._insert_audit(
                    connection,
                    ticket_id=ticket_id,
                    action="status_changed",
                    actor=actor,
                    from_status=from_status,
                    to_status=to_status,
                    metadata={},
                )
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        return self._row_to_ticket(row) if row is not None else None

    async def update_comment(
        self,
        *,
        ticket_id: UUID,
        field: TicketField,
        value: str,
        actor: str,
    ) -> Ticket | None:
        statement = self._UPDATE_COMMENT_SQL[TicketField(field)]
        now = datetime.now(timezone.utc)
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                updated = await connection.fetchrow(statement, ticket_id, value, now)
                if updated is None:
                    return None
                await self._insert_audit(
                    connection,
                    ticket_id=ticket_id,
                    action="comment_updated",
                    actor=actor,
                    from_status=None,
                    to_status=None,
                    metadata={"field": TicketField(field).value},
                )
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        return self._row_to_ticket(row) if row is not None else None

    async def append_attachments(self, *, ticket_id: UUID, urls: Sequence[str], actor: str) -> Ticket | None:
        now = datetime.now(timezone.utc)
        async with self._pool.acquire() as connection:
            async with connection.transaction():
                updated = await connection.fetchrow(self._APPEND_ATTACHMENTS_SQL, ticket_id, list(urls), now)
                if updated is None:
                    return None
                await self._insert_audit(
                    connection,
                    ticket_id=ticket_id,
                    action="attachments_added",
                    actor=actor,
                    from_status=None,
                    to_status=None,
                    metadata={"count": len(urls)},
                )
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_id)
        return self._row_to_ticket(row) if row is not None else None

    async def get_audit_log(self, ticket_id: UUID) -> list[TicketAuditEntry]:
        async with self._pool.acquire() as connection:
            rows = await connection.fetch(self._SELECT_AUDIT_SQL, ticket_id)
        return [self._row_to_audit(row) for row in rows]

    async def _insert_audit(
        self,
        connection: Any,
        *,
        ticket_id: UUID,
        action: str,
        actor: str,
        from_status: TicketStatus | None,
        to_status: TicketStatus | None,
        metadata: dict[str, Any],
    ) -> None:
        await connection.execute(
            self._INSERT_AUDIT_SQL,
            uuid4(),
            ticket_id,
            action,
            actor,
            None if from_status is None else from_status.value,
            None if to_status is None else to_status.value,
            json.dumps(metadata),
            datetime.now(timezone.utc),
        )

    @staticmethod
    def _row_to_ticket(row: Mapping[str, Any]) -> Ticket:
        risk_level = row["risk_level"]
        return Ticket(
            id=str(row["id"]),
            support_ticket_id=str(row["support_ticket_id"]),
            status=TicketStatus(str(row["status"])),
            priority=TicketPriority(str(row["priority"])),
            iin=str(row["iin"]),
            full_name=str(row["full_name"]),
            application_number=str(row["application_number"]),
            document_number=str(row["document_number"]),
            rejection_reason=str(row["rejection_reason"]),
            linked_ticket_id=row["linked_ticket_id"],
            risk_level=RiskLevel(str(risk_level)) if risk_level else None,
            risk_comment=row["risk_comment"] or None,
            support_comment=str(row["support_comment"] or ""),
            customs_comment=str(row["customs_comment"] or ""),
            attachments=tuple(row["attachments"] or ()),
            assigned_to=row["assigned_to"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    @staticmethod
    def _row_to_audit(row: Mapping[str, Any]) -> TicketAuditEntry:
        metadata = row["metadata"] or {}
        if isinstance(metadata, str):
            metadata = json.loads(metadata)
        from_status = row["from_status"]
        to_status = row["to_status"]
        return TicketAuditEntry(
            id=str(row["id"]),
            ticket_id=str(row["ticket_id"]),
            action=str(row["action"]),
            actor=str(row["actor"]),
            from_status=TicketStatus(str(from_status)) if from_status else None,
            to_status=TicketStatus(str(to_status)) if to_status else None,
            created_at=row["created_at"],
            metadata=dict(metadata),
        )
