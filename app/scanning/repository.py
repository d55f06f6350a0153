from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Mapping

import asyncpg

from .errors import StoreUnavailableError
from .models import (
    ScanHistoryItem,
    ScanHistoryPage,
    ScanHistoryQuery,
    ScanRecord,
    Ticket,
    TicketBatch,
)
from .state import ScanRecordResult, ScanResult, TicketStateMachine

logger = logging.getLogger(__name__)

_STORE_ERRORS: tuple[type[BaseException], ...] = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    asyncio.TimeoutError,
    OSError,
)


class TicketRepository:
    """Data access layer for tickets, batches and the scan log.

    ``consume_ticket`` and ``revert_ticket`` are the only writers of
    ``tickets.is_used``/``tickets.used_at``. Each runs as one transaction that
    locks the ticket row before classifying it, so concurrent scans of the
    same ticket are serialised by the database.
    """

    _CREATE_BATCHES_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_batches (
        id TEXT PRIMARY KEY,
        event_title TEXT NOT NULL,
        venue TEXT NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    _CREATE_TICKETS_SQL = """
    CREATE TABLE IF NOT EXISTS tickets (
        id TEXT PRIMARY KEY,
        batch_id TEXT NOT NULL REFERENCES ticket_batches(id) ON DELETE CASCADE,
        ticket_number TEXT NOT NULL UNIQUE,
        customer_name TEXT NOT NULL,
        email TEXT NULL,
        phone_number TEXT NULL,
        event_date TEXT NULL,
        ticket_price NUMERIC(10, 2) NULL,
        is_valid BOOLEAN NOT NULL DEFAULT TRUE,
        is_used BOOLEAN NOT NULL DEFAULT FALSE,
        used_at TIMESTAMPTZ NULL,
        created_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP,
        CONSTRAINT tickets_used_at_matches_is_used CHECK (is_used = (used_at IS NOT NULL))
    )
    """

    _CREATE_SCANS_SQL = """
    CREATE TABLE IF NOT EXISTS ticket_scans (
        id TEXT PRIMARY KEY,
        ticket_id TEXT NOT NULL REFERENCES tickets(id) ON DELETE CASCADE,
        batch_id TEXT NULL,
        scan_result TEXT NOT NULL,
        scanned_by TEXT NULL,
        notes TEXT NULL,
        scanned_at TIMESTAMPTZ NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """

    _CREATE_INDEXES_SQL = (
        "CREATE INDEX IF NOT EXISTS tickets_batch_id_idx ON tickets (batch_id)",
        "CREATE INDEX IF NOT EXISTS ticket_scans_ticket_id_idx ON ticket_scans (ticket_id, scanned_at DESC)",
        "CREATE INDEX IF NOT EXISTS ticket_scans_batch_id_idx ON ticket_scans (batch_id, scanned_at DESC)",
    )

    _TICKET_COLUMNS = """
        t.id, t.ticket_number, t.batch_id, t.customer_name, t.email, t.phone_number,
        t.event_date, t.ticket_price, t.is_valid, t.is_used, t.used_at,
        b.event_title, b.venue
    """

    _SELECT_TICKET_SQL = f"""
    SELECT {_TICKET_COLUMNS}
    FROM tickets t
    LEFT JOIN ticket_batches b ON b.id = t.batch_id
    WHERE t.ticket_number = $1
    """

    _LOCK_TICKET_SQL = _SELECT_TICKET_SQL + "FOR UPDATE OF t"

    _MARK_USED_SQL = """
    UPDATE tickets
    SET is_used = TRUE,
        used_at = CURRENT_TIMESTAMP
    WHERE id = $1 AND is_used = FALSE AND is_valid = TRUE
    RETURNING used_at
    """

    _MARK_UNUSED_SQL = """
    UPDATE tickets
    SET is_used = FALSE,
        used_at = NULL
    WHERE id = $1 AND is_used = TRUE
    RETURNING id
    """

    _INSERT_SCAN_SQL = """
    INSERT INTO ticket_scans (id, ticket_id, batch_id, scan_result, scanned_by, notes)
    VALUES ($1, $2, $3, $4, $5, $6)
    """

    _SELECT_TICKET_SCANS_SQL = """
    SELECT id, ticket_id, batch_id, scan_result, scanned_by, notes, scanned_at
    FROM ticket_scans
    WHERE ticket_id = $1
    ORDER BY scanned_at DESC
    LIMIT $2
    """

    _SELECT_BATCH_SQL = """
    SELECT id, event_title, venue
    FROM ticket_batches
    WHERE id = $1
    """

    _SELECT_BATCH_TICKET_STATES_SQL = """
    SELECT is_used, is_valid
    FROM tickets
    WHERE batch_id = $1
    """

    _SELECT_LAST_SCAN_SQL = """
    SELECT MAX(scanned_at)
    FROM ticket_scans
    WHERE batch_id = $1
    """

    _HISTORY_FROM_SQL = """
    FROM ticket_scans s
    LEFT JOIN tickets t ON t.id = s.ticket_id
    """

    def __init__(self, pool: asyncpg.Pool, *, timeout: float | None = None) -> None:
        self._pool = pool
        self._timeout = timeout

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        try:
            async with self._pool.acquire(timeout=self._timeout) as connection:
                yield connection
        except _STORE_ERRORS as exc:
            logger.error("Ticket store call failed: %s", exc)
            raise StoreUnavailableError(f"Ticket store unavailable: {exc}") from exc

    async def ensure_schema(self) -> None:
        async with self._connection() as connection:
            await connection.execute(self._CREATE_BATCHES_SQL)
            await connection.execute(self._CREATE_TICKETS_SQL)
            await connection.execute(self._CREATE_SCANS_SQL)
            for statement in self._CREATE_INDEXES_SQL:
                await connection.execute(statement)

    async def get_ticket(self, ticket_number: str) -> Ticket | None:
        async with self._connection() as connection:
            row = await connection.fetchrow(self._SELECT_TICKET_SQL, ticket_number, timeout=self._timeout)
        if row is None:
            return None
        return self._row_to_ticket(row)

    async def consume_ticket(
        self,
        ticket_number: str,
        *,
        actor: str,
        note: str | None = None,
        success_result: ScanRecordResult = ScanRecordResult.VALID_UNUSED,
    ) -> tuple[ScanResult, Ticket | None]:
        """Lock, classify and (when fresh) mark the ticket used in one transaction.

        A scan record reflecting the actual outcome is written in the same
        transaction whenever the ticket exists.
        """

        async with self._connection() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(self._LOCK_TICKET_SQL, ticket_number, timeout=self._timeout)
                ticket = self._row_to_ticket(row) if row is not None else None
                result = TicketStateMachine.classify(ticket)
                if ticket is None:
                    return result, None

                if result is ScanResult.VALID_UNUSED:
                    used_at = await connection.fetchval(self._MARK_USED_SQL, ticket.id, timeout=self._timeout)
                    if used_at is None:
                        raise StoreUnavailableError(f"Ticket store did not confirm consume of {ticket_number}")
                    ticket = replace(ticket, is_used=True, used_at=_ensure_datetime(used_at))
                    record_result = success_result
                else:
                    record_result = ScanRecordResult.from_scan_result(result)

                await self._insert_scan(
                    connection,
                    ticket_id=ticket.id,
                    batch_id=ticket.batch_id,
                    result=record_result,
                    actor=actor,
                    note=note,
                )
        return result, ticket

    async def revert_ticket(
        self,
        ticket_number: str,
        *,
        actor: str,
        note: str,
    ) -> tuple[bool, Ticket | None]:
        """Mark a used ticket unused again; a ticket that is not used is left untouched."""

        async with self._connection() as connection:
            async with connection.transaction():
                row = await connection.fetchrow(self._LOCK_TICKET_SQL, ticket_number, timeout=self._timeout)
                ticket = self._row_to_ticket(row) if row is not None else None
                if ticket is None or not TicketStateMachine.can_revert(ticket):
                    return False, ticket

                await connection.fetchval(self._MARK_UNUSED_SQL, ticket.id, timeout=self._timeout)
                await self._insert_scan(
                    connection,
                    ticket_id=ticket.id,
                    batch_id=ticket.batch_id,
                    result=ScanRecordResult.SCAN_REVERTED,
                    actor=actor,
                    note=note,
                )
        return True, replace(ticket, is_used=False, used_at=None)

    async def add_scan(
        self,
        *,
        ticket_id: str,
        batch_id: str | None,
        result: ScanRecordResult,
        actor: str,
        note: str | None = None,
    ) -> None:
        async with self._connection() as connection:
            await self._insert_scan(
                connection,
                ticket_id=ticket_id,
                batch_id=batch_id,
                result=result,
                actor=actor,
                note=note,
            )

    async def list_ticket_scans(self, ticket_id: str, *, limit: int) -> list[ScanRecord]:
        async with self._connection() as connection:
            rows = await connection.fetch(self._SELECT_TICKET_SCANS_SQL, ticket_id, limit, timeout=self._timeout)
        return [self._row_to_scan(row) for row in rows]

    async def get_batch(self, batch_id: str) -> TicketBatch | None:
        async with self._connection() as connection:
            row = await connection.fetchrow(self._SELECT_BATCH_SQL, batch_id, timeout=self._timeout)
        if row is None:
            return None
        return TicketBatch(
            id=str(row["id"]),
            event_title=str(row["event_title"]),
            venue=row["venue"],
        )

    async def list_batch_ticket_states(self, batch_id: str) -> list[tuple[bool, bool]]:
        """Return ``(is_used, is_valid)`` for every ticket of the batch."""

        async with self._connection() as connection:
            rows = await connection.fetch(self._SELECT_BATCH_TICKET_STATES_SQL, batch_id, timeout=self._timeout)
        return [(bool(row["is_used"]), bool(row["is_valid"])) for row in rows]

    async def get_last_scan_time(self, batch_id: str) -> datetime | None:
        async with self._connection() as connection:
            value = await connection.fetchval(self._SELECT_LAST_SCAN_SQL, batch_id, timeout=self._timeout)
        if value is None:
            return None
        return _ensure_datetime(value)

    async def query_scan_history(self, query: ScanHistoryQuery) -> ScanHistoryPage:
        conditions: list[str] = []
        args: list[Any] = []

        def add_filter(template: str, value: Any) -> None:
            args.append(value)
            conditions.append(template.format(index=len(args)))

        if query.scanned_by:
            add_filter("s.scanned_by = ${index}", query.scanned_by)
        if query.batch_id:
            add_filter("s.batch_id = ${index}", query.batch_id)
        if query.scanned_from is not None:
            add_filter("s.scanned_at >= ${index}", query.scanned_from)
        if query.scanned_to is not None:
            add_filter("s.scanned_at <= ${index}", query.scanned_to)

        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        count_sql = f"SELECT COUNT(*) {self._HISTORY_FROM_SQL} {where}"
        rows_sql = (
            "SELECT s.id, s.scan_result, s.scanned_by, s.scanned_at, s.notes, "
            "t.ticket_number, t.customer_name "
            f"{self._HISTORY_FROM_SQL} {where} "
            f"ORDER BY s.scanned_at DESC LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}"
        )

        async with self._connection() as connection:
            total = await connection.fetchval(count_sql, *args, timeout=self._timeout)
            rows = await connection.fetch(rows_sql, *args, query.limit, query.offset, timeout=self._timeout)

        items = [
            ScanHistoryItem(
                id=str(row["id"]),
                ticket_number=str(row["ticket_number"] or "Unknown"),
                customer_name=str(row["customer_name"] or "Unknown"),
                scan_result=str(row["scan_result"]),
                scanned_by=row["scanned_by"],
                scanned_at=_ensure_datetime(row["scanned_at"]),
                notes=row["notes"],
            )
            for row in rows
        ]
        return ScanHistoryPage(items=items, total=int(total or 0), limit=query.limit, offset=query.offset)

    async def _insert_scan(
        self,
        connection: Any,
        *,
        ticket_id: str,
        batch_id: str | None,
        result: ScanRecordResult,
        actor: str,
        note: str | None,
    ) -> None:
        await connection.execute(
            self._INSERT_SCAN_SQL,
            str(uuid.uuid4()),
            ticket_id,
            batch_id,
            result.value,
            actor,
            note,
            timeout=self._timeout,
        )

    @staticmethod
    def _row_to_ticket(row: Mapping[str, Any]) -> Ticket:
        used_at = row["used_at"]
        price = row["ticket_price"]
        return Ticket(
            id=str(row["id"]),
            ticket_number=str(row["ticket_number"]),
            batch_id=str(row["batch_id"]),
            customer_name=str(row["customer_name"]),
            is_valid=bool(row["is_valid"]),
            is_used=bool(row["is_used"]),
            used_at=_ensure_datetime(used_at) if used_at is not None else None,
            email=row["email"],
            phone_number=row["phone_number"],
            event_date=row["event_date"],
            ticket_price=float(price) if price is not None else None,
            event_title=row["event_title"],
            venue=row["venue"],
        )

    @staticmethod
    def _row_to_scan(row: Mapping[str, Any]) -> ScanRecord:
        return ScanRecord(
            id=str(row["id"]),
            ticket_id=str(row["ticket_id"]),
            batch_id=row["batch_id"],
            scan_result=ScanRecordResult(str(row["scan_result"])),
            scanned_by=row["scanned_by"],
            scanned_at=_ensure_datetime(row["scanned_at"]),
            notes=row["notes"],
        )


def _ensure_datetime(value: Any) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    return datetime.fromisoformat(str(value))
