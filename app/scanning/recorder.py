from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .state import ScanRecordResult

logger = logging.getLogger(__name__)


class ScanLogWriter(Protocol):
    async def add_scan(
        self,
        *,
        ticket_id: str,
        batch_id: str | None,
        result: ScanRecordResult,
        actor: str,
        note: str | None = None,
    ) -> None:
        ...


class ScanRecorder:
    """Best-effort writer for scan log entries.

    Failures are logged and dropped: the ticket state is authoritative for
    entry control and must not be affected by a missing audit row.
    """

    def __init__(self, writer: ScanLogWriter) -> None:
        self._writer = writer
        self._pending: set[asyncio.Task[bool]] = set()

    async def record(
        self,
        *,
        ticket_id: str,
        batch_id: str | None,
        result: ScanRecordResult,
        actor: str,
        note: str | None = None,
    ) -> bool:
        try:
            await self._writer.add_scan(
                ticket_id=ticket_id,
                batch_id=batch_id,
                result=result,
                actor=actor,
                note=note,
            )
        except Exception:
            logger.exception("Failed to record %s scan for ticket %s", result.value, ticket_id)
            return False
        logger.debug("Recorded %s scan for ticket %s", result.value, ticket_id)
        return True

    def schedule(
        self,
        *,
        ticket_id: str,
        batch_id: str | None,
        result: ScanRecordResult,
        actor: str,
        note: str | None = None,
    ) -> asyncio.Task[bool]:
        """Record in the background without delaying the caller."""

        task = asyncio.create_task(
            self.record(ticket_id=ticket_id, batch_id=batch_id, result=result, actor=actor, note=note)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled record to finish."""

        if self._pending:
            await asyncio.gather(*list(self._pending))
