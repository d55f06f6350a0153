import asyncio
import logging

import asyncpg
from fastapi import APIRouter, Request

from app.api.errors import api_error
from app.core.config import get_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ping", tags=["health"])


@router.get("", summary="Public health probe")
async def ping() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/database", summary="Ticket store connectivity probe")
async def ping_database(request: Request) -> dict[str, str]:
    postgres = getattr(request.app.state, "postgres", None)
    if postgres is None:
        raise api_error(503, "store_unavailable", "Ticket store is not configured")

    timeout = get_settings().store_timeout_seconds
    try:
        await postgres.ping(timeout=timeout)
    except (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError, OSError) as exc:
        logger.warning("Database ping failed: %s", exc)
        raise api_error(503, "store_unavailable", "Ticket store is unreachable") from exc
    return {"status": "ok"}
