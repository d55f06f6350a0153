import asyncio
from contextlib import asynccontextmanager

import asyncpg
from fastapi import FastAPI

from app.api.errors import register_exception_handlers
from app.api.routes import ping, scanner
from app.core.config import get_settings
from app.core.logging import configure_logging, init_tracer, shutdown_tracer
from app.scanning import AggregationReporter, ScannerService, ScanRecorder, TicketRepository
from app.scanning.errors import StoreUnavailableError
from app.services.postgres import PostgresPool


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    postgres = PostgresPool(
        dsn=settings.postgres_dsn,
        min_size=settings.postgres_pool_min_size,
        max_size=settings.postgres_pool_max_size,
        command_timeout=settings.store_timeout_seconds,
    )
    app.state.postgres = postgres
    app.state.scanner_service = None

    recorder: ScanRecorder | None = None
    try:
        pool = await postgres.get_pool()
        repository = TicketRepository(pool, timeout=settings.store_timeout_seconds)
        if settings.ensure_schema_on_startup:
            await repository.ensure_schema()
        recorder = ScanRecorder(repository)
        app.state.scanner_service = ScannerService(
            repository,
            secret_key=settings.qr_secret_key or "",
            recorder=recorder,
            reporter=AggregationReporter(repository),
            history_default_limit=settings.scan_history_default_limit,
            history_max_limit=settings.scan_history_max_limit,
            details_history_limit=settings.ticket_details_history_limit,
        )
        logger.info("Scanner service ready (%s)", settings.environment)
    except ValueError as exc:
        logger.error("Scanner service disabled: %s", exc)
    except (asyncpg.PostgresError, asyncpg.InterfaceError, asyncio.TimeoutError, OSError, StoreUnavailableError) as exc:
        logger.error("Scanner service disabled, ticket store unreachable: %s", exc)

    try:
        yield
    finally:
        if recorder is not None:
            await recorder.drain()
        await postgres.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    register_exception_handlers(app)
    app.include_router(ping.router)
    app.include_router(scanner.router)
    return app


app = create_app()
