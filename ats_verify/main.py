from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.staticfiles import StaticFiles

from ats_verify.api.routes import ping, tickets
from ats_verify.core.config import get_settings
from ats_verify.core.logging import configure_logging, init_tracer, shutdown_tracer
from ats_verify.services.attachments import AttachmentStorage
from ats_verify.services.postgres import PostgresPool
from ats_verify.tickets.repository import TicketRepository
from ats_verify.tickets.service import TicketService

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):  # pragma: no cover - executed by framework
    settings = get_settings()
    logger = configure_logging(settings)
    tracer_provider = init_tracer(settings)

    postgres = PostgresPool(dsn=settings.postgres_dsn)
    app.state.postgres = postgres
    app.state.ticket_service = None
    try:
        repository = TicketRepository(await postgres.get_pool())
        service = TicketService(
            repository,
            AttachmentStorage(Path(settings.attachments_dir), settings.attachments_base_url),
        )
        await service.ensure_schema()
        app.state.ticket_service = service
    except Exception:
        logger.exception("Ticket service initialisation failed; ticket routes will answer 503")
    try:
        yield
    finally:
        await postgres.close()
        shutdown_tracer(tracer_provider)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    app.include_router(ping.router, prefix=API_PREFIX)
    app.include_router(tickets.router, prefix=API_PREFIX)
    if settings.attachments_base_url.startswith("/"):
        app.mount(
            settings.attachments_base_url,
            StaticFiles(directory=settings.attachments_dir, check_dir=False),
            name="attachments",
        )
    return app


app = create_app()
