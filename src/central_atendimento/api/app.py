"""Fábrica da aplicação FastAPI."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from central_atendimento.adapters.transport import create_transport
from central_atendimento.api.routes import router
from central_atendimento.application.engine import AttendanceEngine, Clock
from central_atendimento.application.scheduler import TickScheduler
from central_atendimento.config.settings import Settings, get_settings
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.protocols.transport import TransportProtocol
from central_atendimento.infra.store_factory import create_store
from central_atendimento.observability.logging import configure_logging, get_logger
from central_atendimento.observability.middleware import CorrelationIdMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    scheduler: TickScheduler | None = None
    settings: Settings = app.state.settings
    if settings.scheduler_enabled:
        scheduler = TickScheduler(app.state.engine, settings.tick_interval_seconds)
        scheduler.start()
    app.state.scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()


def create_app(
    settings: Settings | None = None,
    store: AttendanceStoreProtocol | None = None,
    transport: TransportProtocol | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    """Cria a aplicação FastAPI.

    store/transport/clock podem ser injetados (testes); caso contrário são
    criados a partir de settings.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.service_name, settings.log_format)

    validation_errors = settings.validate_all()
    if validation_errors:
        error_msg = "; ".join(validation_errors)
        raise ValueError(f"Configuração inválida: {error_msg}")

    app = FastAPI(title=settings.service_name, version=settings.version, lifespan=_lifespan)
    app.add_middleware(CorrelationIdMiddleware)
    app.include_router(router)

    store = store or create_store(settings)
    transport = transport or create_transport(settings)

    app.state.settings = settings
    app.state.store = store
    app.state.transport = transport
    app.state.engine = AttendanceEngine(store, transport, settings=settings, clock=clock)
    app.state.scheduler = None

    logger.info(
        "app_created",
        extra={
            "environment": settings.environment,
            "store_backend": settings.store_backend,
            "transport_backend": settings.transport_backend,
        },
    )
    return app


app = create_app()
