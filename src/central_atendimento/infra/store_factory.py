"""Factory do store de atendimento (memory/redis) a partir de Settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.infra.store_memory import InMemoryAttendanceStore
from central_atendimento.infra.store_redis import RedisAttendanceStore
from central_atendimento.observability.logging import get_logger

if TYPE_CHECKING:
    from central_atendimento.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


def create_store(
    settings: Settings | None = None,
    redis_client: Any | None = None,
) -> AttendanceStoreProtocol:
    """Cria o store apropriado conforme settings.store_backend.

    - "memory": InMemoryAttendanceStore (dev/testes)
    - "redis": RedisAttendanceStore (produção)

    Raises:
        ValueError: backend desconhecido ou REDIS_URL ausente
    """
    if settings is None:
        from central_atendimento.config.settings import get_settings

        settings = get_settings()

    backend = settings.store_backend.lower()
    if backend == "memory":
        logger.warning("Using in-memory attendance store (dev only)")
        return InMemoryAttendanceStore()

    if backend == "redis":
        if redis_client is None:
            if not settings.redis_url:
                raise ValueError("REDIS_URL é obrigatório quando store_backend=redis")
            import redis

            redis_client = redis.from_url(settings.redis_url, decode_responses=True)
        logger.info(
            "Using Redis attendance store",
            extra={"prefix": settings.redis_key_prefix},
        )
        return RedisAttendanceStore(
            redis_client,
            prefix=settings.redis_key_prefix,
            history_max_entries=settings.history_max_entries,
        )

    raise ValueError(f"Backend de store não reconhecido: {backend}")
