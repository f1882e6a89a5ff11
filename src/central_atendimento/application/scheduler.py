"""Agendador do tick (tarefa asyncio no lifespan da aplicação).

O motor é síncrono; cada tick roda em thread via anyio para não bloquear o
event loop que atende as requisições HTTP.
"""

from __future__ import annotations

import asyncio
import contextlib
import uuid

import anyio

from central_atendimento.application.engine import AttendanceEngine
from central_atendimento.observability.logging import get_logger
from central_atendimento.observability.middleware import correlation_scope

logger = get_logger(__name__)


class TickScheduler:
    """Executa `engine.tick()` a cada `interval_seconds`, sem sobreposição."""

    def __init__(self, engine: AttendanceEngine, interval_seconds: float) -> None:
        self._engine = engine
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="attendance-tick")
        logger.info("tick_scheduler_started", extra={"interval_seconds": self._interval})

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("tick_scheduler_stopped")

    async def _run(self) -> None:
        while True:
            try:
                await anyio.to_thread.run_sync(self._tick_once)
            except Exception as e:
                logger.error("tick_unexpected_error", extra={"error_type": type(e).__name__})
            await asyncio.sleep(self._interval)

    def _tick_once(self) -> None:
        with correlation_scope(f"tick-{uuid.uuid4().hex[:12]}"):
            self._engine.tick()
