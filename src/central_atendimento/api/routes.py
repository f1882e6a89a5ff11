"""Rotas HTTP: evento inbound, tick sob demanda e painel administrativo."""

from __future__ import annotations

import contextlib
from collections.abc import Iterator
from typing import Any

import anyio
from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, ValidationError

from central_atendimento.adapters.whatsapp.signature import verify_signature
from central_atendimento.api.dependencies import get_engine, get_settings, get_store
from central_atendimento.application.admin import AdminOperationError
from central_atendimento.application.engine import AttendanceEngine
from central_atendimento.config.settings import Settings
from central_atendimento.domain.models import InboundEvent
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol, StoreError
from central_atendimento.domain.session import Stage
from central_atendimento.observability.logging import get_logger
from central_atendimento.observability.middleware import get_correlation_id

logger = get_logger(__name__)

router = APIRouter()


class AttendantUpsertRequest(BaseModel):
    name: str
    sector: str


class AttendantStatusRequest(BaseModel):
    busy: bool


class SectorRequest(BaseModel):
    sector: str


@contextlib.contextmanager
def _domain_errors() -> Iterator[None]:
    """Traduz erros de domínio/store em respostas HTTP."""
    try:
        yield
    except AdminOperationError as exc:
        if exc.reason in AdminOperationError.NOT_FOUND_REASONS:
            code = status.HTTP_404_NOT_FOUND
        elif exc.reason in AdminOperationError.INVALID_INPUT_REASONS:
            code = 422
        else:
            code = status.HTTP_409_CONFLICT
        raise HTTPException(
            status_code=code, detail={"error": exc.reason, "message": exc.message}
        ) from exc
    except StoreError as exc:
        logger.error("store_unavailable", extra={"error": str(exc)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "store_unavailable", "correlation_id": get_correlation_id()},
        ) from exc


@router.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Healthcheck simples."""
    return {"status": "ok", "service": settings.service_name, "version": settings.version}


# === Eventos inbound ===


@router.post("/events/inbound")
async def inbound_event(
    request: Request,
    settings: Settings = Depends(get_settings),
    engine: AttendanceEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Recebe um evento do transporte e o processa no motor."""
    raw_body = await request.body()
    signature_result = verify_signature(raw_body, request.headers, settings.inbound_webhook_secret)
    if not signature_result.valid:
        logger.warning("inbound_signature_rejected", extra={"error": signature_result.error})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_signature")

    try:
        event = InboundEvent.model_validate_json(raw_body or b"{}")
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail="invalid_event") from exc

    with _domain_errors():
        await anyio.to_thread.run_sync(engine.handle_inbound, event)

    return {
        "ok": True,
        "correlation_id": get_correlation_id(),
        "signature_validated": not signature_result.skipped,
    }


@router.post("/admin/tick")
def run_tick(engine: AttendanceEngine = Depends(get_engine)) -> dict[str, Any]:
    """Executa um tick sob demanda (mesmo caminho do agendador)."""
    report = engine.tick()
    if report is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="tick_failed")
    return {
        "closed_for_inactivity": report.closed_for_inactivity,
        "ratings_expired": report.ratings_expired,
        "attendants_released": report.attendants_released,
        "records_closed": report.records_closed,
        "matches": report.matches,
    }


# === Consultas ===


@router.get("/admin/sessions")
def list_sessions(
    stage: Stage | None = Query(None),
    store: AttendanceStoreProtocol = Depends(get_store),
) -> list[dict[str, Any]]:
    with _domain_errors():
        sessions = store.list_sessions([stage] if stage else None)
    return [s.model_dump(mode="json") for s in sessions]


@router.get("/admin/queues")
def list_queues(engine: AttendanceEngine = Depends(get_engine)) -> dict[str, Any]:
    with _domain_errors():
        return engine.queue_snapshot()


@router.get("/admin/attendants")
def list_attendants(
    sector: str | None = Query(None),
    store: AttendanceStoreProtocol = Depends(get_store),
) -> list[dict[str, Any]]:
    with _domain_errors():
        attendants = store.list_attendants(sector)
    return [a.model_dump(mode="json") for a in attendants]


@router.get("/admin/records")
def list_records(
    contact: str | None = Query(None),
    attendant: str | None = Query(None),
    code: str | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    store: AttendanceStoreProtocol = Depends(get_store),
) -> list[dict[str, Any]]:
    with _domain_errors():
        if code:
            record = store.find_record_by_code(code.strip().upper())
            records = [record] if record else []
        else:
            records = store.list_records(contact_id=contact, attendant_id=attendant, limit=limit)
    return [r.model_dump(mode="json") for r in records]


@router.get("/admin/records/{code}")
def record_status(code: str, engine: AttendanceEngine = Depends(get_engine)) -> dict[str, Any]:
    with _domain_errors():
        return engine.record_status(code)


@router.get("/admin/evaluations")
def list_evaluations(
    limit: int = Query(200, ge=1, le=1000),
    store: AttendanceStoreProtocol = Depends(get_store),
) -> list[dict[str, Any]]:
    with _domain_errors():
        evaluations = store.list_evaluations(limit)
    return [e.model_dump(mode="json") for e in evaluations]


@router.get("/admin/events")
def list_events(
    limit: int = Query(200, ge=1, le=1000),
    store: AttendanceStoreProtocol = Depends(get_store),
) -> list[dict[str, Any]]:
    with _domain_errors():
        events = store.list_events(limit)
    return [e.model_dump(mode="json") for e in events]


@router.get("/admin/messages")
def list_messages(
    contact: str | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    engine: AttendanceEngine = Depends(get_engine),
) -> list[dict[str, Any]]:
    """Transcrição das mensagens repassadas, mais recentes primeiro."""
    with _domain_errors():
        messages = engine.messages(contact, limit)
    return [m.model_dump(mode="json") for m in messages]


@router.get("/admin/stats")
def stats(engine: AttendanceEngine = Depends(get_engine)) -> dict[str, Any]:
    with _domain_errors():
        return engine.stats()


# === Escritas administrativas ===


@router.put("/admin/attendants/{attendant_id}")
def upsert_attendant(
    attendant_id: str,
    body: AttendantUpsertRequest,
    engine: AttendanceEngine = Depends(get_engine),
) -> dict[str, Any]:
    with _domain_errors():
        attendant = engine.admin.upsert_attendant(attendant_id, body.name, body.sector)
    return attendant.model_dump(mode="json")


@router.put("/admin/attendants/{attendant_id}/status")
def set_attendant_status(
    attendant_id: str,
    body: AttendantStatusRequest,
    engine: AttendanceEngine = Depends(get_engine),
) -> dict[str, Any]:
    with _domain_errors():
        attendant = engine.admin.set_attendant_status(attendant_id, body.busy)
    return attendant.model_dump(mode="json")


@router.delete("/admin/attendants/{attendant_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_attendant(attendant_id: str, engine: AttendanceEngine = Depends(get_engine)) -> None:
    with _domain_errors():
        engine.admin.remove_attendant(attendant_id)


@router.post("/admin/sessions/{contact_id}/close")
def force_close_session(
    contact_id: str, engine: AttendanceEngine = Depends(get_engine)
) -> dict[str, Any]:
    with _domain_errors():
        engine.admin.force_close_session(contact_id)
    return {"ok": True}


@router.post("/admin/sessions/{contact_id}/transfer")
def force_transfer_session(
    contact_id: str,
    body: SectorRequest,
    engine: AttendanceEngine = Depends(get_engine),
) -> dict[str, Any]:
    with _domain_errors():
        engine.admin.force_transfer_session(contact_id, body.sector)
    return {"ok": True}


@router.post("/admin/sessions/{contact_id}/reopen")
def reopen_session(
    contact_id: str,
    body: SectorRequest,
    engine: AttendanceEngine = Depends(get_engine),
) -> dict[str, Any]:
    with _domain_errors():
        session = engine.admin.reopen_session(contact_id, body.sector)
    return session.model_dump(mode="json")


@router.delete("/admin/sessions/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
def reset_session(contact_id: str, engine: AttendanceEngine = Depends(get_engine)) -> None:
    with _domain_errors():
        engine.admin.reset_session(contact_id)
