"""Dependências injetadas nas rotas."""

from __future__ import annotations

from fastapi import Request

from central_atendimento.application.engine import AttendanceEngine
from central_atendimento.config.settings import Settings
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol


def get_settings(request: Request) -> Settings:
    """Retorna settings da aplicação."""

    return request.app.state.settings


def get_engine(request: Request) -> AttendanceEngine:
    """Retorna o motor de atendimento."""

    return request.app.state.engine


def get_store(request: Request) -> AttendanceStoreProtocol:
    """Retorna o store de atendimento ativo."""

    return request.app.state.store
