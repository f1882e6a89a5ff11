"""Política de horário comercial por setor (função pura)."""

from __future__ import annotations

from datetime import datetime, tzinfo

from central_atendimento.domain.sectors import Sector


def is_open(sector: Sector, now: datetime, tz: tzinfo | None = None) -> bool:
    """Retorna True se o setor aceita novos atendimentos em `now`.

    Setores sem janela configurada estão sempre abertos. Se `tz` for
    informado e `now` tiver fuso, a comparação é feita no horário local de
    `tz`. Consultado apenas na entrada e na transferência; nunca interrompe
    um atendimento em andamento.
    """
    hours = sector.hours
    if hours is None:
        return True

    local = now.astimezone(tz) if tz is not None and now.tzinfo is not None else now
    if local.isoweekday() not in hours.weekdays:
        return False

    current = local.time().replace(second=0, microsecond=0, tzinfo=None)
    return hours.start <= current <= hours.end
