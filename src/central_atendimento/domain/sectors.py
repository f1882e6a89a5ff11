"""Catálogo fixo de setores de atendimento.

O conjunto de setores é enumerado e estático (sem configuração multi-tenant);
apenas a janela de horário de cada setor restrito vive aqui.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import time


@dataclass(frozen=True, slots=True)
class BusinessHours:
    """Janela semanal de funcionamento (limites inclusivos).

    weekdays segue `datetime.isoweekday()`: 1 = segunda ... 7 = domingo.
    """

    weekdays: frozenset[int]
    start: time
    end: time

    def describe(self) -> str:
        return f"{self.start:%H:%M}h às {self.end:%H:%M}h"


@dataclass(frozen=True, slots=True)
class Sector:
    """Setor com fila e grupo de atendentes próprios."""

    code: str
    name: str
    emoji: str = ""
    hours: BusinessHours | None = None
    menu_note: str | None = None

    @property
    def is_time_gated(self) -> bool:
        return self.hours is not None


WEEKDAYS = frozenset({1, 2, 3, 4, 5})

SALES_HOURS = BusinessHours(weekdays=WEEKDAYS, start=time(8, 0), end=time(17, 30))

SECTORS: dict[str, Sector] = {
    "1": Sector(code="1", name="Administrativo", emoji="🏢"),
    "2": Sector(
        code="2",
        name="Vendas",
        emoji="💰",
        hours=SALES_HOURS,
        menu_note=f"segunda a sexta, das {SALES_HOURS.describe()}",
    ),
    "3": Sector(
        code="3",
        name="Suporte Técnico",
        emoji="🛠️",
        menu_note="24h para furtos/roubos; demais casos em horário comercial",
    ),
    "4": Sector(code="4", name="Outros Assuntos", emoji="❓"),
}

SECTOR_CODES: tuple[str, ...] = tuple(SECTORS)


def get_sector(code: str | None) -> Sector | None:
    """Retorna o setor pelo código ("1".."4") ou None se inválido."""
    if code is None:
        return None
    return SECTORS.get(code.strip())


def sector_name(code: str | None) -> str:
    sector = get_sector(code)
    return sector.name if sector else "N/A"
