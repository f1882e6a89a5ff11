"""Geradores de identificadores."""

from __future__ import annotations

import re

SERVICE_CODE_PREFIX = "ATD"
_SERVICE_CODE_PATTERN = re.compile(r"^ATD-(\d{6,})-(\d{4})$")


def service_code(record_id: int, year: int) -> str:
    """Gera o código legível de um atendimento.

    Regra: ATD-<id com 6 dígitos>-<ano>, ex.: ATD-000007-2025.
    """

    return f"{SERVICE_CODE_PREFIX}-{record_id:06d}-{year}"


def parse_service_code(code: str) -> tuple[int, int] | None:
    """Extrai (id, ano) de um código válido; None se fora do formato."""

    match = _SERVICE_CODE_PATTERN.match(code.strip().upper())
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


def mask_id(identifier: str | None) -> str | None:
    """Prefixo seguro para logs (nunca logar o identificador completo)."""

    if not identifier:
        return None
    return identifier[:8] + "..."


def display_id(identifier: str) -> str:
    """Remove o sufixo de JID do WhatsApp para exibição."""

    return identifier.split("@", 1)[0]
