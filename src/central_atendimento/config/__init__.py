"""Configurações centralizadas do central_atendimento.

Uso típico:
    from central_atendimento.config import get_settings
"""

from central_atendimento.config.settings import (
    GRAPH_API_BASE_URL,
    GRAPH_API_VERSION,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "GRAPH_API_VERSION",
    "GRAPH_API_BASE_URL",
]
