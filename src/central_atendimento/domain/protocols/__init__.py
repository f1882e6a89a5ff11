"""Re-exports dos Protocolos de domínio para uso por Application."""

from __future__ import annotations

from central_atendimento.domain.protocols.store import (
    AttendanceStoreProtocol,
    StoreError,
)
from central_atendimento.domain.protocols.transport import (
    TransportError,
    TransportProtocol,
)

__all__ = [
    "AttendanceStoreProtocol",
    "StoreError",
    "TransportProtocol",
    "TransportError",
]
