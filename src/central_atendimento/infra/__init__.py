"""Camada de infraestrutura — implementações do store de atendimento.

Exporta:
- InMemoryAttendanceStore: dev/testes (estado perdido a cada restart)
- RedisAttendanceStore: produção (compare-and-set via WATCH/MULTI)
- create_store: factory a partir de Settings

Uso típico:
    from central_atendimento.infra import create_store

Infraestrutura não decide regra de negócio; apenas garante atomicidade
de cada operação do contrato.
"""

from central_atendimento.infra.store_factory import create_store
from central_atendimento.infra.store_memory import InMemoryAttendanceStore
from central_atendimento.infra.store_redis import RedisAttendanceStore

__all__ = [
    "InMemoryAttendanceStore",
    "RedisAttendanceStore",
    "create_store",
]
