"""Contrato de persistência do motor de atendimento.

Toda operação que lê-e-escreve Session, QueueEntry ou Attendant é exposta
como UMA operação atômica do store (compare-and-set por versão, ou `claim`
para fila + atendente). Quem perde a corrida recebe False/None e apenas
ignora ou tenta novamente com estado fresco.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import datetime

from central_atendimento.domain.models import (
    Attendant,
    Evaluation,
    MessageLog,
    QueueEntry,
    ServiceEvent,
    ServiceRecord,
    Session,
)
from central_atendimento.domain.session.states import Stage


class StoreError(Exception):
    """Falha transitória do backend de persistência."""

    pass


class AttendanceStoreProtocol(ABC):
    """Contrato mínimo síncrono para o store de atendimento."""

    # === Sessions ===

    @abstractmethod
    def get_session(self, contact_id: str) -> Session | None:
        """Carrega a sessão do contato (None se inexistente)."""
        ...

    @abstractmethod
    def list_sessions(self, stages: Iterable[Stage] | None = None) -> list[Session]:
        """Varredura simples por estágio (None = todas)."""
        ...

    @abstractmethod
    def save_session(
        self, session: Session, *, expected_version: int | None = None
    ) -> Session | None:
        """Persiste a sessão e incrementa `version`.

        Com `expected_version`, a escrita só ocorre se a versão gravada
        (0 para sessão inexistente) for igual à esperada; caso contrário
        retorna None sem alterar nada. Sem `expected_version`, é um upsert
        incondicional.
        """
        ...

    @abstractmethod
    def delete_session(self, contact_id: str) -> bool: ...

    @abstractmethod
    def find_session_by_attendant(self, attendant_id: str) -> Session | None:
        """Sessão que referencia o atendente (no máximo uma)."""
        ...

    # === Queue ===

    @abstractmethod
    def enqueue(self, contact_id: str, sector: str, now: datetime) -> QueueEntry:
        """Insere no fim da fila do setor.

        Remove qualquer entrada do contato em outro setor na mesma operação.
        Se o contato já está na fila deste setor, devolve a entrada existente.
        """
        ...

    @abstractmethod
    def list_queue(self, sector: str) -> list[QueueEntry]:
        """Fila do setor em ordem de chegada."""
        ...

    @abstractmethod
    def get_queue_entry(self, contact_id: str) -> QueueEntry | None: ...

    @abstractmethod
    def remove_queue_entry(self, contact_id: str, *, seq: int | None = None) -> bool:
        """Remove a entrada do contato (só a de `seq`, se informado)."""
        ...

    # === Attendants ===

    @abstractmethod
    def upsert_attendant(self, attendant: Attendant) -> Attendant: ...

    @abstractmethod
    def get_attendant(self, attendant_id: str) -> Attendant | None: ...

    @abstractmethod
    def list_attendants(self, sector: str | None = None) -> list[Attendant]: ...

    @abstractmethod
    def delete_attendant(self, attendant_id: str) -> bool: ...

    @abstractmethod
    def find_free_attendant(self, sector: str) -> Attendant | None:
        """Primeiro atendente livre do setor (ordem estável por id)."""
        ...

    @abstractmethod
    def set_attendant_busy(
        self, attendant_id: str, busy: bool, *, expected: bool | None = None
    ) -> bool:
        """Altera `busy`; com `expected`, só altera se o valor atual bater."""
        ...

    @abstractmethod
    def claim(self, entry: QueueEntry, attendant_id: str) -> bool:
        """Passo atômico do pareamento.

        Remove `entry` da fila E marca o atendente como ocupado, somente se
        a entrada ainda existe (mesmo `seq`) e o atendente está livre.
        Tudo ou nada.
        """
        ...

    # === Service records ===

    @abstractmethod
    def open_record(
        self,
        contact_id: str,
        sector: str,
        attendant_id: str | None,
        started_at: datetime,
    ) -> ServiceRecord:
        """Abre episódio com código derivado de id monotônico."""
        ...

    @abstractmethod
    def close_open_record(
        self, contact_id: str, ended_at: datetime, *, sector: str | None = None
    ) -> ServiceRecord | None:
        """Fecha o episódio aberto do contato (None se não havia)."""
        ...

    @abstractmethod
    def find_open_record(
        self, contact_id: str, sector: str | None = None
    ) -> ServiceRecord | None: ...

    @abstractmethod
    def list_open_records(self) -> list[ServiceRecord]:
        """Todos os episódios ainda abertos (usado na reconciliação do tick)."""
        ...

    @abstractmethod
    def find_record_by_code(self, code: str) -> ServiceRecord | None: ...

    @abstractmethod
    def list_records(
        self,
        *,
        contact_id: str | None = None,
        attendant_id: str | None = None,
        limit: int = 200,
    ) -> list[ServiceRecord]:
        """Histórico mais recente primeiro."""
        ...

    # === Evaluations / events ===

    @abstractmethod
    def add_evaluation(self, evaluation: Evaluation) -> None: ...

    @abstractmethod
    def list_evaluations(self, limit: int | None = 200) -> list[Evaluation]:
        """Mais recentes primeiro; `limit=None` devolve todas (nunca truncadas)."""
        ...

    @abstractmethod
    def record_event(self, event: ServiceEvent) -> None: ...

    @abstractmethod
    def list_events(self, limit: int = 200) -> list[ServiceEvent]: ...

    # === Message log ===

    @abstractmethod
    def add_message(self, message: MessageLog) -> None: ...

    @abstractmethod
    def list_messages(
        self, *, contact_id: str | None = None, limit: int = 200
    ) -> list[MessageLog]:
        """Transcrição mais recente primeiro (filtrável por contato)."""
        ...
