"""Varredura periódica de timeouts e tentativas de pareamento.

Disparada por nível: compara timestamps gravados, então ticks perdidos
convergem para o mesmo resultado na próxima execução.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from central_atendimento.application.audit import AuditTrail
from central_atendimento.application.matching import MatchingEngine
from central_atendimento.application.workflow import AttendanceWorkflow
from central_atendimento.domain.enums import CloseReason, EventKind, MatchResult
from central_atendimento.domain.protocols.store import AttendanceStoreProtocol
from central_atendimento.domain.sectors import SECTOR_CODES
from central_atendimento.domain.session import ACTIVE_CHAT_STAGES, Stage
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)


@dataclass(slots=True)
class TickReport:
    """Resumo de um tick (exposto em POST /admin/tick)."""

    closed_for_inactivity: list[str] = field(default_factory=list)
    ratings_expired: list[str] = field(default_factory=list)
    attendants_released: list[str] = field(default_factory=list)
    records_closed: list[str] = field(default_factory=list)
    matches: dict[str, int] = field(default_factory=dict)

    @property
    def total_matches(self) -> int:
        return sum(self.matches.values())


@dataclass(slots=True)
class TimeoutSweep:
    store: AttendanceStoreProtocol
    workflow: AttendanceWorkflow
    matcher: MatchingEngine
    audit: AuditTrail
    clock: Callable[[], datetime]
    chat_idle_timeout: timedelta
    rating_idle_timeout: timedelta
    _orphan_candidates: set[str] = field(default_factory=set, init=False)

    def run(self) -> TickReport:
        report = TickReport()
        now = self.clock()

        for session in self.store.list_sessions(ACTIVE_CHAT_STAGES):
            if now - session.last_activity_at <= self.chat_idle_timeout:
                continue
            if not self.workflow.close(session.contact_id, CloseReason.INACTIVITY):
                continue
            self.audit.record(
                EventKind.INACTIVITY_DETECTED,
                session.contact_id,
                session.sector,
                f"Encerrado por inatividade na etapa {session.stage.value}",
            )
            report.closed_for_inactivity.append(session.contact_id)

        for session in self.store.list_sessions([Stage.AWAITING_RATING]):
            if now - session.last_activity_at <= self.rating_idle_timeout:
                continue
            if self.workflow.expire_rating(session):
                report.ratings_expired.append(session.contact_id)

        self._reconcile(report, now)

        for sector in SECTOR_CODES:
            matched = 0
            if self.matcher.try_match(sector) == MatchResult.MATCHED:
                matched += 1
                # Uma tentativa extra por tick (lookahead limitado)
                if self.matcher.try_match(sector) == MatchResult.MATCHED:
                    matched += 1
            report.matches[sector] = matched

        if (
            report.closed_for_inactivity
            or report.ratings_expired
            or report.attendants_released
            or report.records_closed
            or report.total_matches
        ):
            logger.info(
                "tick_summary",
                extra={
                    "closed_for_inactivity": len(report.closed_for_inactivity),
                    "ratings_expired": len(report.ratings_expired),
                    "attendants_released": len(report.attendants_released),
                    "records_closed": len(report.records_closed),
                    "matches": report.total_matches,
                },
            )
        return report

    def _reconcile(self, report: TickReport, now: datetime) -> None:
        """Repara restos de uma falha parcial do store entre escritas.

        Atendente ocupado sem sessão só é liberado se continuar assim no
        tick seguinte: entre `claim` e a gravação da sessão ele fica
        legitimamente nesse estado por um instante.
        """
        orphans: set[str] = set()
        for attendant in self.store.list_attendants():
            if not attendant.busy:
                continue
            if self.store.find_session_by_attendant(attendant.attendant_id) is not None:
                continue
            if attendant.attendant_id not in self._orphan_candidates:
                orphans.add(attendant.attendant_id)
                continue
            if self.store.set_attendant_busy(attendant.attendant_id, False, expected=True):
                logger.warning(
                    "orphan_attendant_released",
                    extra={
                        "attendant": mask_id(attendant.attendant_id),
                        "sector": attendant.sector,
                    },
                )
                self.audit.record(
                    EventKind.STATE_REPAIRED,
                    attendant.attendant_id,
                    attendant.sector,
                    "Atendente ocupado sem atendimento foi liberado",
                )
                report.attendants_released.append(attendant.attendant_id)
        self._orphan_candidates = orphans

        for record in self.store.list_open_records():
            session = self.store.get_session(record.contact_id)
            if session is not None and session.is_active_chat and session.sector == record.sector:
                continue
            closed = self.store.close_open_record(record.contact_id, now, sector=record.sector)
            if closed is None:
                continue
            logger.warning(
                "orphan_record_closed",
                extra={"contact": mask_id(record.contact_id), "code": record.code},
            )
            self.audit.record(
                EventKind.STATE_REPAIRED,
                record.contact_id,
                record.sector,
                f"Atendimento {record.code} aberto sem conversa ativa foi encerrado",
            )
            report.records_closed.append(record.code)
