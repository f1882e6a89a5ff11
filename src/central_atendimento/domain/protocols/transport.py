"""Contrato do transporte de mensagens (injetado no motor)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from central_atendimento.domain.enums import MediaKind


class TransportError(Exception):
    """Falha ao entregar mensagem pelo transporte."""

    pass


class TransportProtocol(ABC):
    """Envio de texto e mídia para contatos e atendentes."""

    @abstractmethod
    def send_text(self, target: str, text: str) -> None: ...

    @abstractmethod
    def send_media(
        self,
        target: str,
        kind: MediaKind,
        data: bytes,
        caption: str | None = None,
        *,
        mime_type: str | None = None,
        filename: str | None = None,
    ) -> None: ...
