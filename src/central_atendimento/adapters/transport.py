"""Transportes disponíveis e factory a partir de Settings."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from central_atendimento.domain.enums import MediaKind
from central_atendimento.domain.protocols.transport import TransportProtocol
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

if TYPE_CHECKING:
    from central_atendimento.config.settings import Settings

logger: logging.Logger = get_logger(__name__)


class LoggingTransport(TransportProtocol):
    """Transporte de desenvolvimento: apenas registra os envios em log."""

    def send_text(self, target: str, text: str) -> None:
        logger.info(
            "outbound_text",
            extra={"target": mask_id(target), "chars": len(text)},
        )

    def send_media(
        self,
        target: str,
        kind: MediaKind,
        data: bytes,
        caption: str | None = None,
        *,
        mime_type: str | None = None,
        filename: str | None = None,
    ) -> None:
        logger.info(
            "outbound_media",
            extra={"target": mask_id(target), "kind": kind.value, "bytes": len(data)},
        )


def create_transport(settings: Settings) -> TransportProtocol:
    """Factory do transporte conforme settings.transport_backend."""
    backend = settings.transport_backend.lower()
    if backend == "log":
        logger.warning("Using logging transport (dev only)")
        return LoggingTransport()

    if backend == "whatsapp":
        from central_atendimento.adapters.whatsapp.transport import WhatsAppCloudTransport

        logger.info("Using WhatsApp Cloud transport")
        return WhatsAppCloudTransport.from_settings(settings)

    raise ValueError(f"Transporte não reconhecido: {backend}")
