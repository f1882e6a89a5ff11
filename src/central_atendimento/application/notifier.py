"""Envio fire-and-forget: falha de transporte é logada, nunca propagada."""

from __future__ import annotations

from dataclasses import dataclass

from central_atendimento.domain.models import Content, MediaContent, TextContent
from central_atendimento.domain.protocols.transport import TransportError, TransportProtocol
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import mask_id

logger = get_logger(__name__)


@dataclass(slots=True)
class Notifier:
    """Fachada sobre o transporte injetado.

    Nenhuma falha de envio desfaz estado já gravado nem é reenviada aqui.
    """

    transport: TransportProtocol

    def send(self, target: str, text: str) -> bool:
        try:
            self.transport.send_text(target, text)
        except TransportError as e:
            logger.warning(
                "outbound_send_failed",
                extra={"target": mask_id(target), "error": str(e)},
            )
            return False
        except Exception as e:
            logger.error(
                "outbound_send_error",
                extra={"target": mask_id(target), "error_type": type(e).__name__},
            )
            return False
        return True

    def forward(self, target: str, content: Content) -> bool:
        """Repassa o conteúdo recebido sem alteração (texto ou mídia)."""
        if isinstance(content, TextContent):
            return self.send(target, content.text)

        assert isinstance(content, MediaContent)
        try:
            self.transport.send_media(
                target,
                content.kind,
                content.data,
                content.caption,
                mime_type=content.mime_type,
                filename=content.filename,
            )
        except TransportError as e:
            logger.warning(
                "outbound_media_failed",
                extra={"target": mask_id(target), "kind": content.kind.value, "error": str(e)},
            )
            return False
        except Exception as e:
            logger.error(
                "outbound_media_error",
                extra={"target": mask_id(target), "error_type": type(e).__name__},
            )
            return False
        return True
