"""Transporte WhatsApp Cloud API (envio de texto e mídia).

Mídia é enviada em dois passos: upload em /{phone_number_id}/media e
envio da mensagem referenciando o media_id retornado.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from central_atendimento.adapters.whatsapp.message_builder import (
    build_media_payload,
    build_text_payload,
)
from central_atendimento.domain.enums import MediaKind
from central_atendimento.domain.protocols.transport import TransportError, TransportProtocol
from central_atendimento.observability.logging import get_logger
from central_atendimento.utils.ids import display_id, mask_id

if TYPE_CHECKING:
    from central_atendimento.config.settings import Settings

logger: logging.Logger = get_logger(__name__)

_DEFAULT_MIME = {
    MediaKind.IMAGE: "image/jpeg",
    MediaKind.VIDEO: "video/mp4",
    MediaKind.AUDIO: "audio/ogg",
    MediaKind.DOCUMENT: "application/octet-stream",
    MediaKind.STICKER: "image/webp",
}


@dataclass(frozen=True)
class WhatsAppApiError:
    """Erro retornado pela API Meta/WhatsApp."""

    error_type: str
    error_code: int
    error_message: str


def _parse_meta_error(response_data: dict[str, Any]) -> WhatsAppApiError | None:
    error_obj = response_data.get("error")
    if not error_obj or not isinstance(error_obj, dict):
        return None
    return WhatsAppApiError(
        error_type=error_obj.get("type", "unknown"),
        error_code=error_obj.get("code", 0),
        error_message=error_obj.get("message", "Erro desconhecido"),
    )


class WhatsAppCloudTransport(TransportProtocol):
    """Envia mensagens pela WhatsApp Cloud API usando httpx (síncrono)."""

    def __init__(
        self,
        access_token: str,
        phone_number_id: str,
        api_endpoint: str,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._phone_number_id = phone_number_id
        self._base = f"{api_endpoint}/{phone_number_id}"
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._headers = {"Authorization": f"Bearer {access_token}"}

    @classmethod
    def from_settings(cls, settings: Settings) -> WhatsAppCloudTransport:
        if not settings.whatsapp_access_token or not settings.whatsapp_phone_number_id:
            raise ValueError("WhatsApp transport requer ACCESS_TOKEN e PHONE_NUMBER_ID")
        return cls(
            access_token=settings.whatsapp_access_token,
            phone_number_id=settings.whatsapp_phone_number_id,
            api_endpoint=settings.whatsapp_api_endpoint,
            timeout_seconds=settings.whatsapp_request_timeout_seconds,
        )

    def close(self) -> None:
        self._client.close()

    def send_text(self, target: str, text: str) -> None:
        payload = build_text_payload(display_id(target), text)
        self._post_json("messages", payload, target)

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
        media_id = self._upload(kind, data, mime_type or _DEFAULT_MIME[kind], filename)
        payload = build_media_payload(
            display_id(target), kind, media_id, caption=caption, filename=filename
        )
        self._post_json("messages", payload, target)

    def _upload(
        self, kind: MediaKind, data: bytes, mime_type: str, filename: str | None
    ) -> str:
        files = {"file": (filename or f"{kind.value}.bin", data, mime_type)}
        form = {"messaging_product": "whatsapp", "type": mime_type}
        response_data = self._request("media", files=files, data=form)
        media_id = response_data.get("id")
        if not media_id:
            raise TransportError("Upload de mídia sem id na resposta")
        return str(media_id)

    def _post_json(self, path: str, payload: dict[str, Any], target: str) -> None:
        self._request(path, json=payload)
        logger.debug(
            "Envio WhatsApp bem-sucedido",
            extra={"target": mask_id(target), "type": payload.get("type")},
        )

    def _request(self, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base}/{path}"
        try:
            response = self._client.post(url, headers=self._headers, **kwargs)
        except httpx.HTTPError as e:
            logger.warning(
                "Falha de rede no envio WhatsApp",
                extra={"path": path, "error": type(e).__name__},
            )
            raise TransportError(f"Falha de rede: {type(e).__name__}") from e

        try:
            response_data = response.json()
        except ValueError as e:
            raise TransportError(f"Response JSON inválido ({response.status_code})") from e

        meta_error = _parse_meta_error(response_data)
        if meta_error or response.status_code >= 400:
            logger.warning(
                "Erro da API Meta/WhatsApp",
                extra={
                    "path": path,
                    "status_code": response.status_code,
                    "error_type": meta_error.error_type if meta_error else None,
                    "error_code": meta_error.error_code if meta_error else None,
                },
            )
            message = meta_error.error_message if meta_error else "HTTP error"
            raise TransportError(f"WhatsApp API {response.status_code}: {message}")
        return response_data
