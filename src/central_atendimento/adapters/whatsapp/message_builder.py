"""Construtor de payloads da WhatsApp Cloud API (texto e mídia)."""

from __future__ import annotations

from typing import Any

from central_atendimento.domain.enums import MediaKind

MAX_TEXT_CHARS = 4096
MAX_CAPTION_CHARS = 1024

# Stickers não aceitam legenda na Cloud API
_CAPTION_KINDS = {MediaKind.IMAGE, MediaKind.VIDEO, MediaKind.DOCUMENT}


def build_text_payload(to: str, text: str) -> dict[str, Any]:
    """Constrói payload de texto simples.

    Args:
        to: Número WhatsApp (com country code, ex: 5511999999999)
        text: Conteúdo de texto (máx 4096 chars, truncado se maior)
    """
    text = text.strip() if text else ""
    if len(text) > MAX_TEXT_CHARS:
        text = text[: MAX_TEXT_CHARS - 3] + "..."

    if not text:
        raise ValueError("Text content cannot be empty")

    return {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "text",
        "text": {"body": text},
    }


def build_media_payload(
    to: str,
    kind: MediaKind,
    media_id: str,
    caption: str | None = None,
    filename: str | None = None,
) -> dict[str, Any]:
    """Constrói payload de mídia já enviada (referência por media_id)."""
    if not media_id:
        raise ValueError("media_id cannot be empty")

    media: dict[str, Any] = {"id": media_id}
    if caption and kind in _CAPTION_KINDS:
        media["caption"] = caption[:MAX_CAPTION_CHARS]
    if filename and kind == MediaKind.DOCUMENT:
        media["filename"] = filename

    return {
        "messaging_product": "whatsapp",
        "to": to,
        "type": kind.value,
        kind.value: media,
    }
