"""Testes do endpoint de eventos inbound (assinatura, validação e processamento)."""

from __future__ import annotations

import base64
import json

import pytest
from fastapi.testclient import TestClient

from central_atendimento.adapters.whatsapp.signature import SIGNATURE_HEADER, sign_body
from central_atendimento.api.app import create_app
from central_atendimento.config.settings import Settings
from central_atendimento.domain.protocols.store import StoreError
from central_atendimento.domain.session import Stage
from tests.helpers.fakes import ATTENDANT_A, CONTACT, add_attendant

SECRET = "segredo-de-teste"


def _text_body(sender: str, text: str, **extra) -> dict:
    return {"sender_id": sender, "content": {"type": "text", "text": text}, **extra}


@pytest.fixture()
def signed_client(store, transport, clock):
    settings = Settings(scheduler_enabled=False, log_format="text", inbound_webhook_secret=SECRET)
    app = create_app(settings=settings, store=store, transport=transport, clock=clock)
    with TestClient(app) as test_client:
        yield test_client


class TestInboundWithoutSecret:
    def test_contact_selects_sector(self, client, store, transport):
        response = client.post(
            "/events/inbound",
            json=_text_body(CONTACT, "1", display_name="Carlos"),
            headers={"X-Correlation-ID": "req-1"},
        )

        assert response.status_code == 200
        assert response.json() == {
            "ok": True,
            "correlation_id": "req-1",
            "signature_validated": False,
        }
        session = store.get_session(CONTACT)
        assert session.stage == Stage.IN_SERVICE
        assert session.display_name == "Carlos"
        assert "posição *1*" in transport.last_text(CONTACT)

    def test_media_is_relayed(self, client, store, transport):
        add_attendant(store, ATTENDANT_A, "1")
        client.post("/events/inbound", json=_text_body(CONTACT, "1"))

        body = {
            "sender_id": CONTACT,
            "content": {
                "type": "media",
                "kind": "document",
                "data": base64.b64encode(b"%PDF-1.4").decode(),
                "filename": "boleto.pdf",
            },
        }
        response = client.post("/events/inbound", json=body)

        assert response.status_code == 200
        sent = transport.media[-1]
        assert sent["target"] == ATTENDANT_A
        assert sent["data"] == b"%PDF-1.4"
        assert sent["filename"] == "boleto.pdf"

    def test_invalid_event_is_rejected(self, client):
        response = client.post("/events/inbound", json={"sender_id": CONTACT})
        assert response.status_code == 422
        assert response.json()["detail"] == "invalid_event"

    def test_store_failure_returns_503(self, client, store, monkeypatch):
        def broken(contact_id):
            raise StoreError("down")

        monkeypatch.setattr(store, "get_session", broken)

        response = client.post("/events/inbound", json=_text_body(CONTACT, "oi"))

        assert response.status_code == 503
        assert response.json()["detail"]["error"] == "store_unavailable"


class TestInboundWithSecret:
    def test_valid_signature(self, signed_client, store):
        raw = json.dumps(_text_body(CONTACT, "oi")).encode()

        response = signed_client.post(
            "/events/inbound",
            content=raw,
            headers={SIGNATURE_HEADER: sign_body(raw, SECRET), "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json()["signature_validated"] is True
        assert store.get_session(CONTACT).stage == Stage.IDLE

    def test_missing_signature_is_401(self, signed_client, store):
        response = signed_client.post("/events/inbound", json=_text_body(CONTACT, "oi"))

        assert response.status_code == 401
        assert store.get_session(CONTACT) is None

    def test_tampered_body_is_401(self, signed_client):
        raw = json.dumps(_text_body(CONTACT, "1")).encode()
        header = sign_body(raw, SECRET)
        tampered = raw.replace(b'"1"', b'"2"')

        response = signed_client.post(
            "/events/inbound",
            content=tampered,
            headers={SIGNATURE_HEADER: header, "Content-Type": "application/json"},
        )

        assert response.status_code == 401
