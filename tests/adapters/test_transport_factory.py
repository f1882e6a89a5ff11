"""Testes do LoggingTransport e da factory de transporte."""

from __future__ import annotations

import pytest

from central_atendimento.adapters.transport import LoggingTransport, create_transport
from central_atendimento.adapters.whatsapp.transport import WhatsAppCloudTransport
from central_atendimento.config.settings import Settings
from central_atendimento.domain.enums import MediaKind


class TestLoggingTransport:
    def test_logs_masked_target_without_content(self, caplog):
        with caplog.at_level("INFO"):
            LoggingTransport().send_text("5511990000001@s.whatsapp.net", "segredo do cliente")

        record = next(r for r in caplog.records if r.getMessage() == "outbound_text")
        assert record.target == "55119900..."
        assert record.chars == len("segredo do cliente")
        assert "segredo" not in caplog.text

    def test_logs_media(self, caplog):
        with caplog.at_level("INFO"):
            LoggingTransport().send_media("5511990000001", MediaKind.VIDEO, b"1234")

        record = next(r for r in caplog.records if r.getMessage() == "outbound_media")
        assert record.kind == "video"
        assert record.bytes == 4


class TestCreateTransport:
    def test_log_backend(self):
        assert isinstance(create_transport(Settings(transport_backend="log")), LoggingTransport)

    def test_whatsapp_backend(self):
        settings = Settings(
            transport_backend="whatsapp",
            whatsapp_access_token="t",
            whatsapp_phone_number_id="42",
        )
        transport = create_transport(settings)
        assert isinstance(transport, WhatsAppCloudTransport)
        transport.close()

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            create_transport(Settings(transport_backend="sms"))
