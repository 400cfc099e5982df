"""Tests for the status vocabulary and result objects."""
from __future__ import annotations

from whatsbot.status import ConnectionStatus, PairingResult, StatusResult


class TestConnectionStatus:
    def test_wire_values(self) -> None:
        assert {s.value for s in ConnectionStatus} == {
            "signed_in",
            "signed_out",
            "not_connected",
            "qr_code_generated",
            "message_sent",
            "target_not_on_whatsapp",
            "whatsapp_library_error",
        }

    def test_str_is_wire_value(self) -> None:
        assert str(ConnectionStatus.LIBRARY_ERROR) == "whatsapp_library_error"


class TestResults:
    def test_empty_fields_are_omitted(self) -> None:
        assert StatusResult(ConnectionStatus.SIGNED_IN, "").to_dict() == {"status": "signed_in"}
        assert PairingResult(ConnectionStatus.SIGNED_IN, code="").to_dict() == {"status": "signed_in"}

    def test_pairing_result_dict(self) -> None:
        result = PairingResult(ConnectionStatus.QR_CODE_GENERATED, code="ABC123")
        assert result.to_dict() == {"status": "qr_code_generated", "code": "ABC123"}
        assert result.ok

    def test_library_error_is_not_ok(self) -> None:
        result = StatusResult(ConnectionStatus.LIBRARY_ERROR, "boom")
        assert not result.ok
        assert result == StatusResult(ConnectionStatus.LIBRARY_ERROR, "boom")
