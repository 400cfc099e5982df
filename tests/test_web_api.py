"""Tests for the Flask adapter in whatsbot.web.

The controller is a MagicMock so only status-to-HTTP mapping and request
validation are exercised here.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from whatsbot.constants import MSG_MALFORMED_SEND, MSG_NOT_SIGNED_IN
from whatsbot.exceptions import BadParamError
from whatsbot.session import SessionController
from whatsbot.status import ConnectionStatus, PairingResult, StatusResult
from whatsbot.version import __version__
from whatsbot.web import create_app


@pytest.fixture()
def controller() -> MagicMock:
    mock = MagicMock(spec=SessionController)
    mock.snapshot.return_value = {
        "device_identity_present": False,
        "client_connected": False,
        "jid": None,
    }
    return mock


@pytest.fixture()
def http(controller: MagicMock):
    app = create_app(controller)
    app.config["TESTING"] = True
    return app.test_client()


# ---------------------------------------------------------------------------
# GET /info
# ---------------------------------------------------------------------------


class TestInfo:
    @pytest.mark.parametrize("status", [
        ConnectionStatus.SIGNED_IN,
        ConnectionStatus.SIGNED_OUT,
        ConnectionStatus.NOT_CONNECTED,
    ])
    def test_plain_statuses_are_200(self, http, controller, status) -> None:
        controller.check_status.return_value = StatusResult(status)
        response = http.get("/info")
        assert response.status_code == 200
        assert response.get_json() == {"status": status.value}

    def test_library_error_is_500_with_message(self, http, controller) -> None:
        controller.check_status.return_value = StatusResult(ConnectionStatus.LIBRARY_ERROR, "boom")
        response = http.get("/info")
        assert response.status_code == 500
        assert response.get_json() == {"status": "whatsapp_library_error", "error_message": "boom"}


# ---------------------------------------------------------------------------
# POST /send_message
# ---------------------------------------------------------------------------


class TestSendMessage:
    @pytest.mark.parametrize("body", [
        None,
        {},
        {"phone_number": "+15551234567"},
        {"message": "hi"},
        {"phone_number": "", "message": "hi"},
        {"phone_number": "+15551234567", "message": ""},
        {"phone_number": 15551234567, "message": "hi"},
        ["+15551234567", "hi"],
    ])
    def test_malformed_body_is_400_and_never_reaches_controller(self, http, controller, body) -> None:
        response = http.post("/send_message", json=body)
        assert response.status_code == 400
        assert response.get_json() == {"error_message": MSG_MALFORMED_SEND}
        controller.send_message.assert_not_called()

    def test_non_json_body_is_400(self, http, controller) -> None:
        response = http.post("/send_message", data="phone=1", content_type="text/plain")
        assert response.status_code == 400
        controller.send_message.assert_not_called()

    @pytest.mark.parametrize("status, code", [
        (ConnectionStatus.MESSAGE_SENT, 201),
        (ConnectionStatus.SIGNED_OUT, 400),
        (ConnectionStatus.NOT_CONNECTED, 400),
        (ConnectionStatus.TARGET_NOT_ON_WHATSAPP, 409),
        (ConnectionStatus.LIBRARY_ERROR, 500),
    ])
    def test_status_mapping(self, http, controller, status, code) -> None:
        message = None if status is ConnectionStatus.MESSAGE_SENT else "detail"
        controller.send_message.return_value = StatusResult(status, message)

        response = http.post("/send_message", json={"phone_number": " +15551234567 ", "message": "hi"})

        assert response.status_code == code
        assert response.get_json()["status"] == status.value
        controller.send_message.assert_called_once_with("+15551234567", "hi")

    def test_not_signed_in_carries_message(self, http, controller) -> None:
        controller.send_message.return_value = StatusResult(ConnectionStatus.NOT_CONNECTED, MSG_NOT_SIGNED_IN)
        response = http.post("/send_message", json={"phone_number": "+15551234567", "message": "hi"})
        assert response.get_json() == {"status": "not_connected", "error_message": MSG_NOT_SIGNED_IN}

    def test_success_has_no_error_message(self, http, controller) -> None:
        controller.send_message.return_value = StatusResult(ConnectionStatus.MESSAGE_SENT)
        response = http.post("/send_message", json={"phone_number": "+15551234567", "message": "hi"})
        assert response.get_json() == {"status": "message_sent"}


# ---------------------------------------------------------------------------
# POST /start_connection
# ---------------------------------------------------------------------------


class TestStartConnection:
    def test_qr_code_is_202(self, http, controller) -> None:
        controller.start_pairing.return_value = PairingResult(ConnectionStatus.QR_CODE_GENERATED, code="ABC123")
        response = http.post("/start_connection")
        assert response.status_code == 202
        assert response.get_json() == {"status": "qr_code_generated", "code": "ABC123"}
        controller.start_pairing.assert_called_once_with(force=None)

    def test_already_signed_in_is_200_without_code(self, http, controller) -> None:
        controller.start_pairing.return_value = PairingResult(ConnectionStatus.SIGNED_IN)
        response = http.post("/start_connection", json={"force": False})
        assert response.status_code == 200
        assert response.get_json() == {"status": "signed_in"}
        controller.start_pairing.assert_called_once_with(force=False)

    def test_library_error_is_500(self, http, controller) -> None:
        controller.start_pairing.return_value = PairingResult(
            ConnectionStatus.LIBRARY_ERROR, error_message="Unable to obtain pairing code"
        )
        response = http.post("/start_connection", json={})
        assert response.status_code == 500
        assert response.get_json()["error_message"] == "Unable to obtain pairing code"

    def test_non_boolean_force_is_400(self, http, controller) -> None:
        response = http.post("/start_connection", json={"force": "yes"})
        assert response.status_code == 400
        controller.start_pairing.assert_not_called()


# ---------------------------------------------------------------------------
# App-level routes and error handlers
# ---------------------------------------------------------------------------


class TestApp:
    def test_health(self, http) -> None:
        body = http.get("/health").get_json()
        assert body["status"] == "ok"
        assert body["version"] == __version__
        assert body["session"]["client_connected"] is False

    def test_unknown_route_is_json_404(self, http) -> None:
        response = http.get("/nope")
        assert response.status_code == 404
        assert response.get_json()["error"] == "NotFound"

    def test_wrong_method_is_json_405(self, http) -> None:
        response = http.get("/send_message")
        assert response.status_code == 405
        assert response.get_json()["error"] == "MethodNotAllowed"

    def test_whatsbot_exception_is_400(self, http, controller) -> None:
        controller.check_status.side_effect = BadParamError("bad")
        response = http.get("/info")
        assert response.status_code == 400
        assert response.get_json() == {"error": "BadParamError", "error_message": "bad"}

    def test_controller_is_exposed_on_app(self, controller) -> None:
        assert create_app(controller).extensions["whatsbot"] is controller

    def test_app_carries_no_session_secret(self, controller) -> None:
        assert create_app(controller).secret_key is None
