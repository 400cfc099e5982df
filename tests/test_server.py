"""Tests for the whatsbot.server entry point."""
from __future__ import annotations

import signal
from unittest.mock import MagicMock, patch

import pytest

from whatsbot import server
from whatsbot.exceptions import StoreError
from whatsbot.status import ConnectionStatus, StatusResult


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in ("WHATSBOT_CONFIG", "WHATSBOT_PORT", "WHATSBOT_FORCE_RELINK"):
        monkeypatch.delenv(key, raising=False)


class TestBuildConfig:
    def test_cli_options_override_config(self, tmp_path) -> None:
        args = server.parse_args([
            "--port", "6001",
            "--host", "127.0.0.1",
            "--store", str(tmp_path / "wa.db"),
            "--gateway", "http://gw:9000",
            "--keep-session",
        ])
        config = server.build_config(args)
        assert config.get("port") == 6001
        assert config.get("host") == "127.0.0.1"
        assert config.get("store_path") == str(tmp_path / "wa.db")
        assert config.get("gateway_url") == "http://gw:9000"
        assert config.get("force_relink") is False

    def test_defaults_pass_through(self) -> None:
        config = server.build_config(server.parse_args([]))
        assert config.get("port") == 5003
        assert config.get("force_relink") is True


class TestMain:
    def test_store_failure_exits_nonzero(self) -> None:
        with patch.object(server.SessionController, "from_config", side_effect=StoreError("locked")):
            assert server.main([]) == 1

    def test_serves_and_always_shuts_down(self) -> None:
        controller = MagicMock()
        controller.__enter__.return_value = controller
        controller.initialize.return_value = StatusResult(ConnectionStatus.SIGNED_OUT)
        app = MagicMock()
        app.run.side_effect = KeyboardInterrupt

        with patch.object(server.SessionController, "from_config", return_value=controller), \
                patch.object(server, "create_app", return_value=app), \
                patch.object(server, "install_signal_handlers"):
            assert server.main(["--port", "6002"]) == 0

        app.run.assert_called_once_with(host="0.0.0.0", port=6002, debug=False, use_reloader=False)
        controller.__exit__.assert_called_once()

    def test_sigterm_becomes_system_exit(self) -> None:
        with pytest.raises(SystemExit):
            server._raise_exit(signal.SIGTERM, None)
