"""
Native-call bindings for whatsbot.

Callback-based entry points for embedding the session controller in a host
application: every call returns immediately, runs on a worker thread and
hands its response to ``callback(handle, response)`` exactly once. Response
values that are absent are reported as empty strings.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, Future
from typing import Dict, Any, Optional, Callable

from whatsbot.config import Config
from whatsbot.session import SessionController
from whatsbot.status import ConnectionStatus, StatusResult, PairingResult
from whatsbot.exceptions import BadParamError

logger = logging.getLogger(__name__)

Callback = Callable[[int, Dict[str, str]], None]


def _status_response(result: StatusResult) -> Dict[str, str]:
    return {
        "status": result.status.value,
        "error_message": result.error_message or ""
    }


def _pairing_response(result: PairingResult) -> Dict[str, str]:
    response = _status_response(result)
    response["code"] = result.code or ""
    return response


class NativeBindings:
    """
    Asynchronous, handle-tagged facade over one session controller.
    """

    def __init__(self, controller: SessionController, max_workers: int = 4):
        """
        Initialize the bindings.

        Args:
            controller: The session controller to drive.
            max_workers: Size of the worker pool running the calls.
        """
        self.controller = controller
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="whatsbot-native")
        self._closed = threading.Event()

    @classmethod
    def initialize(cls, config: Optional[Config] = None) -> 'NativeBindings':
        """
        Build the controller from configuration and restore any linked session.

        Args:
            config: Configuration instance; defaults are used when omitted.

        Returns:
            Ready-to-use bindings.
        """
        controller = SessionController.from_config(config or Config())
        result = controller.initialize()
        if result.status is ConnectionStatus.LIBRARY_ERROR:
            logger.error(f"Failed to initialize session: {result.error_message}")
        return cls(controller)

    def _dispatch(self, handle: int, callback: Callback,
                  call: Callable[[], Dict[str, str]]) -> Future:
        if self._closed.is_set():
            raise BadParamError("Bindings have been closed")

        def run() -> None:
            try:
                response = call()
            except Exception as e:
                logger.exception("Native call failed")
                response = {
                    "status": ConnectionStatus.LIBRARY_ERROR.value,
                    "error_message": str(e)
                }
            try:
                callback(handle, response)
            except Exception:
                logger.exception(f"Callback for handle {handle} raised")

        try:
            return self._executor.submit(run)
        except RuntimeError:
            # close() won the race against the check above
            raise BadParamError("Bindings have been closed")

    def info(self, handle: int, callback: Callback) -> Future:
        """
        Report the sign-in status.

        Args:
            handle: Opaque value passed back to the callback.
            callback: Receives {"status", "error_message"}.

        Returns:
            Future completing once the callback has run.
        """
        return self._dispatch(handle, callback,
                              lambda: _status_response(self.controller.check_status()))

    def start_connection(self, handle: int, callback: Callback,
                         force: Optional[bool] = None) -> Future:
        """
        Start QR pairing.

        Args:
            handle: Opaque value passed back to the callback.
            callback: Receives {"code", "status", "error_message"}.
            force: Relink even when signed in; None uses the configured default.

        Returns:
            Future completing once the callback has run.
        """
        return self._dispatch(handle, callback,
                              lambda: _pairing_response(self.controller.start_pairing(force=force)))

    def send_message(self, handle: int, phone_number: str, message: str,
                     callback: Callback) -> Future:
        """
        Send a text message.

        Args:
            handle: Opaque value passed back to the callback.
            phone_number: Recipient phone number.
            message: Message body.
            callback: Receives {"status", "error_message"}.

        Returns:
            Future completing once the callback has run.

        Raises:
            BadParamError: If phone_number or message is empty.
        """
        if not phone_number or not phone_number.strip():
            raise BadParamError("phone_number must not be empty")
        if not message:
            raise BadParamError("message must not be empty")

        phone_number = phone_number.strip()
        return self._dispatch(handle, callback,
                              lambda: _status_response(self.controller.send_message(phone_number, message)))

    def close(self) -> None:
        """Wait for in-flight calls, then shut the controller down."""
        if self._closed.is_set():
            return
        self._closed.set()
        self._executor.shutdown(wait=True)
        self.controller.shutdown()

    def __enter__(self) -> 'NativeBindings':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
