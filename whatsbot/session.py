"""
Session controller for whatsbot.

Owns the lifecycle of one WhatsApp session: which device identity is in use,
which client is active, and how client and store outcomes map onto the
ConnectionStatus vocabulary reported to callers.
"""

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import Dict, Any, Optional, Callable, Tuple

from whatsbot.config import Config
from whatsbot.store import Device, DeviceStore
from whatsbot.client import WhatsAppClient, PairingChannel
from whatsbot.status import ConnectionStatus, StatusResult, PairingResult
from whatsbot.constants import (
    PAIRING_TIMEOUT,
    PAIRING_EVENT_CODE,
    PAIRING_EVENT_ERROR,
    MSG_NOT_SIGNED_IN,
    MSG_TARGET_NOT_ON_WHATSAPP,
    MSG_NO_PAIRING_CODE,
    MSG_PAIRING_TIMEOUT,
    MSG_PAIRING_ABORTED,
    MSG_SESSION_CLOSED
)
from whatsbot.exceptions import WhatsBotException, StoreError

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Device], WhatsAppClient]


def _await_code(channel: PairingChannel) -> Tuple[Optional[str], Optional[str]]:
    """
    Consume pairing events until the first code.

    Returns:
        (code, None) on success, (None, last error) when the stream ends first.
    """
    last_error = None
    for event in channel:
        if event.event == PAIRING_EVENT_CODE and event.code:
            return event.code, None
        if event.event == PAIRING_EVENT_ERROR:
            last_error = event.error
        logger.debug(f"Skipping pairing event {event.event}")
    return None, last_error


class SessionController:
    """
    Serializes every session operation and owns the active client.

    While a pairing waits for its code the session lock is free and no client
    is active, so concurrent status and send calls see SIGNED_OUT.

    Operations never raise for library failures; they return a result whose
    status is LIBRARY_ERROR and whose error_message carries the cause.
    """

    def __init__(self, store: DeviceStore, client_factory: ClientFactory,
                 pairing_timeout: float = PAIRING_TIMEOUT,
                 force_relink: bool = True):
        """
        Initialize the controller.

        Args:
            store: Device store; owned by the controller from here on.
            client_factory: Builds a protocol client for a device.
            pairing_timeout: Seconds to wait for the first QR code.
            force_relink: Default for start_pairing(force=...).
        """
        self.store = store
        self.client_factory = client_factory
        self.pairing_timeout = pairing_timeout
        self.force_relink = force_relink
        self.active_client: Optional[WhatsAppClient] = None
        self._lock = threading.RLock()
        self._pairing_lock = threading.Lock()
        self._pending: Optional[Tuple[WhatsAppClient, PairingChannel]] = None
        self._pairing_worker = ThreadPoolExecutor(max_workers=1, thread_name_prefix="whatsbot-pairing")
        self._closed = False

    @classmethod
    def from_config(cls, config: Config) -> 'SessionController':
        """
        Build a controller, its store and its client factory from configuration.

        Args:
            config: Configuration instance.

        Returns:
            A controller that has not been initialized yet.

        Raises:
            StoreError: If the device store cannot be opened.
        """
        store = DeviceStore(config.get("store_path"), platform=config.get("platform", ""))

        def client_factory(device: Device) -> WhatsAppClient:
            return WhatsAppClient(
                device,
                config.get("gateway_url"),
                request_timeout=config.get("request_timeout"),
                connect_timeout=config.get("connect_timeout")
            )

        return cls(
            store,
            client_factory,
            pairing_timeout=config.get("pairing_timeout"),
            force_relink=config.get("force_relink", True)
        )

    def initialize(self) -> StatusResult:
        """
        Reconnect a previously linked device, if the store has one.

        Returns:
            SIGNED_IN when reconnected, SIGNED_OUT when nothing is linked,
            NOT_CONNECTED when connecting fails, LIBRARY_ERROR on store failure.
        """
        with self._pairing_lock, self._lock:
            try:
                device = self.store.get_first_device()
            except StoreError as e:
                logger.error(f"Failed to load device: {str(e)}")
                return StatusResult(ConnectionStatus.LIBRARY_ERROR, str(e))

            if not device.linked:
                logger.info("No linked device, waiting for pairing")
                return StatusResult(ConnectionStatus.SIGNED_OUT)

            client = self.client_factory(device)
            try:
                client.connect()
            except WhatsBotException as e:
                logger.error(f"Failed to connect {device.jid}: {str(e)}")
                return StatusResult(ConnectionStatus.NOT_CONNECTED, str(e))

            self.active_client = client
            logger.info(f"Restored session for {device.jid}")
            return StatusResult(ConnectionStatus.SIGNED_IN)

    def check_status(self) -> StatusResult:
        """
        Report the current sign-in state without changing it.

        Returns:
            SIGNED_OUT, NOT_CONNECTED or SIGNED_IN; LIBRARY_ERROR if the client lookup fails.
        """
        with self._lock:
            client = self.active_client
            if client is None:
                return StatusResult(ConnectionStatus.SIGNED_OUT)

            try:
                if not client.is_connected():
                    return StatusResult(ConnectionStatus.NOT_CONNECTED)
                if client.device.jid is None:
                    return StatusResult(ConnectionStatus.SIGNED_OUT)
            except WhatsBotException as e:
                return StatusResult(ConnectionStatus.LIBRARY_ERROR, str(e))

            return StatusResult(ConnectionStatus.SIGNED_IN)

    def send_message(self, phone_number: str, text: str) -> StatusResult:
        """
        Send a text message to a phone number.

        Args:
            phone_number: Recipient phone number.
            text: Message body.

        Returns:
            MESSAGE_SENT on success, the current status when not signed in,
            TARGET_NOT_ON_WHATSAPP or LIBRARY_ERROR otherwise.
        """
        with self._lock:
            current = self.check_status()
            if current.status is not ConnectionStatus.SIGNED_IN:
                return StatusResult(current.status, MSG_NOT_SIGNED_IN)

            client = self.active_client
            try:
                responses = client.is_on_whatsapp([phone_number])
            except WhatsBotException as e:
                logger.error(f"Reachability check for {phone_number} failed: {str(e)}")
                return StatusResult(ConnectionStatus.LIBRARY_ERROR, str(e))

            recipients = [r.jid for r in responses if r.is_in and r.jid]
            if not recipients:
                logger.info(f"{phone_number} is not on WhatsApp")
                return StatusResult(ConnectionStatus.TARGET_NOT_ON_WHATSAPP, MSG_TARGET_NOT_ON_WHATSAPP)

            for jid in recipients:
                try:
                    client.send_message(jid, text)
                except WhatsBotException as e:
                    logger.error(f"Sending to {jid} failed: {str(e)}")
                    return StatusResult(ConnectionStatus.LIBRARY_ERROR, str(e))

            return StatusResult(ConnectionStatus.MESSAGE_SENT)

    def start_pairing(self, force: Optional[bool] = None) -> PairingResult:
        """
        Reset the session and start QR pairing.

        Every stored device is deleted and the active client is dropped before a
        fresh identity is requested, so calling this while signed in forces a
        relink unless force is False. Pairing requests run one at a time; the
        session lock is released while waiting for the code, so status and send
        calls report SIGNED_OUT instead of blocking.

        Args:
            force: Relink even when signed in. None uses the configured default.

        Returns:
            QR_CODE_GENERATED with the code, SIGNED_IN when no pairing is needed,
            or LIBRARY_ERROR.
        """
        with self._pairing_lock:
            with self._lock:
                if self._closed:
                    return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=MSG_SESSION_CLOSED)

                if force is None:
                    force = self.force_relink

                if not force and self.check_status().status is ConnectionStatus.SIGNED_IN:
                    logger.info("Already signed in, keeping the current session")
                    return PairingResult(ConnectionStatus.SIGNED_IN)

                try:
                    devices = self.store.get_all_devices()
                    for device in devices:
                        self.store.delete_device(device)
                except StoreError as e:
                    logger.error(f"Failed to clear stored devices: {str(e)}")
                    return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=str(e))
                logger.info(f"Cleared {len(devices)} stored device(s)")

                self._drop_client()

                try:
                    device = self.store.get_first_device()
                except StoreError as e:
                    logger.error(f"Failed to create device identity: {str(e)}")
                    return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=str(e))

                client = self.client_factory(device)

                if client.device.jid is not None:
                    # Store was repopulated behind our back; no QR needed
                    return self._adopt_linked(client)

                try:
                    channel = client.get_qr_channel()
                    client.connect()
                except WhatsBotException as e:
                    logger.error(f"Failed to start pairing: {str(e)}")
                    client.disconnect()
                    return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=str(e))

                self._pending = (client, channel)
                future = self._pairing_worker.submit(_await_code, channel)

            try:
                return self._finish_pairing(client, channel, future)
            finally:
                with self._lock:
                    if self._pending is not None and self._pending[0] is client:
                        self._pending = None

    def _adopt_linked(self, client: WhatsAppClient) -> PairingResult:
        try:
            client.connect()
        except WhatsBotException as e:
            logger.error(f"Failed to connect {client.device.jid}: {str(e)}")
            return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=str(e))

        self.active_client = client
        logger.info(f"Device {client.device.jid} already linked, skipping pairing")
        return PairingResult(ConnectionStatus.SIGNED_IN)

    def _finish_pairing(self, client: WhatsAppClient, channel: PairingChannel,
                        future: Future) -> PairingResult:
        try:
            code, error = future.result(timeout=self.pairing_timeout)
        except FutureTimeoutError:
            logger.error(f"No pairing code after {self.pairing_timeout} seconds")
            channel.close()
            client.disconnect()
            return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=MSG_PAIRING_TIMEOUT)
        except CancelledError:
            code, error = None, None

        with self._lock:
            if self._pending is None or self._pending[0] is not client:
                client.disconnect()
                logger.warning("Pairing aborted before completion")
                return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=MSG_PAIRING_ABORTED)

            if code is None:
                client.disconnect()
                message = f"{MSG_NO_PAIRING_CODE}: {error}" if error else MSG_NO_PAIRING_CODE
                logger.error(message)
                return PairingResult(ConnectionStatus.LIBRARY_ERROR, error_message=message)

            self.active_client = client
            logger.info("Pairing code generated")
            return PairingResult(ConnectionStatus.QR_CODE_GENERATED, code=code)

    def _abort_pending(self) -> None:
        pending, self._pending = self._pending, None
        if pending is None:
            return
        client, channel = pending
        channel.close()
        try:
            client.disconnect()
        except WhatsBotException as e:
            logger.warning(f"Error while disconnecting pairing client: {str(e)}")

    def _drop_client(self) -> None:
        client, self.active_client = self.active_client, None
        if client is None:
            return
        try:
            client.disconnect()
        except WhatsBotException as e:
            logger.warning(f"Error while disconnecting client: {str(e)}")

    def snapshot(self) -> Dict[str, Any]:
        """
        Describe the session state.

        Returns:
            Dictionary with device_identity_present, client_connected and the linked JID.
        """
        with self._lock:
            client = self.active_client
            connected = client is not None and client.is_connected()
            jid = client.device.jid if client is not None else None
            if jid is None and not self._closed:
                try:
                    jid = next((d.jid for d in self.store.get_all_devices()), None)
                except StoreError as e:
                    logger.warning(f"Failed to read devices: {str(e)}")
            return {
                "device_identity_present": jid is not None,
                "client_connected": connected,
                "jid": jid
            }

    def shutdown(self) -> None:
        """Tear down the pending pairing, the active client, the pairing worker and the store."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._abort_pending()
            self._drop_client()
            self._pairing_worker.shutdown(wait=False, cancel_futures=True)
            self.store.close()
        logger.info("Session shut down")

    def __enter__(self) -> 'SessionController':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.shutdown()
