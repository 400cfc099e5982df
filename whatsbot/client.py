"""
Protocol client for whatsbot.

Talks to a multi-device WhatsApp gateway on behalf of one Device: a
WebSocket carries the session (liveness, pairing events) and plain HTTP
requests carry contact lookups and message submissions.
"""

import json
import queue
import logging
import threading
from urllib.parse import urlsplit, urlunsplit
from typing import Dict, Any, Optional, List, Callable, Iterator

import requests
import websocket

from whatsbot.store import Device
from whatsbot.constants import (
    CONN_TIMEOUT,
    REQUEST_TIMEOUT,
    PAIRING_EVENT_CODE,
    PAIRING_EVENT_SUCCESS,
    PAIRING_EVENT_TIMEOUT,
    PAIRING_EVENT_ERROR,
    FRAME_INIT,
    FRAME_QR,
    FRAME_PAIR_SUCCESS,
    FRAME_QR_TIMEOUT,
    FRAME_LOGGED_OUT,
    FRAME_ERROR,
    FRAME_PING,
    FRAME_PONG
)
from whatsbot.exceptions import (
    StoreError,
    ConnectionError,
    ClientError,
    SendError,
    PairingError
)
from whatsbot.utils import generate_message_id, normalize_phone_number

logger = logging.getLogger(__name__)

TERMINAL_EVENTS = (PAIRING_EVENT_SUCCESS, PAIRING_EVENT_TIMEOUT)


class PairingEvent:
    """
    One event of the QR pairing flow. Only ``code`` events carry a code.
    """

    def __init__(self, event: str, code: Optional[str] = None, error: Optional[str] = None):
        self.event = event
        self.code = code
        self.error = error

    @property
    def terminal(self) -> bool:
        return self.event in TERMINAL_EVENTS

    def __repr__(self) -> str:
        return f"PairingEvent(event={self.event!r}, code={self.code!r}, error={self.error!r})"


class PairingChannel:
    """
    Thread-safe stream of PairingEvent objects.

    The connection thread feeds it; a consumer iterates it. Iteration ends
    after a terminal event or once the channel is closed, whichever comes first.
    """

    _CLOSED = object()

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, event: PairingEvent) -> None:
        """
        Publish an event. Events published after close are dropped.

        Args:
            event: The event to publish.
        """
        if self.closed:
            logger.debug(f"Dropping {event!r}, pairing channel closed")
            return
        self._queue.put(event)
        if event.terminal:
            self.close()

    def close(self) -> None:
        """Close the channel and wake any consumer."""
        if self.closed:
            return
        self._closed.set()
        self._queue.put(self._CLOSED)

    def __iter__(self) -> Iterator[PairingEvent]:
        while True:
            item = self._queue.get()
            if item is self._CLOSED:
                return
            yield item


class OnWhatsAppResponse:
    """
    Result of a reachability check for one queried phone number.
    """

    def __init__(self, query: str, jid: Optional[str], is_in: bool):
        self.query = query
        self.jid = jid
        self.is_in = is_in

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'OnWhatsAppResponse':
        return cls(
            query=data.get("query", ""),
            jid=data.get("jid"),
            is_in=bool(data.get("is_in", False))
        )

    def __repr__(self) -> str:
        return f"OnWhatsAppResponse(query={self.query!r}, jid={self.jid!r}, is_in={self.is_in})"


class WhatsAppClient:
    """
    Gateway-backed client bound to a single device identity.
    """

    def __init__(self, device: Device, gateway_url: str,
                 request_timeout: float = REQUEST_TIMEOUT,
                 connect_timeout: float = CONN_TIMEOUT,
                 http: Optional[requests.Session] = None):
        """
        Initialize the client.

        Args:
            device: The device identity this client acts for.
            gateway_url: Base HTTP(S) URL of the gateway.
            request_timeout: Timeout for HTTP requests, in seconds.
            connect_timeout: How long connect() waits for the socket to open.
            http: Optional requests session to reuse.
        """
        self.device = device
        self.gateway_url = gateway_url.rstrip('/')
        self.request_timeout = request_timeout
        self.connect_timeout = connect_timeout
        self.http = http or requests.Session()
        self.ws = None
        self.connected = False
        self.ws_thread = None
        self.event_handlers: List[Callable[[str, Dict[str, Any]], None]] = []
        self._qr_channel: Optional[PairingChannel] = None
        self._opened = threading.Event()
        self._last_error: Optional[str] = None
        self._exit_flag = False

    @property
    def ws_url(self) -> str:
        """WebSocket endpoint derived from the gateway URL."""
        parts = urlsplit(self.gateway_url)
        scheme = "wss" if parts.scheme in ("https", "wss") else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path.rstrip('/') + "/ws", "", ""))

    def add_event_handler(self, callback: Callable[[str, Dict[str, Any]], None]) -> None:
        """
        Add a callback for connection events ("connected", "disconnected", "paired", "logged_out").

        Args:
            callback: Function called with the event name and its data.
        """
        self.event_handlers.append(callback)

    def is_connected(self) -> bool:
        """
        Check whether the gateway socket is open.

        Returns:
            True if connected, False otherwise.
        """
        return self.connected and self.ws is not None

    def is_logged_in(self) -> bool:
        """Whether the bound device carries a linked JID."""
        return self.device.jid is not None

    def get_qr_channel(self) -> PairingChannel:
        """
        Open the pairing event stream. Must be called before connect().

        Returns:
            The channel that will receive pairing events.

        Raises:
            PairingError: If the device is already linked or the client is connected.
        """
        if self.device.linked:
            raise PairingError("Device is already linked, no QR code needed")
        if self.is_connected():
            raise PairingError("QR channel must be requested before connecting")

        self._qr_channel = PairingChannel()
        return self._qr_channel

    def connect(self) -> None:
        """
        Open the gateway session and wait for it to come up.

        Raises:
            ConnectionError: If the socket cannot be opened within connect_timeout.
        """
        if self.is_connected():
            logger.debug("Already connected")
            return

        self._exit_flag = False
        self._opened.clear()
        self._last_error = None

        self.ws = websocket.WebSocketApp(
            self.ws_url,
            header={"X-WA-Registration": str(self.device.registration_id)},
            on_open=self._on_open,
            on_message=self._on_message,
            on_error=self._on_error,
            on_close=self._on_close
        )

        self.ws_thread = threading.Thread(target=self.ws.run_forever, name="whatsbot-ws")
        self.ws_thread.daemon = True
        self.ws_thread.start()

        if not self._opened.wait(self.connect_timeout) or not self.connected:
            reason = self._last_error or f"no response within {self.connect_timeout} seconds"
            self._exit_flag = True
            self.ws.close()
            self.ws = None
            raise ConnectionError(f"Failed to connect to {self.ws_url}: {reason}")

        logger.info(f"Connected to WhatsApp gateway: {self.ws_url}")

    def disconnect(self) -> None:
        """Close the gateway session and any open pairing channel."""
        self._exit_flag = True

        if self.ws:
            logger.debug("Closing gateway socket")
            self.ws.close()
            self.ws = None

        if self.ws_thread and self.ws_thread is not threading.current_thread():
            self.ws_thread.join(2.0)
        self.ws_thread = None

        if self._qr_channel:
            self._qr_channel.close()

        self.connected = False
        logger.info("Disconnected from WhatsApp gateway")

    def is_on_whatsapp(self, phones: List[str]) -> List[OnWhatsAppResponse]:
        """
        Check which phone numbers are registered on WhatsApp.

        Args:
            phones: Phone numbers, with or without a leading "+".

        Returns:
            One response per number the gateway resolved.

        Raises:
            ConnectionError: If the client is not connected.
            ClientError: If the gateway rejects the query.
        """
        self._require_session()
        data = self._post("/v1/contacts/check", {
            "jid": self.device.jid,
            "phones": [normalize_phone_number(p) for p in phones]
        }, ClientError)
        return [OnWhatsAppResponse.from_dict(item) for item in data.get("results") or []]

    def send_message(self, to: str, text: str) -> str:
        """
        Send a plain text message.

        Args:
            to: Recipient JID.
            text: Message body.

        Returns:
            ID of the sent message.

        Raises:
            ConnectionError: If the client is not connected.
            SendError: If the gateway rejects the message.
        """
        self._require_session()
        message_id = generate_message_id()
        data = self._post("/v1/messages", {
            "jid": self.device.jid,
            "id": message_id,
            "to": to,
            "conversation": text
        }, SendError)

        message_id = data.get("id", message_id)
        logger.info(f"Sent text message {message_id} to {to}")
        return message_id

    def _require_session(self) -> None:
        if not self.is_connected():
            raise ConnectionError("Client is not connected")

    def _post(self, path: str, payload: Dict[str, Any], error_cls: type) -> Dict[str, Any]:
        url = f"{self.gateway_url}{path}"
        try:
            response = self.http.post(url, json=payload, timeout=self.request_timeout)
        except requests.RequestException as e:
            logger.error(f"Request to {url} failed: {str(e)}")
            raise error_cls(f"Request to gateway failed: {str(e)}") from e

        if not response.ok:
            reason = self._error_reason(response)
            logger.error(f"Gateway rejected {path}: {response.status_code} {reason}")
            raise error_cls(f"Gateway returned {response.status_code}: {reason}")

        try:
            return response.json() or {}
        except ValueError:
            return {}

    @staticmethod
    def _error_reason(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason or "unknown error"
        if isinstance(body, dict):
            return str(body.get("message") or body.get("reason") or body)
        return str(body)

    def _emit(self, event: str, data: Dict[str, Any]) -> None:
        for callback in self.event_handlers:
            try:
                callback(event, data)
            except Exception as e:
                logger.error(f"Error in event handler: {str(e)}")

    def _publish(self, event: PairingEvent) -> None:
        if self._qr_channel is not None:
            self._qr_channel.put(event)

    def _on_open(self, ws) -> None:
        """
        WebSocket on_open callback.

        Args:
            ws: WebSocket instance.
        """
        self.connected = True
        logger.debug("Gateway socket opened")

        ws.send(json.dumps({
            "type": FRAME_INIT,
            "device": self.device.public_info()
        }))

        self._opened.set()
        self._emit("connected", {})

    def _on_message(self, ws, message) -> None:
        """
        WebSocket on_message callback.

        Args:
            ws: WebSocket instance.
            message: Received frame.
        """
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            logger.warning("Ignoring non-JSON frame from gateway")
            return

        frame_type = data.get("type")
        logger.debug(f"Received {frame_type} frame")

        if frame_type == FRAME_PING:
            ws.send(json.dumps({"type": FRAME_PONG}))

        elif frame_type == FRAME_QR:
            self._publish(PairingEvent(PAIRING_EVENT_CODE, code=data.get("code")))

        elif frame_type == FRAME_PAIR_SUCCESS:
            self._handle_pair_success(data)

        elif frame_type == FRAME_QR_TIMEOUT:
            self._publish(PairingEvent(PAIRING_EVENT_TIMEOUT))

        elif frame_type == FRAME_LOGGED_OUT:
            self._handle_logged_out()

        elif frame_type == FRAME_ERROR:
            error_msg = data.get("message", "Unknown error")
            logger.error(f"Received error from gateway: {error_msg}")
            self._publish(PairingEvent(PAIRING_EVENT_ERROR, error=error_msg))

    def _handle_pair_success(self, data: Dict[str, Any]) -> None:
        jid = data.get("jid")
        if not jid:
            self._publish(PairingEvent(PAIRING_EVENT_ERROR, error="Pairing succeeded without a JID"))
            return

        self.device.jid = jid
        self.device.push_name = data.get("push_name", self.device.push_name)

        try:
            self.device.save()
        except StoreError as e:
            logger.error(f"Failed to save paired device: {str(e)}")
            self.device.jid = None
            self._publish(PairingEvent(PAIRING_EVENT_ERROR, error=str(e)))
            return

        logger.info(f"Paired as {jid}")
        self._publish(PairingEvent(PAIRING_EVENT_SUCCESS))
        self._emit("paired", {"jid": jid})

    def _handle_logged_out(self) -> None:
        logger.warning(f"Device {self.device.jid} was logged out remotely")
        if self.device.container is not None:
            try:
                self.device.container.delete_device(self.device)
            except StoreError as e:
                logger.error(f"Failed to delete logged out device: {str(e)}")
        self.device.jid = None
        self._emit("logged_out", {})

    def _on_error(self, ws, error) -> None:
        """
        WebSocket on_error callback.

        Args:
            ws: WebSocket instance.
            error: Error information.
        """
        self._last_error = str(error)
        logger.error(f"Gateway socket error: {str(error)}")

    def _on_close(self, ws, close_status_code, close_msg) -> None:
        """
        WebSocket on_close callback.

        Args:
            ws: WebSocket instance.
            close_status_code: Close status code.
            close_msg: Close message.
        """
        self.connected = False
        # Unblock a connect() still waiting on a socket that never opened
        self._opened.set()
        logger.info(f"Gateway socket closed: {close_status_code} - {close_msg}")

        if self._qr_channel:
            self._qr_channel.close()

        self._emit("disconnected", {
            "code": close_status_code,
            "reason": close_msg,
            "requested": self._exit_flag
        })
