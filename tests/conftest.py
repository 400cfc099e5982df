"""Shared fixtures: an in-memory device store and a scriptable fake client."""
from __future__ import annotations

from typing import Any, Callable, List, Optional

import pytest

from whatsbot.client import OnWhatsAppResponse, PairingChannel, PairingEvent
from whatsbot.session import SessionController
from whatsbot.store import Device, DeviceStore

LINKED_JID = "15551234567.0:1@s.whatsapp.net"
TARGET_JID = "15559876543@s.whatsapp.net"


class FakeClient:
    """Stands in for WhatsAppClient; records every call it receives."""

    def __init__(
        self,
        device: Device,
        events: Optional[List[PairingEvent]] = None,
        connect_error: Optional[Exception] = None,
        reachable: Optional[List[OnWhatsAppResponse]] = None,
        check_error: Optional[Exception] = None,
        send_error: Optional[Exception] = None,
    ) -> None:
        self.device = device
        self.connected = False
        self.events = events or []
        self.connect_error = connect_error
        self.reachable = reachable if reachable is not None else []
        self.check_error = check_error
        self.send_error = send_error
        self.qr_channel: Optional[PairingChannel] = None
        self.calls: List[Any] = []

    def is_connected(self) -> bool:
        return self.connected

    def connect(self) -> None:
        self.calls.append("connect")
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True
        if self.qr_channel is not None:
            for event in self.events:
                self.qr_channel.put(event)

    def disconnect(self) -> None:
        self.calls.append("disconnect")
        self.connected = False
        if self.qr_channel is not None:
            self.qr_channel.close()

    def get_qr_channel(self) -> PairingChannel:
        self.calls.append("get_qr_channel")
        self.qr_channel = PairingChannel()
        return self.qr_channel

    def is_on_whatsapp(self, phones: List[str]) -> List[OnWhatsAppResponse]:
        self.calls.append(("is_on_whatsapp", list(phones)))
        if self.check_error is not None:
            raise self.check_error
        return self.reachable

    def send_message(self, to: str, text: str) -> str:
        self.calls.append(("send_message", to, text))
        if self.send_error is not None:
            raise self.send_error
        return "MSGID"


class FactoryRecorder:
    """Client factory that builds FakeClients and remembers them."""

    def __init__(self, **client_kwargs: Any) -> None:
        self.client_kwargs = client_kwargs
        self.clients: List[FakeClient] = []

    def __call__(self, device: Device) -> FakeClient:
        client = FakeClient(device, **self.client_kwargs)
        self.clients.append(client)
        return client


def connected_client(jid: Optional[str] = LINKED_JID, **kwargs: Any) -> FakeClient:
    client = FakeClient(Device(jid=jid), **kwargs)
    client.connected = True
    return client


@pytest.fixture()
def store() -> DeviceStore:
    s = DeviceStore(":memory:")
    yield s
    s.close()


@pytest.fixture()
def make_controller(store: DeviceStore) -> Callable[..., SessionController]:
    created: List[SessionController] = []

    def _make(factory: Optional[FactoryRecorder] = None, **kwargs: Any) -> SessionController:
        kwargs.setdefault("pairing_timeout", 2.0)
        controller = SessionController(store, factory or FactoryRecorder(), **kwargs)
        created.append(controller)
        return controller

    yield _make
    for controller in created:
        controller._pairing_worker.shutdown(wait=False, cancel_futures=True)
