"""
whatsbot - a small control surface over a WhatsApp session.

Check the sign-in status, pair a device with a QR code and send text
messages, over HTTP or through in-process callback bindings.
"""

from whatsbot.version import __version__
from whatsbot.config import Config
from whatsbot.status import ConnectionStatus, StatusResult, PairingResult
from whatsbot.store import Device, DeviceStore
from whatsbot.client import WhatsAppClient, PairingChannel, PairingEvent
from whatsbot.session import SessionController
from whatsbot.exceptions import (
    WhatsBotException,
    StoreError,
    ConnectionError,
    ClientError,
    SendError,
    PairingError,
    BadParamError
)

__all__ = [
    '__version__',
    'Config',
    'ConnectionStatus',
    'StatusResult',
    'PairingResult',
    'Device',
    'DeviceStore',
    'WhatsAppClient',
    'PairingChannel',
    'PairingEvent',
    'SessionController',
    'WhatsBotException',
    'StoreError',
    'ConnectionError',
    'ClientError',
    'SendError',
    'PairingError',
    'BadParamError'
]
