"""
Exceptions for the whatsbot package.
"""

class WhatsBotException(Exception):
    """Base exception for all whatsbot errors."""
    pass


class StoreError(WhatsBotException):
    """Raised when device identities cannot be read from or written to the store."""
    pass


class ConnectionError(WhatsBotException):
    """Raised when there is an issue with the connection to the WhatsApp gateway."""
    pass


class ClientError(WhatsBotException):
    """Raised when the gateway rejects a query made by the client."""
    pass


class SendError(WhatsBotException):
    """Raised when a message submission is rejected."""
    pass


class PairingError(WhatsBotException):
    """Raised when the QR pairing flow cannot produce a code."""
    pass


class BadParamError(WhatsBotException):
    """
    Raised when there is an issue with parameters.
    Only the transport adapters raise this; the session controller never validates input.
    """
    pass
