"""
Status vocabulary reported by the session controller.

Every controller operation returns exactly one ConnectionStatus, wrapped in
a result object carrying the optional pairing code and error message.
"""

from enum import Enum
from typing import Dict, Any, Optional


class ConnectionStatus(str, Enum):
    """Closed set of externally visible session states and outcomes."""

    SIGNED_IN = "signed_in"
    SIGNED_OUT = "signed_out"
    NOT_CONNECTED = "not_connected"
    QR_CODE_GENERATED = "qr_code_generated"
    MESSAGE_SENT = "message_sent"
    TARGET_NOT_ON_WHATSAPP = "target_not_on_whatsapp"
    LIBRARY_ERROR = "whatsapp_library_error"

    def __str__(self) -> str:
        return self.value


class StatusResult:
    """
    Outcome of a status check or a message send.
    """

    def __init__(self, status: ConnectionStatus, error_message: Optional[str] = None):
        """
        Initialize the result.

        Args:
            status: The reported status.
            error_message: Human readable detail, if any.
        """
        self.status = status
        self.error_message = error_message or None

    @property
    def ok(self) -> bool:
        return self.status is not ConnectionStatus.LIBRARY_ERROR

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the result to a dictionary, omitting empty fields.

        Returns:
            Dictionary representation of the result.
        """
        data: Dict[str, Any] = {"status": self.status.value}
        if self.error_message:
            data["error_message"] = self.error_message
        return data

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StatusResult):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status.value!r}, error_message={self.error_message!r})"


class PairingResult(StatusResult):
    """
    Outcome of a pairing request; carries the QR code when one was issued.
    """

    def __init__(self, status: ConnectionStatus, code: Optional[str] = None,
                 error_message: Optional[str] = None):
        super().__init__(status, error_message)
        self.code = code or None

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        if self.code:
            data["code"] = self.code
        return data

    def __repr__(self) -> str:
        return (f"{type(self).__name__}(status={self.status.value!r}, code={self.code!r}, "
                f"error_message={self.error_message!r})")
