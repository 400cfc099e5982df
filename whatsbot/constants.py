"""
Constants used throughout the whatsbot package.
"""

# Timeouts
CONN_TIMEOUT = 15  # seconds
PAIRING_TIMEOUT = 60  # seconds
REQUEST_TIMEOUT = 15  # seconds

# Pairing events
PAIRING_EVENT_CODE = "code"
PAIRING_EVENT_SUCCESS = "success"
PAIRING_EVENT_TIMEOUT = "timeout"
PAIRING_EVENT_ERROR = "error"

# Gateway frame types
FRAME_INIT = "init"
FRAME_QR = "qr"
FRAME_PAIR_SUCCESS = "pair_success"
FRAME_QR_TIMEOUT = "qr_timeout"
FRAME_LOGGED_OUT = "logged_out"
FRAME_ERROR = "error"
FRAME_PING = "ping"
FRAME_PONG = "pong"

# Status messages
MSG_NOT_SIGNED_IN = "Not signed in and connected"
MSG_TARGET_NOT_ON_WHATSAPP = "Target is not on WhatsApp"
MSG_NO_PAIRING_CODE = "Unable to obtain pairing code"
MSG_PAIRING_TIMEOUT = "Timed out waiting for pairing code"
MSG_MALFORMED_SEND = "Malformed request body, must contain message and phone_number"
MSG_PAIRING_ABORTED = "Pairing was aborted"
MSG_SESSION_CLOSED = "Session has been shut down"
