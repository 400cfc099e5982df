"""
Utility functions for whatsbot.
"""

import os
import re
import uuid


def generate_message_id() -> str:
    """
    Generate a unique outgoing message ID.

    Returns:
        An upper-case hex message ID string.
    """
    return uuid.uuid4().hex[:16].upper()


def generate_registration_id() -> int:
    """
    Generate a device registration ID.

    Returns:
        A random registration ID in the 14-bit range used by the network.
    """
    return int.from_bytes(os.urandom(4), byteorder='big') % 16380 + 1


def normalize_phone_number(phone_number: str) -> str:
    """
    Normalize a phone number for a reachability query.

    Args:
        phone_number: The phone number to normalize.

    Returns:
        The digits of the number behind a single leading "+".
    """
    return "+" + re.sub(r'\D', '', phone_number)
