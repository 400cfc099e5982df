"""
Device store for whatsbot.

Persists linked-device credentials in a single SQLite file. A device that
has not been linked yet (``jid is None``) lives only in memory until the
pairing flow succeeds and saves it.
"""

import sqlite3
import logging
import threading
from pathlib import Path
from typing import Dict, Any, Optional, List, Union

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    PrivateFormat,
    PublicFormat,
    NoEncryption
)

from whatsbot.exceptions import StoreError
from whatsbot.utils import generate_registration_id

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS devices (
    jid             TEXT PRIMARY KEY,
    registration_id INTEGER NOT NULL,
    noise_key       BLOB NOT NULL,
    identity_key    BLOB NOT NULL,
    platform        TEXT NOT NULL DEFAULT '',
    push_name       TEXT NOT NULL DEFAULT '',
    created_at      TEXT NOT NULL DEFAULT (datetime('now'))
)
"""
_UPSERT_SQL = """
INSERT INTO devices (jid, registration_id, noise_key, identity_key, platform, push_name)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(jid) DO UPDATE SET
    registration_id = excluded.registration_id,
    noise_key       = excluded.noise_key,
    identity_key    = excluded.identity_key,
    platform        = excluded.platform,
    push_name       = excluded.push_name
"""
_SELECT_SQL = (
    "SELECT jid, registration_id, noise_key, identity_key, platform, push_name "
    "FROM devices ORDER BY created_at, jid"
)


def _private_bytes(key: X25519PrivateKey) -> bytes:
    return key.private_bytes(Encoding.Raw, PrivateFormat.Raw, NoEncryption())


def _public_bytes(key: X25519PrivateKey) -> bytes:
    return key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)


class Device:
    """
    One device identity: the key material the gateway needs to act for a linked session.
    """

    def __init__(self, jid: Optional[str] = None,
                 registration_id: Optional[int] = None,
                 noise_key: Optional[X25519PrivateKey] = None,
                 identity_key: Optional[X25519PrivateKey] = None,
                 platform: str = "",
                 push_name: str = "",
                 container: Optional['DeviceStore'] = None):
        """
        Initialize a device, generating fresh keys for any that are missing.

        Args:
            jid: Linked device JID, None until pairing succeeds.
            registration_id: Device registration ID.
            noise_key: Noise handshake key pair.
            identity_key: Signal identity key pair.
            platform: Platform name reported when linking.
            push_name: Display name of the linked account.
            container: Store the device is saved into.
        """
        self.jid = jid
        self.registration_id = registration_id or generate_registration_id()
        self.noise_key = noise_key or X25519PrivateKey.generate()
        self.identity_key = identity_key or X25519PrivateKey.generate()
        self.platform = platform
        self.push_name = push_name
        self.container = container

    @property
    def linked(self) -> bool:
        return self.jid is not None

    def save(self) -> None:
        """
        Persist the device into its store.

        Raises:
            StoreError: If the device has no store or is not linked.
        """
        if self.container is None:
            raise StoreError("Device is not attached to a store")
        self.container.put_device(self)

    def public_info(self) -> Dict[str, Any]:
        """
        Public half of the device identity, as sent to the gateway.

        Returns:
            Dictionary with the JID, registration ID and hex-encoded public keys.
        """
        return {
            "jid": self.jid,
            "registration_id": self.registration_id,
            "noise_key": _public_bytes(self.noise_key).hex(),
            "identity_key": _public_bytes(self.identity_key).hex(),
            "platform": self.platform
        }

    def __repr__(self) -> str:
        return f"Device(jid={self.jid!r}, registration_id={self.registration_id})"


class DeviceStore:
    """
    SQLite-backed store of linked devices.
    """

    def __init__(self, db_path: Union[str, Path] = "whatsapp.db", platform: str = ""):
        """
        Open (creating if needed) the device database.

        Args:
            db_path: Path to the SQLite file, or ":memory:".
            platform: Platform name given to newly created devices.

        Raises:
            StoreError: If the database cannot be opened.
        """
        self.db_path = str(db_path)
        self.platform = platform
        self._lock = threading.Lock()
        self._conn: Optional[sqlite3.Connection] = None

        try:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._conn.execute(_CREATE_TABLE_SQL)
            self._conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise StoreError(f"Failed to open device store {self.db_path}: {str(e)}") from e

        logger.debug(f"Opened device store at {self.db_path}")

    @property
    def closed(self) -> bool:
        return self._conn is None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreError("Device store is closed")
        return self._conn

    def _row_to_device(self, row: tuple) -> Device:
        jid, registration_id, noise_key, identity_key, platform, push_name = row
        return Device(
            jid=jid,
            registration_id=registration_id,
            noise_key=X25519PrivateKey.from_private_bytes(bytes(noise_key)),
            identity_key=X25519PrivateKey.from_private_bytes(bytes(identity_key)),
            platform=platform,
            push_name=push_name,
            container=self
        )

    def get_all_devices(self) -> List[Device]:
        """
        Load every stored device.

        Returns:
            The stored devices, oldest first.

        Raises:
            StoreError: If the store cannot be read.
        """
        with self._lock:
            try:
                rows = self._connection().execute(_SELECT_SQL).fetchall()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to read devices: {str(e)}") from e
        return [self._row_to_device(row) for row in rows]

    def get_device(self, jid: str) -> Optional[Device]:
        """
        Load one device by JID.

        Args:
            jid: The device JID.

        Returns:
            The device, or None when it is not stored.
        """
        with self._lock:
            try:
                row = self._connection().execute(
                    _SELECT_SQL.replace("ORDER BY", "WHERE jid = ? ORDER BY"), (jid,)
                ).fetchone()
            except sqlite3.Error as e:
                raise StoreError(f"Failed to read device {jid}: {str(e)}") from e
        return self._row_to_device(row) if row else None

    def get_first_device(self) -> Device:
        """
        Return the first stored device, or a new unlinked one when the store is empty.

        The new device is not persisted until it is linked and saved.

        Returns:
            A Device attached to this store.

        Raises:
            StoreError: If the store cannot be read.
        """
        devices = self.get_all_devices()
        if devices:
            return devices[0]

        logger.debug("No stored device, creating a new identity slot")
        return self.new_device()

    def new_device(self) -> Device:
        """Create a fresh unlinked device attached to this store."""
        self._connection()
        return Device(platform=self.platform, container=self)

    def put_device(self, device: Device) -> None:
        """
        Insert or update a linked device.

        Args:
            device: The device to persist.

        Raises:
            StoreError: If the device is not linked or the write fails.
        """
        if not device.linked:
            raise StoreError("Cannot save a device that has not been linked")

        with self._lock:
            conn = self._connection()
            try:
                conn.execute(_UPSERT_SQL, (
                    device.jid,
                    device.registration_id,
                    _private_bytes(device.noise_key),
                    _private_bytes(device.identity_key),
                    device.platform,
                    device.push_name
                ))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"Failed to save device {device.jid}: {str(e)}") from e

        device.container = self
        logger.debug(f"Saved device {device.jid}")

    def delete_device(self, device: Device) -> None:
        """
        Delete a device. Deleting an unlinked or unknown device is a no-op.

        Args:
            device: The device to delete.

        Raises:
            StoreError: If the write fails.
        """
        if not device.linked:
            return

        with self._lock:
            conn = self._connection()
            try:
                conn.execute("DELETE FROM devices WHERE jid = ?", (device.jid,))
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise StoreError(f"Failed to delete device {device.jid}: {str(e)}") from e

        logger.debug(f"Deleted device {device.jid}")

    def close(self) -> None:
        """Flush and close the database. Safe to call more than once."""
        with self._lock:
            if self._conn is None:
                return
            try:
                self._conn.commit()
                self._conn.close()
            except sqlite3.Error as e:
                logger.warning(f"Error while closing device store: {str(e)}")
            finally:
                self._conn = None
        logger.info(f"Closed device store {self.db_path}")

    def __enter__(self) -> 'DeviceStore':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"DeviceStore(db_path={self.db_path!r})"
