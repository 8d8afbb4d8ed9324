"""
credentials.py – Secure storage for the biometric unlock credential.

FernetCredentialStore keeps exactly one opaque credential on disk. The
credential is encrypted with a per-device Fernet key (AES-128-CBC +
HMAC-SHA256, provided by the 'cryptography' package) that is generated on
first use and kept next to it in the user-data directory.

The bootstrap only ever observes presence/absence and commands removal;
writing the credential is the authentication flow's job.
"""

import asyncio
import logging
import os
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

from config import APP_NAME
from errors import StoreAccessError

logger = logging.getLogger(APP_NAME)


class FernetCredentialStore:
    """
    Single-slot credential store encrypted at rest.

    Parameters
    ----------
    config : AppConfig
        Provides ``credential_path`` and ``device_key_path``.
    """

    def __init__(self, config) -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Device key
    # ------------------------------------------------------------------

    def _load_or_create_device_key(self) -> bytes:
        path = self.config.device_key_path
        if os.path.exists(path):
            with open(path, "rb") as fh:
                return fh.read()
        key = Fernet.generate_key()
        with open(path, "wb") as fh:
            fh.write(key)
        logger.info("Generated new device key")
        return key

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def get(self) -> Optional[bytes]:
        """
        Return the decrypted credential, or None when none is stored.

        Raises StoreAccessError when the file exists but cannot be read or
        decrypted (e.g. the device key was replaced).
        """
        return await asyncio.to_thread(self._get_sync)

    def _get_sync(self) -> Optional[bytes]:
        path = self.config.credential_path
        if not os.path.exists(path):
            return None
        try:
            with open(path, "rb") as fh:
                token = fh.read()
            return Fernet(self._load_or_create_device_key()).decrypt(token)
        except (OSError, InvalidToken) as exc:
            raise StoreAccessError("Could not read stored credential", exc) from exc

    async def set(self, credential: bytes) -> None:
        """Encrypt and store *credential*, replacing any previous one."""
        await asyncio.to_thread(self._set_sync, credential)

    def _set_sync(self, credential: bytes) -> None:
        path = self.config.credential_path
        tmp = path + ".tmp"
        try:
            token = Fernet(self._load_or_create_device_key()).encrypt(credential)
            with open(tmp, "wb") as fh:
                fh.write(token)
            os.replace(tmp, path)
        except OSError as exc:
            raise StoreAccessError("Could not store credential", exc) from exc
        logger.info("Unlock credential stored")

    async def remove(self) -> None:
        """Delete the stored credential. Removing an absent one is a no-op."""
        await asyncio.to_thread(self._remove_sync)

    def _remove_sync(self) -> None:
        try:
            os.remove(self.config.credential_path)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StoreAccessError("Could not remove stored credential", exc) from exc
        logger.info("Unlock credential removed")
