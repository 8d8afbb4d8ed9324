"""
vault.py – File-backed vault existence service.

The vault itself (its encryption format and contents) is owned by the
authentication flow; the bootstrap only needs to know whether a vault
exists and, on a reset directive, to remove it.

A vault exists when its salt file is present in the vault directory, the
same marker the first-run check uses to choose between "create a master
password" and "unlock". Deletion moves every vault file into a timestamped
backup folder and rolls back if any file cannot be moved, so a failed
delete never leaves a half-removed vault behind.
"""

import asyncio
import base64
import logging
import os
import shutil
import time
from typing import List, Tuple

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from config import APP_NAME
from errors import StoreAccessError

logger = logging.getLogger(APP_NAME)

_KEYCHECK_PLAINTEXT = b"keycheck"


class FileVault:
    """
    Vault existence service backed by files under ``config.vault_dir``.

    Parameters
    ----------
    config : AppConfig
        Provides the vault file paths and the user-data directory that
        receives backups.
    """

    def __init__(self, config) -> None:
        self.config = config

    # ------------------------------------------------------------------
    # Existence
    # ------------------------------------------------------------------

    async def exists(self) -> bool:
        """Return True when the vault salt file is present on disk."""
        try:
            return await asyncio.to_thread(os.path.exists, self.config.vault_salt_path)
        except OSError as exc:
            raise StoreAccessError("Could not check vault existence", exc) from exc

    # ------------------------------------------------------------------
    # Creation / verification (used by the authentication flow)
    # ------------------------------------------------------------------

    @staticmethod
    def derive_key(password: str, salt: bytes) -> bytes:
        """
        Derive a Fernet-compatible key from *password* and *salt* using
        PBKDF2-HMAC-SHA256 with 390 000 iterations.
        """
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt,
            iterations=390_000,
        )
        return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))

    async def create(self, password: str) -> None:
        """Create an empty vault protected by *password*."""
        await asyncio.to_thread(self._create_sync, password)

    def _create_sync(self, password: str) -> None:
        cfg = self.config
        try:
            os.makedirs(cfg.vault_dir, exist_ok=True)
            salt = os.urandom(16)
            fernet = Fernet(self.derive_key(password, salt))
            with open(cfg.vault_keycheck_path, "wb") as fh:
                fh.write(fernet.encrypt(_KEYCHECK_PLAINTEXT))
            with open(cfg.vault_data_path, "wb") as fh:
                fh.write(fernet.encrypt(b"[]"))
            # Salt last: its presence is what marks the vault as existing.
            with open(cfg.vault_salt_path, "wb") as fh:
                fh.write(salt)
        except OSError as exc:
            raise StoreAccessError("Could not create vault", exc) from exc
        logger.info("Vault created in %s", cfg.vault_dir)

    async def verify_password(self, password: str) -> bool:
        """
        Return True if *password* decrypts the vault key-check token.

        A wrong password returns False; a missing or unreadable vault raises
        StoreAccessError.
        """
        return await asyncio.to_thread(self._verify_sync, password)

    def _verify_sync(self, password: str) -> bool:
        cfg = self.config
        try:
            with open(cfg.vault_salt_path, "rb") as fh:
                salt = fh.read()
            with open(cfg.vault_keycheck_path, "rb") as fh:
                token = fh.read()
        except OSError as exc:
            raise StoreAccessError("Could not read vault key-check", exc) from exc
        try:
            return Fernet(self.derive_key(password, salt)).decrypt(token) == _KEYCHECK_PLAINTEXT
        except InvalidToken:
            return False

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    async def delete(self) -> None:
        """
        Remove the vault by moving its files to a timestamped backup folder.

        Deleting an absent vault is a no-op. Raises StoreAccessError if any
        file could not be moved; files already moved are put back first.
        """
        await asyncio.to_thread(self._delete_sync)

    def _vault_files(self) -> List[str]:
        cfg = self.config
        # Salt first so the vault stops "existing" as early as possible.
        return [cfg.vault_salt_path, cfg.vault_keycheck_path, cfg.vault_data_path]

    def _delete_sync(self) -> None:
        present = [p for p in self._vault_files() if os.path.exists(p)]
        if not present:
            logger.debug("Vault delete requested but no vault files present")
            return

        ts = time.strftime("%Y%m%d-%H%M%S")
        backup_dir = os.path.join(self.config.user_data_dir, "reset_backups", ts)
        try:
            os.makedirs(backup_dir, exist_ok=True)
        except OSError as exc:
            raise StoreAccessError("Could not create vault backup folder", exc) from exc

        moved: List[Tuple[str, str]] = []
        for path in present:
            dest = os.path.join(backup_dir, os.path.basename(path))
            try:
                shutil.move(path, dest)
                moved.append((path, dest))
            except OSError as exc:
                logger.error("Failed to move %s to backup; rolling back vault delete", path)
                self._rollback(moved)
                raise StoreAccessError(f"Could not delete vault file {os.path.basename(path)}", exc) from exc

        logger.info("Vault deleted; backups stored in %s", backup_dir)

    @staticmethod
    def _rollback(moved: List[Tuple[str, str]]) -> None:
        """Move already-backed-up files back to their original location."""
        for orig, dest in reversed(moved):
            try:
                shutil.move(dest, orig)
            except OSError:
                logger.exception("Failed to restore %s from backup", dest)
