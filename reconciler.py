"""
reconciler.py – Settings consistency reconciliation.

The biometric unlock credential may only exist while the device has
biometrics enrolled. The user can remove their fingerprints at any time
outside the application, so on every launch the reconciler checks
enrollment first and deletes a stale credential before deciding whether
biometric unlock is available.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from config import APP_NAME, CONCEAL_TOKENS_KEY
from contracts import BiometricEnrollmentQuery, KeyValueStore, SecureCredentialStore
from errors import BootstrapError, EnrollmentQueryError, StoreAccessError

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class SettingsSnapshot:
    """Settings derived at bootstrap; handed to the rest of the app as one value."""

    biometric_unlock: bool
    conceal_tokens: bool


async def _guard(awaitable, error_cls, message: str):
    """Await *awaitable*, converting untyped failures into *error_cls*."""
    try:
        return await awaitable
    except BootstrapError:
        raise
    except Exception as exc:
        raise error_cls(message, exc) from exc


class SettingsConsistencyReconciler:
    """
    Enforces "no stored credential without biometric enrollment" and derives
    the SettingsSnapshot.

    Parameters
    ----------
    enrollment : BiometricEnrollmentQuery
    credentials : SecureCredentialStore
    preferences : KeyValueStore
    credential_lock : asyncio.Lock, optional
        When given, held while the credential is removed and re-read so an
        authentication flow sharing the lock cannot write in between.
    """

    def __init__(self, enrollment: BiometricEnrollmentQuery, credentials: SecureCredentialStore,
                 preferences: KeyValueStore,
                 credential_lock: Optional[asyncio.Lock] = None) -> None:
        self.enrollment = enrollment
        self.credentials = credentials
        self.preferences = preferences
        self.credential_lock = credential_lock

    async def reconcile(self) -> SettingsSnapshot:
        """
        Run the five reconciliation steps in order and return the snapshot.

        Raises EnrollmentQueryError or StoreAccessError; nothing is retried.
        """
        enrolled = await _guard(
            self.enrollment.is_enrolled(), EnrollmentQueryError,
            "Biometric enrollment query failed",
        )

        if self.credential_lock is not None:
            async with self.credential_lock:
                biometric_unlock = await self._reconcile_credential(enrolled)
        else:
            biometric_unlock = await self._reconcile_credential(enrolled)

        conceal = await _guard(
            self.preferences.get(CONCEAL_TOKENS_KEY), StoreAccessError,
            "Could not read conceal-tokens preference",
        )

        return SettingsSnapshot(
            biometric_unlock=biometric_unlock,
            conceal_tokens=conceal is not None,
        )

    async def _reconcile_credential(self, enrolled: bool) -> bool:
        if not enrolled:
            await _guard(
                self.credentials.remove(), StoreAccessError,
                "Could not remove stale credential",
            )
            logger.info("Biometrics not enrolled; stored credential cleared")

        credential = await _guard(
            self.credentials.get(), StoreAccessError,
            "Could not read stored credential",
        )
        return credential is not None
