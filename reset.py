"""
reset.py – Reset directive handling.

When the reset directive is set, all local state is wiped before the rest
of the bootstrap runs: the vault is deleted, the unlock credential removed
and the preference store cleared. The three operations are independent and
dispatched concurrently; every one of them is allowed to settle, and the
outcome of each is reported in a ResetResult instead of being lost.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from config import APP_NAME
from contracts import KeyValueStore, SecureCredentialStore, VaultExistenceService
from errors import BootstrapTimeoutError, ResetIncompleteError

logger = logging.getLogger(APP_NAME)


class ResetPolicy(enum.Enum):
    """How a partially failed reset is treated."""

    REPORT = "report"  # log the failures and continue bootstrapping
    STRICT = "strict"  # raise ResetIncompleteError and fail the bootstrap


@dataclass(frozen=True)
class ResetResult:
    """
    Outcome of a reset.

    Attributes
    ----------
    vault_deleted, credential_removed, storage_cleared : bool
        Whether each individual operation succeeded.
    errors : dict
        Operation name -> exception for every failed operation.
    """

    vault_deleted: bool
    credential_removed: bool
    storage_cleared: bool
    errors: Dict[str, BaseException] = field(default_factory=dict)

    @property
    def complete(self) -> bool:
        return self.vault_deleted and self.credential_removed and self.storage_cleared

    @property
    def failures(self) -> List[str]:
        return sorted(self.errors)


class ResetDirectiveHandler:
    """
    Wipes vault, credential and preferences when asked to.

    Parameters
    ----------
    vault : VaultExistenceService
    credentials : SecureCredentialStore
    preferences : KeyValueStore
    policy : ResetPolicy
        Defaults to ResetPolicy.REPORT.
    timeout : float, optional
        Seconds each operation may take. An operation that runs over is
        recorded as failed; the others are unaffected.
    """

    def __init__(self, vault: VaultExistenceService, credentials: SecureCredentialStore,
                 preferences: KeyValueStore, policy: ResetPolicy = ResetPolicy.REPORT,
                 timeout: Optional[float] = None) -> None:
        self.vault = vault
        self.credentials = credentials
        self.preferences = preferences
        self.policy = policy
        self.timeout = timeout

    async def _bounded(self, name: str, coro) -> None:
        if self.timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, self.timeout)
        except asyncio.TimeoutError as exc:
            raise BootstrapTimeoutError(
                f"reset of {name} did not finish within {self.timeout}s", exc
            ) from exc

    async def run(self, should_reset: bool) -> Optional[ResetResult]:
        """
        Perform the reset if *should_reset* is True.

        Returns None when no reset was requested, otherwise the ResetResult.
        Under ResetPolicy.STRICT an incomplete reset raises
        ResetIncompleteError carrying the result.
        """
        if not should_reset:
            return None

        logger.info("Reset directive set; wiping local state")
        names = ("vault", "credential", "preferences")
        outcomes = await asyncio.gather(
            self._bounded("vault", self.vault.delete()),
            self._bounded("credential", self.credentials.remove()),
            self._bounded("preferences", self.preferences.clear()),
            return_exceptions=True,
        )

        errors: Dict[str, BaseException] = {}
        for name, outcome in zip(names, outcomes):
            if isinstance(outcome, BaseException):
                # Cancellation is not a reset failure; let it through.
                if isinstance(outcome, asyncio.CancelledError):
                    raise outcome
                errors[name] = outcome
                logger.error("Reset of %s failed: %s", name, outcome)

        result = ResetResult(
            vault_deleted="vault" not in errors,
            credential_removed="credential" not in errors,
            storage_cleared="preferences" not in errors,
            errors=errors,
        )

        if result.complete:
            logger.info("Reset completed")
            return result

        if self.policy is ResetPolicy.STRICT:
            raise ResetIncompleteError(
                "Reset incomplete: " + ", ".join(result.failures), result
            )
        logger.error("Reset incomplete (%s); continuing bootstrap", ", ".join(result.failures))
        return result
