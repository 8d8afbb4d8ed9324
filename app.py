"""
app.py – Application wiring.

Application creates every subsystem in dependency order and exposes the
three things the rendering layer needs: the bootstrap (state, readiness
gate and SettingsSnapshot), the VaultSession, and – once the bootstrap is
ready – the Navigator.

  AppConfig
    ├─ FileVault, FernetCredentialStore, JsonPreferenceStore
    ├─ ConfigEnrollmentQuery, FileAssetPreloader, FileFontPreloader
    ├─ ResetDirectiveHandler, SettingsConsistencyReconciler
    └─ BootstrapOrchestrator → Navigator
"""

import asyncio
import enum
import logging
from typing import Optional

from assets import FileAssetPreloader, FileFontPreloader
from bootstrap import BootstrapOrchestrator, BootstrapOutcome, FailurePolicy
from config import APP_NAME, DEFAULT_CONFIG, AppConfig
from credentials import FernetCredentialStore
from enrollment import ConfigEnrollmentQuery
from navigation import Navigator, VaultSession
from preferences import JsonPreferenceStore
from reconciler import SettingsConsistencyReconciler
from reset import ResetDirectiveHandler, ResetPolicy
from vault import FileVault

logger = logging.getLogger(APP_NAME)


def _enum_setting(config: AppConfig, key: str, enum_cls, default: enum.Enum):
    value = config.get(key, default.value)
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning("Invalid %s %r in config; using %s", key, value, default.value)
        return default


def _int_setting(config: AppConfig, key: str, default: int) -> int:
    value = config.get(key, default)
    try:
        return int(value)
    except (TypeError, ValueError):
        logger.warning("Invalid %s %r in config; using %s", key, value, default)
        return default


class Application:
    """
    Top-level object that owns all subsystems.

    Parameters
    ----------
    config : AppConfig, optional
        Created with the default data directory when omitted.
    enrollment : BiometricEnrollmentQuery, optional
        Platform enrollment query; defaults to the config-driven one.
    """

    def __init__(self, config: Optional[AppConfig] = None, enrollment=None) -> None:
        # ----------------------------------------------------------------
        # 1. Configuration and the reset directive (read exactly once).
        # ----------------------------------------------------------------
        self.config = config or AppConfig()
        self.should_reset: bool = self.config.should_reset()

        # ----------------------------------------------------------------
        # 2. External stores and services.
        # ----------------------------------------------------------------
        self.vault       = FileVault(self.config)
        self.credentials = FernetCredentialStore(self.config)
        self.preferences = JsonPreferenceStore(self.config)
        self.enrollment  = enrollment or ConfigEnrollmentQuery(self.config)
        self.asset_preloader = FileAssetPreloader()
        self.font_preloader  = FileFontPreloader()

        # Shared by the reconciler and the authentication flow below.
        self.credential_lock = asyncio.Lock()

        # ----------------------------------------------------------------
        # 3. Bootstrap core.
        # ----------------------------------------------------------------
        self.reset_handler = ResetDirectiveHandler(
            self.vault, self.credentials, self.preferences,
            policy=_enum_setting(self.config, "reset_policy", ResetPolicy, ResetPolicy.REPORT),
            timeout=self.config.bootstrap_timeout(),
        )
        self.reconciler = SettingsConsistencyReconciler(
            self.enrollment, self.credentials, self.preferences,
            credential_lock=self.credential_lock,
        )
        self.bootstrap = BootstrapOrchestrator(
            self.vault,
            self.reconciler,
            self.asset_preloader,
            self.font_preloader,
            self.reset_handler,
            should_reset=self.should_reset,
            assets=self.config.asset_paths(),
            fonts=self.config.font_paths(),
            timeout=self.config.bootstrap_timeout(),
            failure_policy=_enum_setting(
                self.config, "bootstrap_failure_policy", FailurePolicy, FailurePolicy.ABORT
            ),
            max_attempts=_int_setting(
                self.config, "max_bootstrap_attempts", DEFAULT_CONFIG["max_bootstrap_attempts"]
            ),
        )

        # ----------------------------------------------------------------
        # 4. Navigation; the navigator exists only after a ready bootstrap.
        # ----------------------------------------------------------------
        self.session = VaultSession()
        self.navigator: Optional[Navigator] = None

    async def start(self) -> BootstrapOutcome:
        """Run the bootstrap under the configured policy and build the navigator."""
        outcome = await self.bootstrap.run_with_policy()
        if outcome.ready:
            self.navigator = Navigator.from_bootstrap(outcome, self.session)
            logger.info("Initial screen: %s", self.navigator.current.value)
        return outcome

    # ------------------------------------------------------------------
    # Authentication flow hooks
    # ------------------------------------------------------------------

    async def unlock(self, password: str) -> bool:
        """
        Verify *password* against the vault and, on success, switch the
        session to the post-vault screens.
        """
        if not await self.vault.verify_password(password):
            logger.warning("Vault unlock failed: wrong password")
            return False
        self.session.mark_unlocked()
        return True

    async def enable_biometric_unlock(self, credential: bytes) -> bool:
        """
        Store *credential* for biometric unlock.

        Refused (returns False) while no biometrics are enrolled, so the
        stored credential never outlives the enrollment that authorised it.
        """
        async with self.credential_lock:
            if not await self.enrollment.is_enrolled():
                logger.warning("Biometric unlock not enabled: no biometrics enrolled")
                return False
            await self.credentials.set(credential)
        return True
