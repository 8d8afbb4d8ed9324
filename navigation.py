"""
navigation.py – Navigation state machine.

The application has two mutually exclusive sets of screens:

  PRE_VAULT   Welcome, AuthenticationSetup, Authentication
  POST_VAULT  Home, Sorting, BarcodeScanner, Settings

Which set is reachable is decided by the VaultSession, a single-writer cell
that the authentication flow flips once the vault is unlocked. The flip is
one-directional; nothing in this module can go back to PRE_VAULT.

Which PRE_VAULT screen the user lands on is decided once, right after the
bootstrap is ready: Authentication when a vault exists, Welcome otherwise.
"""

import enum
import logging
from typing import Callable, List

from config import APP_NAME

logger = logging.getLogger(APP_NAME)


class Screen(enum.Enum):
    WELCOME = "Welcome"
    AUTHENTICATION_SETUP = "AuthenticationSetup"
    AUTHENTICATION = "Authentication"
    HOME = "Home"
    SORTING = "Sorting"
    BARCODE_SCANNER = "BarcodeScanner"
    SETTINGS = "Settings"


class Phase(enum.Enum):
    PRE_VAULT = "pre_vault"
    POST_VAULT = "post_vault"

    @property
    def screens(self) -> frozenset:
        return _PHASE_SCREENS[self]


_PHASE_SCREENS = {
    Phase.PRE_VAULT: frozenset({Screen.WELCOME, Screen.AUTHENTICATION_SETUP, Screen.AUTHENTICATION}),
    Phase.POST_VAULT: frozenset({Screen.HOME, Screen.SORTING, Screen.BARCODE_SCANNER, Screen.SETTINGS}),
}

# First screen shown after the vault is unlocked.
POST_VAULT_ROOT = Screen.HOME


class UnreachableScreenError(Exception):
    """Raised when navigating to a screen outside the active phase."""

    def __init__(self, screen: Screen, phase: Phase) -> None:
        super().__init__(f"{screen.value} is not reachable in phase {phase.value}")
        self.screen = screen
        self.phase = phase


class NotReadyError(Exception):
    """Raised when navigation is requested before the bootstrap is ready."""


def initial_route(vault_present: bool) -> Screen:
    """Authentication when a vault exists, Welcome otherwise."""
    return Screen.AUTHENTICATION if vault_present else Screen.WELCOME


class VaultSession:
    """
    Owns the "vault unlocked" state.

    The authentication flow is the only writer (via mark_unlocked());
    everyone else reads ``phase``/``unlocked`` or subscribes to the unlock
    event.
    """

    def __init__(self) -> None:
        self._unlocked = False
        self._subscribers: List[Callable[[Phase], None]] = []

    @property
    def unlocked(self) -> bool:
        return self._unlocked

    @property
    def phase(self) -> Phase:
        return Phase.POST_VAULT if self._unlocked else Phase.PRE_VAULT

    def subscribe(self, callback: Callable[[Phase], None]) -> None:
        self._subscribers.append(callback)

    def mark_unlocked(self) -> None:
        """Switch to POST_VAULT. Repeated calls are ignored."""
        if self._unlocked:
            return
        self._unlocked = True
        logger.info("Vault unlocked; switching to post-vault screens")
        for callback in list(self._subscribers):
            callback(Phase.POST_VAULT)


class Navigator:
    """
    Screen stack confined to the session's active phase.

    Parameters
    ----------
    session : VaultSession
    vault_present : bool
        Vault presence observed by the bootstrap; only used to pick the
        initial route and never re-evaluated.
    """

    def __init__(self, session: VaultSession, vault_present: bool) -> None:
        self.session = session
        self.initial = initial_route(vault_present)
        if session.unlocked:
            self._stack: List[Screen] = [POST_VAULT_ROOT]
        else:
            self._stack = [self.initial]
        session.subscribe(self._on_phase_change)

    @classmethod
    def from_bootstrap(cls, outcome, session: VaultSession) -> "Navigator":
        """Build a navigator from a successful BootstrapOutcome."""
        if outcome is None or not outcome.ready:
            raise NotReadyError("Bootstrap has not completed successfully")
        return cls(session, outcome.vault_present)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def phase(self) -> Phase:
        return self.session.phase

    @property
    def current(self) -> Screen:
        return self._stack[-1]

    @property
    def stack(self) -> List[Screen]:
        return list(self._stack)

    def is_reachable(self, screen: Screen) -> bool:
        return screen in self.phase.screens

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def navigate(self, screen: Screen) -> None:
        """Push *screen*; raises UnreachableScreenError outside the active phase."""
        if not self.is_reachable(screen):
            raise UnreachableScreenError(screen, self.phase)
        self._stack.append(screen)

    def back(self) -> bool:
        """Pop the current screen. Returns False when already at the root."""
        if len(self._stack) == 1:
            return False
        self._stack.pop()
        return True

    def _on_phase_change(self, phase: Phase) -> None:
        # The whole pre-vault stack is discarded, not pushed onto.
        if phase is Phase.POST_VAULT:
            self._stack = [POST_VAULT_ROOT]
