"""
bootstrap.py – Concurrent application bootstrap.

BootstrapOrchestrator decides what state the application is in before the
first screen renders:

  1. If the reset directive is set, wipe vault, credential and preferences.
  2. Run four independent loads concurrently on the event loop:
       - vault existence check
       - settings reconciliation (see reconciler.py)
       - image asset preload
       - font preload
  3. Once all four have finished successfully, publish the results and open
     the readiness gate. The gate opens at most once per session.

Every load outcome is collected, successful or not; a failing load never
cancels the others. When any load fails the bootstrap enters a terminal
failed state carrying the error kind, and the readiness gate stays closed.
Whether a failed bootstrap may be retried is an explicit FailurePolicy
choice. Each load can be bounded by a timeout so a hung collaborator ends
in a failed state instead of an endless splash screen.
"""

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from config import APP_NAME
from contracts import AssetPreloader, FontPreloader, VaultExistenceService
from errors import (
    AssetLoadError,
    BootstrapError,
    BootstrapTimeoutError,
    StoreAccessError,
)
from reconciler import SettingsConsistencyReconciler, SettingsSnapshot
from reset import ResetDirectiveHandler, ResetResult

logger = logging.getLogger(APP_NAME)

VAULT_TASK = "vault"
SETTINGS_TASK = "settings"
ASSETS_TASK = "assets"
FONTS_TASK = "fonts"
RESET_TASK = "reset"

# Declaration order; the first failed task in this order names the failure.
LOAD_TASKS = (VAULT_TASK, SETTINGS_TASK, ASSETS_TASK, FONTS_TASK)

# Error class used when a task fails with an exception outside the taxonomy.
_DEFAULT_ERROR = {
    VAULT_TASK: StoreAccessError,
    SETTINGS_TASK: StoreAccessError,
    ASSETS_TASK: AssetLoadError,
    FONTS_TASK: AssetLoadError,
    RESET_TASK: StoreAccessError,
}


class Stage(enum.Enum):
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class FailurePolicy(enum.Enum):
    """What happens after a failed bootstrap."""

    ABORT = "abort"  # the failure is final
    RETRY = "retry"  # the loads may be run again, up to max_attempts runs


@dataclass(frozen=True)
class BootstrapState:
    """
    Observable bootstrap state.

    Attributes
    ----------
    stage : Stage
    attempt : int
        Number of bootstrap runs started so far (1-based once running).
    failure_kind : str or None
        ``kind`` of the error that failed the bootstrap.
    errors : dict
        Task name -> error for every failed task of the last run.
    final : bool
        True when the bootstrap failed and will not be retried.
    """

    stage: Stage
    attempt: int = 0
    failure_kind: Optional[str] = None
    errors: Dict[str, BootstrapError] = field(default_factory=dict)
    final: bool = False


@dataclass(frozen=True)
class BootstrapOutcome:
    """Result of one bootstrap run."""

    ready: bool
    vault_present: Optional[bool] = None
    settings: Optional[SettingsSnapshot] = None
    reset: Optional[ResetResult] = None
    failure_kind: Optional[str] = None
    errors: Dict[str, BootstrapError] = field(default_factory=dict)


class ReadinessGate:
    """Monotonic readiness flag: closed until opened, then open for good."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def is_ready(self) -> bool:
        return self._event.is_set()

    def open(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class BootstrapOrchestrator:
    """
    Runs the reset directive and the four concurrent loads, then gates
    readiness on their joint success.

    Parameters
    ----------
    vault : VaultExistenceService
    reconciler : SettingsConsistencyReconciler
    asset_preloader : AssetPreloader
    font_preloader : FontPreloader
    reset_handler : ResetDirectiveHandler
    should_reset : bool
        The reset directive, read once at process start by the caller.
    assets : sequence of str
        Resource references passed to the asset preloader.
    fonts : dict
        Font name -> resource reference passed to the font preloader.
    timeout : float, optional
        Seconds each load may take; None waits forever.
    failure_policy : FailurePolicy
    max_attempts : int
        Upper bound on runs under FailurePolicy.RETRY.
    """

    def __init__(
        self,
        vault: VaultExistenceService,
        reconciler: SettingsConsistencyReconciler,
        asset_preloader: AssetPreloader,
        font_preloader: FontPreloader,
        reset_handler: ResetDirectiveHandler,
        should_reset: bool = False,
        assets: Sequence[str] = (),
        fonts: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        failure_policy: FailurePolicy = FailurePolicy.ABORT,
        max_attempts: int = 1,
    ) -> None:
        self.vault = vault
        self.reconciler = reconciler
        self.asset_preloader = asset_preloader
        self.font_preloader = font_preloader
        self.reset_handler = reset_handler
        self.should_reset = should_reset
        self.assets = list(assets)
        self.fonts = dict(fonts or {})
        self.timeout = timeout
        self.failure_policy = failure_policy
        self.max_attempts = max(1, max_attempts)

        self.readiness = ReadinessGate()
        self.state = BootstrapState(stage=Stage.LOADING)
        self.outcome: Optional[BootstrapOutcome] = None

        self._reset_result: Optional[ResetResult] = None
        self._reset_done = False
        self._running = False
        self._listeners: List[Callable[[BootstrapState], None]] = []

    # ------------------------------------------------------------------
    # State observation
    # ------------------------------------------------------------------

    def subscribe(self, listener: Callable[[BootstrapState], None]) -> None:
        """Call *listener* with the new BootstrapState on every change."""
        self._listeners.append(listener)

    def _set_state(self, state: BootstrapState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    @property
    def can_retry(self) -> bool:
        return (
            self.state.stage is Stage.FAILED
            and not self.state.final
            and self.failure_policy is FailurePolicy.RETRY
            and self.state.attempt < self.max_attempts
        )

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    async def run(self) -> BootstrapOutcome:
        """
        Run the bootstrap once.

        Returns the outcome; never raises for collaborator failures, which
        are reported through the failed state instead. Calling run() after
        a successful bootstrap returns the existing outcome.
        """
        if self.state.stage is Stage.READY and self.outcome is not None:
            return self.outcome
        if self._running:
            raise RuntimeError("Bootstrap is already running")
        if self.state.stage is Stage.FAILED:
            raise RuntimeError("Bootstrap already failed; use retry() or abort()")
        return await self._execute()

    async def retry(self) -> BootstrapOutcome:
        """Re-run a failed bootstrap. Only allowed while can_retry is True."""
        if not self.can_retry:
            raise RuntimeError("Bootstrap cannot be retried in its current state")
        logger.info("Retrying bootstrap (attempt %d of %d)", self.state.attempt + 1, self.max_attempts)
        return await self._execute()

    def abort(self) -> None:
        """Mark a failed bootstrap as final."""
        if self.state.stage is not Stage.FAILED:
            raise RuntimeError("Only a failed bootstrap can be aborted")
        if not self.state.final:
            self._set_state(BootstrapState(
                stage=Stage.FAILED,
                attempt=self.state.attempt,
                failure_kind=self.state.failure_kind,
                errors=self.state.errors,
                final=True,
            ))
            logger.error("Bootstrap aborted after %d attempt(s): %s",
                         self.state.attempt, self.state.failure_kind)

    async def run_with_policy(self) -> BootstrapOutcome:
        """Run, retry while the policy allows it, and abort on final failure."""
        outcome = await self.run()
        while not outcome.ready and self.can_retry:
            outcome = await self.retry()
        if not outcome.ready:
            self.abort()
        return outcome

    async def _execute(self) -> BootstrapOutcome:
        self._running = True
        attempt = self.state.attempt + 1
        self._set_state(BootstrapState(stage=Stage.LOADING, attempt=attempt))
        logger.info("Bootstrap started (attempt %d)", attempt)
        try:
            outcome = await self._run_loads()
        finally:
            self._running = False
        self.outcome = outcome

        if outcome.ready:
            self._set_state(BootstrapState(stage=Stage.READY, attempt=attempt))
            self.readiness.open()
            logger.info("Bootstrap ready; vault present: %s", outcome.vault_present)
        else:
            final = self.failure_policy is FailurePolicy.ABORT or attempt >= self.max_attempts
            self._set_state(BootstrapState(
                stage=Stage.FAILED,
                attempt=attempt,
                failure_kind=outcome.failure_kind,
                errors=outcome.errors,
                final=final,
            ))
            logger.error("Bootstrap failed (%s): %s", outcome.failure_kind,
                         "; ".join(f"{name}: {err}" for name, err in outcome.errors.items()))
        return outcome

    async def _run_loads(self) -> BootstrapOutcome:
        if not self._reset_done:
            try:
                # The reset handler bounds each of its operations itself.
                self._reset_result = await self._classified(
                    RESET_TASK, self.reset_handler.run(self.should_reset)
                )
                self._reset_done = True
            except BootstrapError as exc:
                return BootstrapOutcome(
                    ready=False,
                    reset=getattr(exc, "result", None),
                    failure_kind=exc.kind,
                    errors={RESET_TASK: exc},
                )

        loads = {
            VAULT_TASK: self.vault.exists(),
            SETTINGS_TASK: self.reconciler.reconcile(),
            ASSETS_TASK: self.asset_preloader.load(self.assets),
            FONTS_TASK: self.font_preloader.load(self.fonts),
        }
        results = await asyncio.gather(
            *(self._guarded(name, coro) for name, coro in loads.items()),
            return_exceptions=True,
        )
        outcomes = dict(zip(loads, results))

        errors: Dict[str, BootstrapError] = {}
        for name in LOAD_TASKS:
            result = outcomes[name]
            if isinstance(result, BaseException):
                if not isinstance(result, BootstrapError):
                    raise result
                errors[name] = result

        if errors:
            first = next(name for name in LOAD_TASKS if name in errors)
            return BootstrapOutcome(
                ready=False,
                reset=self._reset_result,
                failure_kind=errors[first].kind,
                errors=errors,
            )

        return BootstrapOutcome(
            ready=True,
            vault_present=bool(outcomes[VAULT_TASK]),
            settings=outcomes[SETTINGS_TASK],
            reset=self._reset_result,
        )

    async def _classified(self, name: str, coro):
        """Await *coro*, mapping failures outside the taxonomy onto it."""
        try:
            return await coro
        except BootstrapError:
            raise
        except Exception as exc:
            logger.exception("Unexpected failure in bootstrap task %s", name)
            raise _DEFAULT_ERROR[name](f"{name} failed: {exc}", exc) from exc

    async def _guarded(self, name: str, coro):
        """
        Await *coro* with the configured timeout and map every failure onto
        the BootstrapError taxonomy.

        A TimeoutError raised by the collaborator itself is classified by
        _classified() before wait_for sees it, so only an expired wait_for
        becomes a BootstrapTimeoutError.
        """
        inner = self._classified(name, coro)
        if self.timeout is None:
            return await inner
        try:
            return await asyncio.wait_for(inner, self.timeout)
        except asyncio.TimeoutError as exc:
            raise BootstrapTimeoutError(
                f"{name} did not finish within {self.timeout}s", exc
            ) from exc
