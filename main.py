"""
main.py – Application entry point.

This file is intentionally minimal. All logic lives in specialised modules:

  config.py       – AppConfig   : constants, file paths, config I/O, logging
  errors.py       – bootstrap error taxonomy
  contracts.py    – interfaces of the external collaborators
  vault.py        – FileVault   : vault existence, creation and deletion
  credentials.py  – FernetCredentialStore : encrypted unlock credential
  preferences.py  – JsonPreferenceStore   : user preferences
  enrollment.py   – biometric enrollment queries
  assets.py       – image and font preloaders
  reset.py        – ResetDirectiveHandler : wipe local state on request
  reconciler.py   – SettingsConsistencyReconciler : credential/biometric invariant
  bootstrap.py    – BootstrapOrchestrator : concurrent loads + readiness gate
  navigation.py   – VaultSession, Navigator : screen sets and phase switch
  app.py          – Application : wires everything together

To run the application:
    python main.py

Set EINMAL_RESET=1 to wipe all local state on launch.
"""

import asyncio
import sys

from app import Application


def main() -> int:
    """Bootstrap the application and report where it lands."""
    app = Application()
    outcome = asyncio.run(app.start())
    if not outcome.ready:
        print(f"Bootstrap failed: {outcome.failure_kind}", file=sys.stderr)
        for name, error in outcome.errors.items():
            print(f"  {name}: {error}", file=sys.stderr)
        return 1
    if outcome.reset is not None and not outcome.reset.complete:
        print("Reset incomplete: " + ", ".join(outcome.reset.failures), file=sys.stderr)
        for name in outcome.reset.failures:
            print(f"  {name}: {outcome.reset.errors[name]}", file=sys.stderr)
    print(f"Initial screen: {app.navigator.current.value}")
    print(f"Biometric unlock: {outcome.settings.biometric_unlock}")
    print(f"Conceal tokens: {outcome.settings.conceal_tokens}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
