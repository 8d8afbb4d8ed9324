"""
config.py – Application configuration and constants.

This module defines AppConfig, a central container for:
  - All application-wide constants (application name, environment variable
    names, default bootstrap limits).
  - The user configuration (reset directive, bootstrap timeout, failure
    policy, asset lists, …) stored as a JSON file on disk and exposed
    through a simple dict-like interface.
  - Helper utilities shared across modules: OS-appropriate data-directory
    resolution, PyInstaller-aware resource-path resolution, and logger setup.

No other application module is imported here, so config.py sits at the bottom
of the dependency graph and can be safely imported by any other module.
"""

import json
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Dict, List, Optional

import appdirs

# ---------------------------------------------------------------------------
# Application-level constants – these never change at runtime.
# ---------------------------------------------------------------------------

APP_NAME = "Einmal"

APP_VERSION = "1.0.0"

# Setting this to 1/true/yes wipes all local state on the next launch.
RESET_ENV_VAR = "EINMAL_RESET"

# Preference key holding the "conceal tokens" flag.
CONCEAL_TOKENS_KEY = "conceal_tokens"

_TRUTHY = {"1", "true", "yes", "on"}

# ---------------------------------------------------------------------------
# Default values written to config.json on first run.
# ---------------------------------------------------------------------------
DEFAULT_CONFIG: dict = {
    # Wipe vault, credential and preferences before bootstrap.
    "reset_on_launch": False,
    # Seconds any single bootstrap load may take (None = wait forever).
    "bootstrap_timeout_seconds": 30.0,
    # What to do when bootstrap fails: "abort" or "retry".
    "bootstrap_failure_policy": "abort",
    # Upper bound on bootstrap runs when the failure policy is "retry".
    "max_bootstrap_attempts": 3,
    # How a partially failed reset is handled: "report" or "strict".
    "reset_policy": "report",
    # Desktop stand-in for the platform biometric enrollment query.
    "biometric_enrolled": False,
    # Image resources preloaded before the first screen.
    "assets": ["resources/padlock.png"],
    # Font name -> resource path preloaded before the first screen.
    "fonts": {},
}


class AppConfig:
    """
    Manages application configuration, file paths and logging.

    On instantiation the class:
      1. Resolves the OS-appropriate user-data directory.
      2. Derives all relevant file paths from that directory.
      3. Sets up a rotating log handler.
      4. Loads (or creates) the JSON configuration file.

    Parameters
    ----------
    data_dir : str, optional
        Overrides the user-data directory (used by tests and portable
        installs).

    Attributes
    ----------
    user_data_dir : str
        Absolute path of the directory that stores all persistent data.
    vault_dir : str
        Directory holding the vault files.
    vault_salt_path : str
        Salt file; its presence marks an existing vault.
    vault_keycheck_path : str
        Key-check token written when the vault is created.
    vault_data_path : str
        Encrypted vault contents.
    credential_path : str
        Encrypted unlock credential used for biometric unlock.
    device_key_path : str
        Per-device key protecting credential_path at rest.
    preferences_path : str
        JSON key-value preference store.
    config_path : str
        JSON configuration file.
    log_path : str
        Rotating application log.
    data : dict
        The currently loaded configuration values (mutable at runtime).
    logger : logging.Logger
        Shared Python logger for the whole application.
    """

    def __init__(self, data_dir: Optional[str] = None) -> None:
        # --- Resolve (and create) the persistent data directory ---
        self.user_data_dir: str = data_dir or self._get_user_data_dir()
        os.makedirs(self.user_data_dir, exist_ok=True)

        # --- Derive all file paths from the data directory ---
        self.vault_dir:           str = os.path.join(self.user_data_dir, "vault")
        self.vault_salt_path:     str = os.path.join(self.vault_dir, "salt.bin")
        self.vault_keycheck_path: str = os.path.join(self.vault_dir, "keycheck.bin")
        self.vault_data_path:     str = os.path.join(self.vault_dir, "vault.enc")
        self.credential_path:     str = os.path.join(self.user_data_dir, "credential.enc")
        self.device_key_path:     str = os.path.join(self.user_data_dir, "device.key")
        self.preferences_path:    str = os.path.join(self.user_data_dir, "preferences.json")
        self.config_path:         str = os.path.join(self.user_data_dir, "config.json")
        self.log_path:            str = os.path.join(self.user_data_dir, "app.log")

        # --- Configure the rotating log handler ---
        self.logger: logging.Logger = self._setup_logger()

        # --- Load or create the JSON configuration ---
        self.data: dict = self._load()

        self.logger.info("AppConfig initialised; data dir: %s", self.user_data_dir)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _get_user_data_dir() -> str:
        """Return the OS-appropriate user-data directory for the app."""
        return appdirs.user_data_dir(APP_NAME)

    def _setup_logger(self) -> logging.Logger:
        """
        Create and configure a rotating file logger for the whole application.

        The log rotates at 2 MB and keeps up to 3 backup files.
        Duplicate handlers are avoided if the logger already exists
        (e.g. a second AppConfig in the same process).
        """
        logger = logging.getLogger(APP_NAME)
        logger.setLevel(logging.DEBUG)

        if not logger.handlers:
            handler = RotatingFileHandler(
                self.log_path,
                maxBytes=2_000_000,
                backupCount=3,
                encoding="utf-8",
            )
            handler.setFormatter(
                logging.Formatter("%(asctime)s %(levelname)s: %(message)s")
            )
            logger.addHandler(handler)

        return logger

    def _load(self) -> dict:
        """
        Read config.json from disk.

        Missing keys are back-filled from DEFAULT_CONFIG so that settings
        introduced in later versions are always present. A corrupt file is
        logged and replaced by the defaults in memory.
        """
        try:
            if os.path.exists(self.config_path):
                with open(self.config_path, "r", encoding="utf-8") as fh:
                    cfg: dict = json.load(fh)
                for key, value in DEFAULT_CONFIG.items():
                    cfg.setdefault(key, value)
                return cfg
        except (OSError, ValueError):
            self.logger.exception("Failed to load config; using defaults")

        return json.loads(json.dumps(DEFAULT_CONFIG))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    def save(self) -> None:
        """Persist the current configuration dictionary to disk as JSON."""
        try:
            with open(self.config_path, "w", encoding="utf-8") as fh:
                json.dump(self.data, fh, indent=2)
            self.logger.info("Config saved")
        except OSError:
            self.logger.exception("Failed to save config")

    def get(self, key: str, default=None):
        """Return a configuration value by key, or *default* if not found."""
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        """
        Update a configuration value in memory.

        Call save() afterwards to persist the change to disk.
        """
        self.data[key] = value

    def should_reset(self) -> bool:
        """
        Return the reset directive for this process.

        True when either the ``reset_on_launch`` key is set or the
        EINMAL_RESET environment variable holds a truthy value.
        """
        env = os.getenv(RESET_ENV_VAR, "").strip().lower()
        return bool(self.get("reset_on_launch", False)) or env in _TRUTHY

    def bootstrap_timeout(self) -> Optional[float]:
        """Per-load timeout in seconds; None or a non-positive value disables it."""
        value = self.get("bootstrap_timeout_seconds")
        if value is None:
            return None
        try:
            value = float(value)
        except (TypeError, ValueError):
            self.logger.warning("Invalid bootstrap_timeout_seconds %r in config; using %s",
                                value, DEFAULT_CONFIG["bootstrap_timeout_seconds"])
            value = DEFAULT_CONFIG["bootstrap_timeout_seconds"]
        return value if value > 0 else None

    def asset_paths(self) -> List[str]:
        """Absolute paths of the configured image resources."""
        return [self.resource_path(p) for p in self.get("assets", [])]

    def font_paths(self) -> Dict[str, str]:
        """Font name -> absolute path of the configured font resources."""
        return {name: self.resource_path(p) for name, p in self.get("fonts", {}).items()}

    @staticmethod
    def resource_path(rel_path: str) -> str:
        """
        Resolve *rel_path* to an absolute path that works both in the
        normal development environment and inside a PyInstaller bundle.

        PyInstaller extracts bundled resources to a temporary directory
        stored in sys._MEIPASS at runtime. Otherwise paths are resolved
        against the directory this module is installed in, never the
        current working directory.
        """
        if os.path.isabs(rel_path):
            return rel_path
        try:
            base = sys._MEIPASS  # type: ignore[attr-defined]  # set by PyInstaller
        except AttributeError:
            base = os.path.dirname(os.path.abspath(__file__))
        return os.path.join(base, rel_path)
