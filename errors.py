"""
errors.py – Exception taxonomy for the bootstrap.

Every failure that can stop the application from reaching its first screen
is expressed as a subclass of BootstrapError. Each class carries a short
``kind`` string so the bootstrap can report *what* went wrong in its
terminal failed state without inspecting exception types.
"""

from typing import Optional


class BootstrapError(Exception):
    """
    Base class for all bootstrap failures.

    Attributes
    ----------
    kind : str
        Stable machine-readable name of the failure category.
    """

    kind = "bootstrap"

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message)
        self.cause: Optional[BaseException] = cause


class StoreAccessError(BootstrapError):
    """A read, write or delete on an external store failed."""

    kind = "store_access"


class EnrollmentQueryError(BootstrapError):
    """The platform biometric enrollment query failed."""

    kind = "enrollment_query"


class AssetLoadError(BootstrapError):
    """An image or font resource could not be read or decoded."""

    kind = "asset_load"


class BootstrapTimeoutError(BootstrapError):
    """A bootstrap load or reset operation did not finish within the configured timeout."""

    kind = "timeout"


class ResetIncompleteError(BootstrapError):
    """
    Raised under the strict reset policy when at least one of the reset
    operations failed.

    Attributes
    ----------
    result : ResetResult
        The aggregated outcome of all three reset operations.
    """

    kind = "reset_incomplete"

    def __init__(self, message: str, result) -> None:
        super().__init__(message)
        self.result = result
