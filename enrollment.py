"""
enrollment.py – Biometric enrollment queries.

Desktop platforms expose no portable biometric API, so the default query
reads the ``biometric_enrolled`` configuration key. Platform integrations
only need to provide an object with an ``is_enrolled()`` coroutine.
"""

from errors import EnrollmentQueryError


class StaticEnrollmentQuery:
    """Reports a fixed enrollment state."""

    def __init__(self, enrolled: bool) -> None:
        self.enrolled = enrolled

    async def is_enrolled(self) -> bool:
        return self.enrolled


class ConfigEnrollmentQuery:
    """
    Reads enrollment from ``config.get("biometric_enrolled")`` on every call,
    so a changed configuration is picked up at the next launch.
    """

    def __init__(self, config) -> None:
        self.config = config

    async def is_enrolled(self) -> bool:
        value = self.config.get("biometric_enrolled", False)
        if not isinstance(value, bool):
            raise EnrollmentQueryError(
                f"biometric_enrolled must be true or false, got {value!r}"
            )
        return value
