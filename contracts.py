"""
contracts.py – Interfaces of the collaborators used by the bootstrap.

The bootstrap core never knows how the vault, the credential store or the
preference store are implemented; it only calls the coroutine methods
declared here. File-backed implementations live in vault.py,
credentials.py, preferences.py, enrollment.py and assets.py; the test
suite supplies in-memory fakes.

Implementations signal failure by raising, preferably one of the typed
errors from errors.py.
"""

from typing import Dict, Optional, Protocol, Sequence


class VaultExistenceService(Protocol):
    async def exists(self) -> bool: ...

    async def delete(self) -> None: ...


class SecureCredentialStore(Protocol):
    async def get(self) -> Optional[bytes]: ...

    async def set(self, credential: bytes) -> None: ...

    async def remove(self) -> None:
        """Delete the credential; removing an absent credential is not an error."""
        ...


class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[object]: ...

    async def clear(self) -> None: ...


class BiometricEnrollmentQuery(Protocol):
    async def is_enrolled(self) -> bool: ...


class AssetPreloader(Protocol):
    async def load(self, resources: Sequence[str]) -> None: ...


class FontPreloader(Protocol):
    async def load(self, fonts: Dict[str, str]) -> None: ...
