"""Tests for the settings consistency reconciler."""

import asyncio

import pytest

from errors import EnrollmentQueryError, StoreAccessError
from reconciler import SettingsConsistencyReconciler, SettingsSnapshot
from tests.fakes import FakeCredentialStore, FakeEnrollment, FakePreferences


class RaisingEnrollment:
    async def is_enrolled(self) -> bool:
        raise RuntimeError("sensor service unavailable")


class TestSettingsConsistencyReconciler:

    @pytest.mark.asyncio
    async def test_not_enrolled_removes_stale_credential(self):
        creds = FakeCredentialStore(b"secret")
        rec = SettingsConsistencyReconciler(FakeEnrollment(False), creds, FakePreferences())

        snapshot = await rec.reconcile()

        assert creds.credential is None
        assert snapshot.biometric_unlock is False
        # Removal happens before the presence read.
        assert creds.calls == ["remove", "get"]

    @pytest.mark.asyncio
    async def test_not_enrolled_without_credential_is_fine(self):
        creds = FakeCredentialStore(None)
        rec = SettingsConsistencyReconciler(FakeEnrollment(False), creds, FakePreferences())

        snapshot = await rec.reconcile()

        assert snapshot == SettingsSnapshot(biometric_unlock=False, conceal_tokens=False)

    @pytest.mark.asyncio
    async def test_enrolled_keeps_credential(self):
        creds = FakeCredentialStore(b"secret")
        rec = SettingsConsistencyReconciler(FakeEnrollment(True), creds, FakePreferences())

        snapshot = await rec.reconcile()

        assert snapshot.biometric_unlock is True
        assert creds.credential == b"secret"
        assert "remove" not in creds.calls

    @pytest.mark.asyncio
    async def test_enrolled_without_credential(self):
        rec = SettingsConsistencyReconciler(
            FakeEnrollment(True), FakeCredentialStore(None), FakePreferences()
        )

        snapshot = await rec.reconcile()

        assert snapshot.biometric_unlock is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("stored, expected", [
        (None, False),
        (True, True),
        ("true", True),
        (False, True),  # any stored value counts as present
    ])
    async def test_conceal_tokens_uses_presence(self, stored, expected):
        values = {} if stored is None else {"conceal_tokens": stored}
        rec = SettingsConsistencyReconciler(
            FakeEnrollment(True), FakeCredentialStore(), FakePreferences(values)
        )

        snapshot = await rec.reconcile()

        assert snapshot.conceal_tokens is expected

    @pytest.mark.asyncio
    async def test_enrollment_failure_propagates(self):
        rec = SettingsConsistencyReconciler(
            FakeEnrollment(fail=True), FakeCredentialStore(b"x"), FakePreferences()
        )

        with pytest.raises(EnrollmentQueryError):
            await rec.reconcile()

    @pytest.mark.asyncio
    async def test_untyped_enrollment_failure_is_wrapped(self):
        rec = SettingsConsistencyReconciler(
            RaisingEnrollment(), FakeCredentialStore(b"x"), FakePreferences()
        )

        with pytest.raises(EnrollmentQueryError) as excinfo:
            await rec.reconcile()

        assert isinstance(excinfo.value.cause, RuntimeError)

    @pytest.mark.asyncio
    async def test_credential_remove_failure_propagates(self):
        rec = SettingsConsistencyReconciler(
            FakeEnrollment(False), FakeCredentialStore(b"x", fail_remove=True), FakePreferences()
        )

        with pytest.raises(StoreAccessError):
            await rec.reconcile()

    @pytest.mark.asyncio
    async def test_preference_failure_propagates(self):
        rec = SettingsConsistencyReconciler(
            FakeEnrollment(True), FakeCredentialStore(), FakePreferences(fail_get=True)
        )

        with pytest.raises(StoreAccessError):
            await rec.reconcile()

    @pytest.mark.asyncio
    async def test_credential_lock_is_held_while_reconciling(self):
        lock = asyncio.Lock()
        creds = FakeCredentialStore(b"secret")
        observed = []

        original_get = creds.get

        async def get_and_observe():
            observed.append(lock.locked())
            return await original_get()

        creds.get = get_and_observe
        rec = SettingsConsistencyReconciler(
            FakeEnrollment(False), creds, FakePreferences(), credential_lock=lock
        )

        await rec.reconcile()

        assert observed == [True]
        assert not lock.locked()
