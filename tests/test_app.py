"""End-to-end tests of Application wiring with the file-backed adapters."""

import asyncio

import pytest

import main as main_module
from app import Application
from bootstrap import FailurePolicy, Stage
from config import AppConfig, RESET_ENV_VAR
from enrollment import StaticEnrollmentQuery
from navigation import Phase, Screen
from reset import ResetPolicy
from vault import FileVault
from tests.fakes import FakeVault


@pytest.fixture
def config(tmp_path, monkeypatch):
    monkeypatch.delenv(RESET_ENV_VAR, raising=False)
    image = tmp_path / "padlock.png"
    image.write_bytes(b"\x89PNG\r\n\x1a\n")
    cfg = AppConfig(data_dir=str(tmp_path / "data"))
    cfg.set("assets", [str(image)])
    return cfg


class TestApplication:

    @pytest.mark.asyncio
    async def test_first_launch_lands_on_welcome(self, config):
        app = Application(config)

        outcome = await app.start()

        assert outcome.ready
        assert app.bootstrap.readiness.is_ready
        assert app.navigator.current is Screen.WELCOME
        assert outcome.settings.biometric_unlock is False

    @pytest.mark.asyncio
    async def test_existing_vault_unlock_flow(self, config):
        await FileVault(config).create("correct horse")
        app = Application(config, enrollment=StaticEnrollmentQuery(True))
        await app.credentials.set(b"bio-secret")
        await app.preferences.set("conceal_tokens", True)

        outcome = await app.start()

        assert app.navigator.current is Screen.AUTHENTICATION
        assert outcome.settings.biometric_unlock is True
        assert outcome.settings.conceal_tokens is True

        assert await app.unlock("wrong") is False
        assert app.session.phase is Phase.PRE_VAULT

        assert await app.unlock("correct horse") is True
        assert app.navigator.current is Screen.HOME
        assert app.session.phase is Phase.POST_VAULT

    @pytest.mark.asyncio
    async def test_unenrolled_device_drops_stale_credential(self, config):
        app = Application(config, enrollment=StaticEnrollmentQuery(False))
        await app.credentials.set(b"stale")

        outcome = await app.start()

        assert outcome.settings.biometric_unlock is False
        assert await app.credentials.get() is None

    @pytest.mark.asyncio
    async def test_biometric_unlock_refused_without_enrollment(self, config):
        app = Application(config, enrollment=StaticEnrollmentQuery(False))

        assert await app.enable_biometric_unlock(b"secret") is False
        assert await app.credentials.get() is None

    @pytest.mark.asyncio
    async def test_reset_directive_wipes_state(self, config, monkeypatch):
        await FileVault(config).create("pw")
        seed = Application(config, enrollment=StaticEnrollmentQuery(True))
        await seed.credentials.set(b"secret")
        await seed.preferences.set("conceal_tokens", True)

        monkeypatch.setenv(RESET_ENV_VAR, "1")
        app = Application(config, enrollment=StaticEnrollmentQuery(True))

        outcome = await app.start()

        assert outcome.reset.complete
        assert outcome.vault_present is False
        assert app.navigator.current is Screen.WELCOME
        assert await app.credentials.get() is None
        assert await app.preferences.get("conceal_tokens") is None

    @pytest.mark.asyncio
    async def test_missing_asset_fails_explicitly(self, config, tmp_path):
        config.set("assets", [str(tmp_path / "nope.png")])
        app = Application(config)

        outcome = await app.start()

        assert not outcome.ready
        assert app.navigator is None
        assert app.bootstrap.state.stage is Stage.FAILED
        assert app.bootstrap.state.failure_kind == "asset_load"
        assert app.bootstrap.state.final

    def test_policies_read_from_config(self, config):
        config.set("bootstrap_failure_policy", "retry")
        config.set("max_bootstrap_attempts", 4)
        config.set("reset_policy", "strict")

        app = Application(config)

        assert app.bootstrap.failure_policy is FailurePolicy.RETRY
        assert app.bootstrap.max_attempts == 4
        assert app.reset_handler.policy is ResetPolicy.STRICT

    def test_invalid_policy_falls_back_to_default(self, config):
        config.set("bootstrap_failure_policy", "panic")

        app = Application(config)

        assert app.bootstrap.failure_policy is FailurePolicy.ABORT

    def test_malformed_attempt_limit_falls_back_to_default(self, config):
        config.set("max_bootstrap_attempts", "lots")

        app = Application(config)

        assert app.bootstrap.max_attempts == 3

    def test_reset_handler_shares_the_load_timeout(self, config):
        config.set("bootstrap_timeout_seconds", 2.5)

        app = Application(config)

        assert app.reset_handler.timeout == 2.5
        assert app.bootstrap.timeout == 2.5

    @pytest.mark.asyncio
    async def test_default_assets_load_from_any_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.delenv(RESET_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        app = Application(AppConfig(data_dir=str(tmp_path / "data")))

        outcome = await app.start()

        assert outcome.ready
        assert app.navigator.current is Screen.WELCOME


class SequenceEnrollment:
    """Answers the enrollment query from a fixed sequence."""

    def __init__(self, answers) -> None:
        self.answers = list(answers)

    async def is_enrolled(self) -> bool:
        return self.answers.pop(0)


class RecordingCredentialStore:
    """Credential store with a slow remove that logs every call boundary."""

    def __init__(self, credential=None) -> None:
        self.credential = credential
        self.events = []

    async def get(self):
        self.events.append("get")
        return self.credential

    async def set(self, credential: bytes) -> None:
        self.events.append("set")
        self.credential = credential

    async def remove(self) -> None:
        self.events.append("remove-start")
        await asyncio.sleep(0.05)
        self.credential = None
        self.events.append("remove-end")


class TestCredentialLock:

    @pytest.mark.asyncio
    async def test_enable_waits_for_reconciliation_to_finish(self, config):
        """The write lands after the stale-credential check, not inside it."""
        app = Application(config, enrollment=SequenceEnrollment([False, True]))
        store = RecordingCredentialStore(b"stale")
        app.credentials = store
        app.reconciler.credentials = store

        reconcile = asyncio.create_task(app.reconciler.reconcile())
        await asyncio.sleep(0.01)
        enable = asyncio.create_task(app.enable_biometric_unlock(b"new"))

        snapshot = await reconcile
        enabled = await enable

        assert store.events == ["remove-start", "remove-end", "get", "set"]
        assert snapshot.biometric_unlock is False
        assert enabled is True
        assert store.credential == b"new"


class TestEntryPoint:

    def test_incomplete_reset_is_printed(self, config, monkeypatch, capsys):
        monkeypatch.setenv(RESET_ENV_VAR, "1")

        def build():
            app = Application(config)
            app.reset_handler.vault = FakeVault(present=True, fail_delete=True)
            return app

        monkeypatch.setattr(main_module, "Application", build)

        assert main_module.main() == 0

        err = capsys.readouterr().err
        assert "Reset incomplete: vault" in err
        assert "vault delete failed" in err

    def test_failed_bootstrap_exits_nonzero(self, config, tmp_path, monkeypatch, capsys):
        config.set("assets", [str(tmp_path / "nope.png")])
        monkeypatch.setattr(main_module, "Application", lambda: Application(config))

        assert main_module.main() == 1
        assert "Bootstrap failed: asset_load" in capsys.readouterr().err
