"""Tests for ledger initialization and read-only accessors."""

import pytest

from drain.accounts import LocalAccount, derive_resource_address
from drain.audit import EventType
from drain.config import DEFAULT_RESOURCE_SEED, DrainConfig
from drain.context import DrainContext, is_initialized
from drain.errors import AlreadyInitializedError, NotAdministratorError, NotInitializedError
from drain.store import LedgerStore


ADMIN = LocalAccount.generate()
OTHER = LocalAccount.generate()


def make_config(tmp_path, admin=ADMIN, **kwargs):
    return DrainConfig(
        admin_address=admin.address,
        module_address=admin.address,
        home=tmp_path / "drain",
        **kwargs,
    )


class TestInitialize:
    def test_initialize_creates_state(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, audit = DrainContext.local_collaborators(config)
        assert not is_initialized(store)

        ctx = DrainContext.initialize(ADMIN, config, store, registry, assets, audit=audit)

        resource_address, paused = ctx.get_state_fields()
        assert resource_address == derive_resource_address(ADMIN.address, DEFAULT_RESOURCE_SEED)
        assert ctx.capability.address == resource_address
        assert paused is False
        assert ctx.is_paused() is False
        assert ctx.is_initialized()
        assert ctx.state().admin_address == ADMIN.address

        events = audit.read_events(event_type=EventType.STATE_INITIALIZED)
        assert events[0].details == {"resource_address": resource_address}

    def test_only_admin_can_initialize(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        with pytest.raises(NotAdministratorError):
            DrainContext.initialize(OTHER, config, store, registry, assets)
        assert not is_initialized(store)

    def test_initialize_once(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        DrainContext.initialize(ADMIN, config, store, registry, assets)
        with pytest.raises(AlreadyInitializedError) as exc:
            DrainContext.initialize(ADMIN, config, store, registry, assets)
        assert exc.value.code == 114


class TestOpen:
    def test_open_before_initialize(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        with pytest.raises(NotInitializedError):
            DrainContext.open(config, store, registry, assets)

    def test_reopen_sees_persisted_state(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        first = DrainContext.initialize(ADMIN, config, store, registry, assets)

        reopened = DrainContext.open(config, LedgerStore(config.state_path), registry, assets)
        assert reopened.get_state_fields() == first.get_state_fields()
        assert reopened.capability == first.capability

    def test_open_with_different_admin(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        DrainContext.initialize(ADMIN, config, store, registry, assets)

        with pytest.raises(NotAdministratorError):
            DrainContext.open(make_config(tmp_path, admin=OTHER), store, registry, assets)


class TestPreviewEncode:
    def test_uses_config(self, tmp_path):
        config = make_config(tmp_path, chain_id=2, frame_arguments=True)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        ctx = DrainContext.initialize(ADMIN, config, store, registry, assets)

        payload = ctx.preview_encode("0x1", 0, 9, now=100)
        assert payload[-1] == 2
        assert len(payload) == 156

    def test_does_not_touch_state(self, tmp_path):
        config = make_config(tmp_path)
        store, registry, assets, _audit = DrainContext.local_collaborators(config)
        ctx = DrainContext.initialize(ADMIN, config, store, registry, assets)
        ctx.preview_encode("0x1", 0, 0, now=100)
        assert ctx.get_requests_for_wallet("0x1") == []
        assert not ctx.is_wallet_allowed("0x1")


class TestConfig:
    def test_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DRAIN_ADMIN_ADDRESS", ADMIN.address)
        monkeypatch.setenv("DRAIN_MODULE_ADDRESS", "0x2")
        monkeypatch.setenv("DRAIN_CHAIN_ID", "4")
        monkeypatch.setenv("DRAIN_HOME", str(tmp_path / "home"))

        config = DrainConfig.from_env()
        assert config.admin_address == ADMIN.address
        assert config.module_address == "0x" + "0" * 63 + "2"
        assert config.chain_id == 4
        assert config.state_path == tmp_path / "home" / "state.sqlite3"
        assert config.audit_key_path == tmp_path / ".drain-secrets" / "audit_hmac.key"

    def test_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DRAIN_CHAIN_ID", "4")
        assert DrainConfig.from_env(chain_id=7, home=tmp_path).chain_id == 7

    def test_rejects_bad_address(self):
        with pytest.raises(ValueError):
            DrainConfig(admin_address="0xnothex")
