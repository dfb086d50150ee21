"""
Drain application context.

Holds the administrator identity, the custodial signer capability, the
pause flag and the three ledgers. Created once by ``initialize`` (admin
only) and reopened from storage with ``open``; every operation goes
through an instance.

The ``paused`` flag is stored and readable but no operation consults it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from .accounts import (
    LocalResourceAccountFactory,
    ResourceAccountFactory,
    Signer,
    SignerCapability,
)
from .address import normalize_address
from .assets import AssetTransferService, LocalFungibleStore
from .audit import AuditTrail, EventType
from .config import DrainConfig
from .errors import AlreadyInitializedError, NotAdministratorError, NotInitializedError
from .executor import WithdrawalExecutor
from .models import StateFields, Wallet, WithdrawalRequest
from .payload import PayloadEncoder
from .permissions import PermissionLedger
from .registry import AptosRegistryClient, LocalOwnershipRegistry, OwnershipRegistry
from .store import LedgerStore
from .withdrawals import RequestLedger


logger = logging.getLogger(__name__)


def is_initialized(store: LedgerStore) -> bool:
    with store.reader() as conn:
        return store.load_state(conn) is not None


def build_encoder(config: DrainConfig, clock: Optional[Callable[[], float]] = None) -> PayloadEncoder:
    return PayloadEncoder(
        module_address=config.module_address,
        chain_id=config.chain_id,
        clock=clock,
        module_name=config.module_name,
        function_name=config.function_name,
        max_gas=config.max_gas,
        gas_price=config.gas_price,
        expiration_secs=config.expiration_secs,
        frame_arguments=config.frame_arguments,
    )


class DrainContext:
    def __init__(
        self,
        config: DrainConfig,
        store: LedgerStore,
        registry: OwnershipRegistry,
        assets: AssetTransferService,
        capability: SignerCapability,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.config = config
        self.store = store
        self.capability = capability
        self.audit = audit
        self.clock = clock or time.time
        self.encoder = build_encoder(config, self.clock)
        self.permissions = PermissionLedger(
            store, registry, config.admin_address, audit=audit, clock=self.clock
        )
        self.requests = RequestLedger(
            store, self.permissions, self.encoder, audit=audit, clock=self.clock
        )
        self.executor = WithdrawalExecutor(
            store, self.permissions, assets, audit=audit, clock=self.clock
        )

    @classmethod
    def initialize(
        cls,
        admin: Signer,
        config: DrainConfig,
        store: LedgerStore,
        registry: OwnershipRegistry,
        assets: AssetTransferService,
        factory: Optional[ResourceAccountFactory] = None,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> DrainContext:
        """Create the drain state; only the configured administrator may call it, once."""
        if normalize_address(admin.address) != config.admin_address:
            raise NotAdministratorError(f"{admin.address} is not the administrator")
        factory = factory or LocalResourceAccountFactory()
        now = int((clock or time.time)())

        with store.transaction() as conn:
            if store.load_state(conn) is not None:
                raise AlreadyInitializedError("Drain state already initialized")
            resource_address, capability = factory.create(admin, config.resource_seed)
            store.insert_state(conn, config.admin_address, normalize_address(resource_address), now)

        logger.info("Drain initialized: admin %s, resource account %s", config.admin_address, resource_address)
        if audit:
            audit.log(
                EventType.STATE_INITIALIZED,
                actor=config.admin_address,
                details={"resource_address": normalize_address(resource_address)},
                timestamp=now,
            )
        return cls(config, store, registry, assets, capability, audit=audit, clock=clock)

    @classmethod
    def open(
        cls,
        config: DrainConfig,
        store: LedgerStore,
        registry: OwnershipRegistry,
        assets: AssetTransferService,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> DrainContext:
        with store.reader() as conn:
            state = store.load_state(conn)
        if state is None:
            raise NotInitializedError("Drain state is not initialized")
        if state.admin_address != config.admin_address:
            raise NotAdministratorError(
                f"State belongs to administrator {state.admin_address}, not {config.admin_address}"
            )
        capability = SignerCapability(account=state.resource_address)
        return cls(config, store, registry, assets, capability, audit=audit, clock=clock)

    @staticmethod
    def local_collaborators(
        config: DrainConfig,
    ) -> tuple[LedgerStore, OwnershipRegistry, AssetTransferService, AuditTrail]:
        """File-backed store, registry, asset store and audit trail under ``config.home``.

        When ``config.registry_url`` is set the registry is read over REST instead.
        """
        store = LedgerStore(config.state_path)
        if config.registry_url:
            registry: OwnershipRegistry = AptosRegistryClient(base_url=config.registry_url)
        else:
            registry = LocalOwnershipRegistry(config.registry_path)
        assets = LocalFungibleStore(config.assets_path)
        audit = AuditTrail(config.audit_path, config.audit_key_path)
        return store, registry, assets, audit

    # ── Administrative ─────────────────────────────────────────────

    def allow_wallet(self, admin: Signer, wallet: str, claimed_owner: str) -> None:
        self.permissions.allow_wallet(admin, wallet, claimed_owner)

    def disallow_wallet(self, admin: Signer, wallet: str) -> None:
        self.permissions.disallow_wallet(admin, wallet)

    def grant_budget(self, admin: Signer, wallet: str, asset: str, amount: int) -> int:
        return self.permissions.grant_budget(admin, wallet, asset, amount)

    # ── Wallet owner / wallet self ─────────────────────────────────

    def create_request(
        self,
        requester: Signer,
        wallet: str,
        sequence_number: int,
        receiver: str,
        asset: str,
        amount: int,
    ) -> WithdrawalRequest:
        return self.requests.create_request(
            requester, wallet, sequence_number, receiver, asset, amount
        )

    def execute_request(self, wallet_signer: Signer, request_id: int) -> WithdrawalRequest:
        return self.executor.execute(wallet_signer, request_id)

    # ── Read-only ──────────────────────────────────────────────────

    def is_initialized(self) -> bool:
        return is_initialized(self.store)

    def state(self) -> StateFields:
        with self.store.reader() as conn:
            state = self.store.load_state(conn)
        if state is None:
            raise NotInitializedError("Drain state is not initialized")
        return state

    def is_paused(self) -> bool:
        return self.state().paused

    def get_state_fields(self) -> tuple[str, bool]:
        """``(resource account address, paused)``."""
        state = self.state()
        return state.resource_address, state.paused

    def is_wallet_allowed(self, wallet: str) -> bool:
        return self.permissions.is_wallet_allowed(wallet)

    def get_wallet(self, wallet: str) -> Wallet:
        return self.requests.get_wallet(wallet)

    def get_remaining_budget(self, wallet: str, asset: str) -> int:
        return self.permissions.remaining_budget(wallet, asset)

    def get_requests_for_wallet(self, wallet: str) -> list[WithdrawalRequest]:
        return self.requests.get_requests(wallet)

    def preview_encode(
        self,
        wallet: str,
        sequence_number: int,
        request_id: int,
        now: Optional[int] = None,
    ) -> bytes:
        """Encode a payload without touching ledger state."""
        return self.encoder.encode(wallet, sequence_number, request_id, now=now)
