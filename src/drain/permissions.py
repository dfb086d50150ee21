"""
Wallet whitelist and per-asset withdrawal budgets.

Budgets only grow through administrator grants and only shrink by the
amount of a successfully created withdrawal request.
"""

from __future__ import annotations

import logging
import sqlite3
import time
from typing import Callable, Optional

from .accounts import Signer
from .address import normalize_address
from .amounts import checked_add, checked_sub, require_u64
from .audit import AuditTrail, EventType
from .errors import (
    AssetNotPermittedError,
    BudgetExceededError,
    NotAdministratorError,
    OwnershipNotVerifiedError,
    WalletAlreadyAllowedError,
    WalletNotAllowedError,
    WithdrawalNotAllowedError,
)
from .registry import OwnershipRegistry
from .store import LedgerStore


logger = logging.getLogger(__name__)


class PermissionLedger:
    def __init__(
        self,
        store: LedgerStore,
        registry: OwnershipRegistry,
        admin_address: str,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.registry = registry
        self.admin_address = normalize_address(admin_address)
        self.audit = audit
        self.clock = clock or time.time

    def require_admin(self, admin: Signer) -> None:
        if normalize_address(admin.address) != self.admin_address:
            raise NotAdministratorError(f"{admin.address} is not the administrator")

    def verify_owner(self, owner: str, wallet: str, owned: Optional[set[str]] = None) -> None:
        """Raise unless the registry lists ``owner`` as an owner of ``wallet``."""
        if owned is None:
            owned = self.registry.owned_by(owner)
        if wallet not in {normalize_address(w) for w in owned}:
            raise OwnershipNotVerifiedError(owner, wallet)

    def require_allowed(self, conn: sqlite3.Connection, wallet: str) -> None:
        if not self.store.is_allowed(conn, wallet):
            raise WalletNotAllowedError(wallet)

    def require_budget(self, conn: sqlite3.Connection, wallet: str, asset: str, amount: int) -> int:
        """Return the remaining budget, raising if it cannot cover ``amount``.

        A missing entry is an error here, unlike ``remaining_budget``.
        """
        remaining = self.store.get_budget(conn, wallet, asset)
        if remaining is None:
            if not self.store.has_any_budget(conn, wallet):
                raise WithdrawalNotAllowedError(wallet, asset)
            raise AssetNotPermittedError(wallet, asset)
        if remaining < amount:
            raise BudgetExceededError(amount, remaining)
        return remaining

    def debit(self, conn: sqlite3.Connection, wallet: str, asset: str, remaining: int, amount: int) -> int:
        left = checked_sub(remaining, amount)
        self.store.set_budget(conn, wallet, asset, left)
        return left

    def allow_wallet(self, admin: Signer, wallet: str, claimed_owner: str) -> None:
        """Whitelist ``wallet`` after verifying ``claimed_owner`` owns it."""
        self.require_admin(admin)
        wallet = normalize_address(wallet)
        claimed_owner = normalize_address(claimed_owner)
        self.verify_owner(claimed_owner, wallet)

        now = int(self.clock())
        with self.store.transaction() as conn:
            if self.store.is_allowed(conn, wallet):
                raise WalletAlreadyAllowedError(wallet)
            self.store.add_allowed(conn, wallet, claimed_owner, now)

        logger.info("Wallet allowed: %s (verified owner %s)", wallet, claimed_owner)
        if self.audit:
            self.audit.log(
                EventType.WALLET_ALLOWED,
                wallet=wallet,
                actor=self.admin_address,
                details={"verified_owner": claimed_owner},
                timestamp=now,
            )

    def disallow_wallet(self, admin: Signer, wallet: str) -> None:
        """Remove ``wallet`` from the allow-set. Budgets and requests are kept."""
        self.require_admin(admin)
        wallet = normalize_address(wallet)

        with self.store.transaction() as conn:
            if not self.store.remove_allowed(conn, wallet):
                raise WalletNotAllowedError(wallet)

        logger.info("Wallet disallowed: %s", wallet)
        if self.audit:
            self.audit.log(
                EventType.WALLET_DISALLOWED,
                wallet=wallet,
                actor=self.admin_address,
                timestamp=int(self.clock()),
            )

    def grant_budget(self, admin: Signer, wallet: str, asset: str, amount: int) -> int:
        """Add ``amount`` to the (wallet, asset) budget; returns the new remaining budget."""
        self.require_admin(admin)
        wallet = normalize_address(wallet)
        asset = normalize_address(asset)
        require_u64(amount, "amount")

        with self.store.transaction() as conn:
            self.require_allowed(conn, wallet)
            current = self.store.get_budget(conn, wallet, asset) or 0
            remaining = checked_add(current, amount)
            self.store.set_budget(conn, wallet, asset, remaining)

        logger.info("Budget granted: %s +%d of %s (remaining %d)", wallet, amount, asset, remaining)
        if self.audit:
            self.audit.log(
                EventType.BUDGET_GRANTED,
                wallet=wallet,
                actor=self.admin_address,
                asset=asset,
                amount=amount,
                details={"remaining": remaining},
                timestamp=int(self.clock()),
            )
        return remaining

    def remaining_budget(self, wallet: str, asset: str) -> int:
        """Remaining budget for an allowed wallet; 0 when no entry exists."""
        wallet = normalize_address(wallet)
        asset = normalize_address(asset)
        with self.store.reader() as conn:
            self.require_allowed(conn, wallet)
            return self.store.get_budget(conn, wallet, asset) or 0

    def is_wallet_allowed(self, wallet: str) -> bool:
        with self.store.reader() as conn:
            return self.store.is_allowed(conn, normalize_address(wallet))

    def allowed_wallets(self) -> list[str]:
        with self.store.reader() as conn:
            return self.store.list_allowed(conn)
