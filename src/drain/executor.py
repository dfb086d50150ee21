"""
Withdrawal execution, called by the multi-party wallet itself.

Flow:
1. Check the wallet is allowed and has a Wallet record
2. Check the request id is in range and still ``created``
3. Move ``amount`` from the wallet to the receiver
4. Require the receiver's balance grew by exactly ``amount``
5. Mark the request ``executed``

Steps 3-5 run inside the asset service's atomic block and the ledger
transaction; any failure leaves funds with the wallet and the request
``created`` for a later attempt.
"""

from __future__ import annotations

import logging
import time
from dataclasses import replace
from typing import Callable, Optional

from .accounts import Signer
from .address import normalize_address
from .amounts import checked_add
from .assets import AssetTransferService
from .audit import AuditTrail, EventType
from .errors import (
    BalanceMismatchError,
    RequestAlreadyExecutedError,
    RequestNotFoundError,
    WalletNotFoundError,
)
from .models import RequestStatus, WithdrawalRequest
from .permissions import PermissionLedger
from .store import LedgerStore


logger = logging.getLogger(__name__)


class WithdrawalExecutor:
    def __init__(
        self,
        store: LedgerStore,
        permissions: PermissionLedger,
        assets: AssetTransferService,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.permissions = permissions
        self.assets = assets
        self.audit = audit
        self.clock = clock or time.time

    def execute(self, executor_signer: Signer, request_id: int) -> WithdrawalRequest:
        wallet = normalize_address(executor_signer.address)

        with self.store.transaction() as conn:
            self.permissions.require_allowed(conn, wallet)
            count = self.store.get_request_count(conn, wallet)
            if count is None:
                raise WalletNotFoundError(f"No drain wallet for {wallet}")
            if isinstance(request_id, bool) or not isinstance(request_id, int):
                raise RequestNotFoundError(wallet, request_id)
            if count == 0 or not 0 <= request_id < count:
                raise RequestNotFoundError(wallet, request_id)
            request = self.store.get_request(conn, wallet, request_id)
            if request is None:
                raise RequestNotFoundError(wallet, request_id)
            if request.status is not RequestStatus.CREATED:
                raise RequestAlreadyExecutedError(wallet, request_id)

            now = int(self.clock())
            with self.assets.atomic():
                before = self.assets.balance_of(request.receiver, request.asset)
                withdrawn = self.assets.withdraw(executor_signer, request.asset, request.amount)
                self.assets.deposit(request.receiver, withdrawn)
                after = self.assets.balance_of(request.receiver, request.asset)
                expected = checked_add(before, request.amount)
                if after != expected:
                    raise BalanceMismatchError(expected, after)
                self.store.mark_executed(conn, wallet, request_id, now)

        executed = replace(request, status=RequestStatus.EXECUTED, executed_at=now)
        logger.info(
            "Withdrawal request %d executed for %s: %d of %s to %s",
            request_id,
            wallet,
            request.amount,
            request.asset,
            request.receiver,
        )
        if self.audit:
            self.audit.log(
                EventType.REQUEST_EXECUTED,
                wallet=wallet,
                actor=wallet,
                asset=request.asset,
                amount=request.amount,
                request_id=request_id,
                details={"receiver": request.receiver},
                timestamp=now,
            )
        return executed
