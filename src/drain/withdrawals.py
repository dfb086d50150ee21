"""
Withdrawal request ledger.

Each allowed wallet gets a lazily created Wallet record holding an
append-only list of requests. Request ids are the wallet's request count at
creation time: dense, 0-based and never reused. Creating a request consumes
budget permanently; there is no cancel or expiry.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .accounts import Signer
from .address import normalize_address
from .amounts import checked_add, require_u64
from .audit import AuditTrail, EventType
from .errors import RequestNotFoundError, WalletNotFoundError
from .models import RequestStatus, Wallet, WithdrawalRequest
from .payload import PayloadEncoder
from .permissions import PermissionLedger
from .store import LedgerStore


logger = logging.getLogger(__name__)


class RequestLedger:
    def __init__(
        self,
        store: LedgerStore,
        permissions: PermissionLedger,
        encoder: PayloadEncoder,
        audit: Optional[AuditTrail] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.store = store
        self.permissions = permissions
        self.encoder = encoder
        self.audit = audit
        self.clock = clock or encoder.clock

    def create_request(
        self,
        requester: Signer,
        wallet: str,
        sequence_number: int,
        receiver: str,
        asset: str,
        amount: int,
    ) -> WithdrawalRequest:
        """Record a withdrawal request and consume ``amount`` of the wallet's budget.

        Checks run in order (wallet allowed, requester owns wallet, budget entry
        exists, budget covers amount); the first failure aborts with no change.
        """
        wallet = normalize_address(wallet)
        receiver = normalize_address(receiver)
        asset = normalize_address(asset)
        requester_address = normalize_address(requester.address)
        require_u64(sequence_number, "sequence_number")
        require_u64(amount, "amount")

        # Allow-set is checked before the registry lookup, which happens outside
        # the write lock; the allow-set check repeats inside the transaction.
        with self.store.reader() as conn:
            self.permissions.require_allowed(conn, wallet)
        owned = self.permissions.registry.owned_by(requester_address)

        with self.store.transaction() as conn:
            self.permissions.require_allowed(conn, wallet)
            self.permissions.verify_owner(requester_address, wallet, owned)
            remaining = self.permissions.require_budget(conn, wallet, asset, amount)

            request_id = self.store.ensure_wallet(conn, wallet)
            request = WithdrawalRequest(
                request_id=request_id,
                receiver=receiver,
                asset=asset,
                amount=amount,
                status=RequestStatus.CREATED,
                payload=self.encoder.encode(wallet, sequence_number, request_id),
                created_at=int(self.clock()),
            )
            self.store.insert_request(conn, wallet, request)
            self.store.set_request_count(conn, wallet, checked_add(request_id, 1))
            left = self.permissions.debit(conn, wallet, asset, remaining, amount)

        logger.info(
            "Withdrawal request %d created for %s: %d of %s to %s (budget left %d)",
            request_id,
            wallet,
            amount,
            asset,
            receiver,
            left,
        )
        if self.audit:
            self.audit.log(
                EventType.REQUEST_CREATED,
                wallet=wallet,
                actor=requester_address,
                asset=asset,
                amount=amount,
                request_id=request_id,
                details={
                    "receiver": receiver,
                    "sequence_number": sequence_number,
                    "payload": "0x" + request.payload.hex(),
                },
                timestamp=request.created_at,
            )
        return request

    def get_wallet(self, wallet: str) -> Wallet:
        wallet = normalize_address(wallet)
        with self.store.reader() as conn:
            count = self.store.get_request_count(conn, wallet)
            if count is None:
                raise WalletNotFoundError(f"No drain wallet for {wallet}")
            requests = self.store.list_requests(conn, wallet)
        return Wallet(address=wallet, request_count=count, withdrawals=tuple(requests))

    def get_requests(self, wallet: str) -> list[WithdrawalRequest]:
        with self.store.reader() as conn:
            return self.store.list_requests(conn, normalize_address(wallet))

    def get_request(self, wallet: str, request_id: int) -> WithdrawalRequest:
        wallet = normalize_address(wallet)
        with self.store.reader() as conn:
            request = self.store.get_request(conn, wallet, request_id)
        if request is None:
            raise RequestNotFoundError(wallet, request_id)
        return request
