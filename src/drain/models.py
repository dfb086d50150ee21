"""Ledger records."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class RequestStatus(str, Enum):
    CREATED = "created"
    EXECUTED = "executed"


@dataclass(frozen=True)
class WithdrawalRequest:
    """A bounded intent to move one asset to one receiver.

    ``payload`` is computed once at creation and never recomputed.
    """

    request_id: int
    receiver: str
    asset: str
    amount: int
    status: RequestStatus
    payload: bytes
    created_at: int = 0
    executed_at: int = 0

    @property
    def is_executed(self) -> bool:
        return self.status is RequestStatus.EXECUTED

    def to_dict(self) -> dict:
        return {
            "request_id": self.request_id,
            "receiver": self.receiver,
            "asset": self.asset,
            "amount": self.amount,
            "status": self.status.value,
            "payload": "0x" + self.payload.hex(),
            "created_at": self.created_at,
            "executed_at": self.executed_at,
        }


@dataclass(frozen=True)
class Wallet:
    """Per-wallet request log; a request's position is its id."""

    address: str
    request_count: int
    withdrawals: tuple[WithdrawalRequest, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "request_count": self.request_count,
            "withdrawals": [w.to_dict() for w in self.withdrawals],
        }


@dataclass(frozen=True)
class StateFields:
    admin_address: str
    resource_address: str
    paused: bool
    initialized_at: int
