"""
Drain: budgeted withdrawal requests for multi-party wallets.

An administrator whitelists wallets and grants per-asset budgets;
wallet owners record withdrawal requests with pre-encoded payloads;
the wallet itself executes them once its owners have co-signed.
"""

__version__ = "0.1.0"

from .accounts import LocalAccount, MultisigAccount, SignerCapability
from .assets import FungibleAsset, LocalFungibleStore
from .audit import AuditTrail, EventType
from .config import DrainConfig
from .context import DrainContext
from .models import RequestStatus, Wallet, WithdrawalRequest
from .payload import PayloadEncoder
from .registry import AptosRegistryClient, LocalOwnershipRegistry
from .store import LedgerStore

__all__ = [
    "LocalAccount", "MultisigAccount", "SignerCapability",
    "FungibleAsset", "LocalFungibleStore",
    "AuditTrail", "EventType",
    "DrainConfig", "DrainContext",
    "RequestStatus", "Wallet", "WithdrawalRequest",
    "PayloadEncoder",
    "AptosRegistryClient", "LocalOwnershipRegistry",
    "LedgerStore",
]
