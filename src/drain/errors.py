"""
Drain error types.

Every failure aborts the whole operation. Each exception carries the
numeric abort ``code`` the on-ledger module reports, so callers can
match either on the class hierarchy or on the code.
"""

from __future__ import annotations

from typing import Optional


class DrainError(Exception):
    """Base error for all drain operations."""

    code: Optional[int] = None


# Authorization errors
class AuthorizationError(DrainError):
    """Caller is not the administrator, a verified owner, or the wallet itself."""
    pass


class NotAdministratorError(AuthorizationError):
    """Signer is not the fixed administrator identity."""

    code = 100


class OwnershipNotVerifiedError(AuthorizationError):
    """Ownership registry does not list the address as an owner of the wallet."""

    code = 101

    def __init__(self, owner: str, wallet: str):
        self.owner = owner
        self.wallet = wallet
        super().__init__(f"{owner} is not a verified owner of wallet {wallet}")


# Lookup errors
class NotFoundError(DrainError):
    """Unknown wallet, request id, or entry whose absence is an error."""
    pass


class WalletNotFoundError(NotFoundError):
    """No Wallet record exists (the wallet never created a request)."""

    code = 107


class RequestNotFoundError(NotFoundError):
    """Request id is outside the wallet's recorded range."""

    code = 108

    def __init__(self, wallet: str, request_id: int):
        self.wallet = wallet
        self.request_id = request_id
        super().__init__(f"No withdrawal request {request_id} for wallet {wallet}")


# Whitelist errors
class NotAllowedError(DrainError):
    """Wallet or asset is not whitelisted."""
    pass


class WalletNotAllowedError(NotAllowedError, NotFoundError):
    """Wallet is not in the allow-set."""

    code = 103

    def __init__(self, wallet: str):
        self.wallet = wallet
        super().__init__(f"Wallet {wallet} is not allowed")


class AssetNotPermittedError(NotAllowedError, NotFoundError):
    """No budget entry exists for the (wallet, asset) pair."""

    code = 105

    def __init__(self, wallet: str, asset: str, message: Optional[str] = None):
        self.wallet = wallet
        self.asset = asset
        super().__init__(message or f"Asset {asset} is not permitted for wallet {wallet}")


class WithdrawalNotAllowedError(AssetNotPermittedError):
    """Wallet has never been granted a budget for any asset."""

    code = 104

    def __init__(self, wallet: str, asset: str):
        super().__init__(wallet, asset, f"No withdrawal budget granted to wallet {wallet}")


# Budget errors
class BudgetError(DrainError):
    """Base error for budget violations."""
    pass


class BudgetExceededError(BudgetError):
    """Amount exceeds the remaining budget."""

    code = 106

    def __init__(self, amount: int, remaining: int):
        self.amount = amount
        self.remaining = remaining
        super().__init__(f"Amount {amount} exceeds remaining budget {remaining}")


# State errors
class StateError(DrainError):
    """Operation conflicts with the current lifecycle state."""
    pass


class RequestAlreadyExecutedError(StateError):
    """Withdrawal request is already in its terminal state."""

    code = 109

    def __init__(self, wallet: str, request_id: int):
        self.wallet = wallet
        self.request_id = request_id
        super().__init__(f"Withdrawal request {request_id} for wallet {wallet} already executed")


class WalletAlreadyAllowedError(StateError):
    """Wallet is already in the allow-set."""

    code = 111

    def __init__(self, wallet: str):
        self.wallet = wallet
        super().__init__(f"Wallet {wallet} is already allowed")


class NotInitializedError(StateError):
    """Drain state has not been initialized."""

    code = 113


class AlreadyInitializedError(StateError):
    """Drain state was already initialized."""

    code = 114


# Invariant errors
class InvariantViolation(DrainError):
    """An internal invariant would be broken; the operation is aborted."""
    pass


class BalanceMismatchError(InvariantViolation):
    """Receiver balance did not grow by exactly the requested amount."""

    code = 110

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Receiver balance is {actual} after transfer, expected {expected}")


class AmountOverflowError(InvariantViolation):
    """Bounded integer arithmetic would overflow or underflow."""

    code = 112


# Collaborator errors
class AssetTransferError(DrainError):
    """Asset transfer service failed."""
    pass


class InsufficientBalanceError(AssetTransferError):
    """Account does not hold enough of the asset."""

    def __init__(self, account: str, asset: str, amount: int, balance: int):
        self.account = account
        self.asset = asset
        self.amount = amount
        self.balance = balance
        super().__init__(f"{account} holds {balance} of {asset}, cannot withdraw {amount}")


class RegistryError(DrainError):
    """Ownership registry could not be read."""
    pass
