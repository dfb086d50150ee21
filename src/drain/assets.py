"""Fungible asset transfer service."""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import ContextManager, Iterator, Optional, Protocol

from .accounts import Signer
from .address import normalize_address
from .amounts import checked_add, checked_sub, require_u64
from .errors import AssetTransferError, InsufficientBalanceError
from .storage import (
    atomic_write_json,
    ensure_private_dir,
    ensure_private_file,
    exclusive_lock,
    read_json,
)


logger = logging.getLogger(__name__)

DEFAULT_ASSET_STATE_PATH = Path.home() / ".drain" / "assets.json"

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class FungibleAsset:
    """Withdrawn, not yet deposited, amount of one asset."""

    asset: str
    amount: int


class AssetTransferService(Protocol):
    def balance_of(self, account: str, asset: str) -> int: ...

    def withdraw(self, signer: Signer, asset: str, amount: int) -> FungibleAsset: ...

    def deposit(self, account: str, assets: FungibleAsset) -> None: ...

    def atomic(self) -> ContextManager[None]: ...


class LocalFungibleStore:
    """File-backed primary-store stand-in for local development and tests.

    Balances live in a JSON file guarded by an exclusive lock. Inside
    ``atomic()`` all calls operate on one in-memory copy that is written back
    only if the block exits cleanly.

    ``deposit_fee_bps`` models assets that deduct a fee on deposit.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path or DEFAULT_ASSET_STATE_PATH
        ensure_private_dir(self.path.parent)
        self._lock_path = self.path.parent / ".assets.lock"
        ensure_private_file(self._lock_path)
        self._local = threading.local()
        if not self.path.exists():
            atomic_write_json(self.path, {"balances": {}, "deposit_fee_bps": {}})

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if getattr(self._local, "state", None) is not None:
            yield
            return
        with exclusive_lock(self._lock_path):
            self._local.state = read_json(self.path)
            try:
                yield
                atomic_write_json(self.path, self._local.state)
            finally:
                self._local.state = None

    @contextmanager
    def _state(self) -> Iterator[dict]:
        with self.atomic():
            yield self._local.state

    def set_deposit_fee(self, asset: str, fee_bps: int) -> None:
        if not 0 <= fee_bps <= BPS_DENOMINATOR:
            raise ValueError(f"fee_bps must be between 0 and {BPS_DENOMINATOR}")
        with self._state() as state:
            state.setdefault("deposit_fee_bps", {})[normalize_address(asset)] = fee_bps

    def _get(self, state: dict, account: str, asset: str) -> int:
        return int(state["balances"].get(account, {}).get(asset, "0"))

    def _set(self, state: dict, account: str, asset: str, amount: int) -> None:
        state["balances"].setdefault(account, {})[asset] = str(amount)

    def mint(self, account: str, asset: str, amount: int) -> None:
        account = normalize_address(account)
        asset = normalize_address(asset)
        require_u64(amount, "amount")
        with self._state() as state:
            current = self._get(state, account, asset)
            self._set(state, account, asset, checked_add(current, amount))
        logger.info("Minted %d of %s to %s", amount, asset, account)

    def balance_of(self, account: str, asset: str) -> int:
        with self._state() as state:
            return self._get(state, normalize_address(account), normalize_address(asset))

    def withdraw(self, signer: Signer, asset: str, amount: int) -> FungibleAsset:
        account = normalize_address(signer.address)
        asset = normalize_address(asset)
        require_u64(amount, "amount")
        with self._state() as state:
            balance = self._get(state, account, asset)
            if balance < amount:
                raise InsufficientBalanceError(account, asset, amount, balance)
            self._set(state, account, asset, checked_sub(balance, amount))
        return FungibleAsset(asset=asset, amount=amount)

    def deposit(self, account: str, assets: FungibleAsset) -> None:
        account = normalize_address(account)
        if assets.amount < 0:
            raise AssetTransferError("Cannot deposit a negative amount")
        with self._state() as state:
            fee_bps = int(state.get("deposit_fee_bps", {}).get(assets.asset, 0))
            fee = assets.amount * fee_bps // BPS_DENOMINATOR
            current = self._get(state, account, assets.asset)
            self._set(state, account, assets.asset, checked_add(current, assets.amount - fee))
