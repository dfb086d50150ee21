"""Ownership registry clients: who owns which multi-party wallet."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Protocol

import httpx

from .address import normalize_address
from .errors import RegistryError
from .storage import (
    atomic_write_json,
    ensure_private_dir,
    ensure_private_file,
    exclusive_lock,
    read_json,
)


logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_STATE_PATH = Path.home() / ".drain" / "registry.json"

# MSafe deployer account on mainnet.
MSAFE_MODULES_ACCOUNT = "0xaa90e0d9d16b63ba4a289fb0dc8d1b454058b21c9b5c76864f825d5c1f32582e"
MAINNET_FULLNODE_URL = "https://fullnode.mainnet.aptoslabs.com/v1"


class OwnershipRegistry(Protocol):
    def owned_by(self, owner: str) -> set[str]: ...


class LocalOwnershipRegistry:
    """File-backed stand-in for the on-chain ownership registry.

    Keeps both the owned and the pending wallet sets per owner; only the owned
    set counts for authorization.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path = path or DEFAULT_REGISTRY_STATE_PATH
        ensure_private_dir(self.path.parent)
        self._lock_path = self.path.parent / ".registry.lock"
        ensure_private_file(self._lock_path)
        if not self.path.exists():
            atomic_write_json(self.path, {"owners": {}})

    def register(self, owner: str, wallet: str, pending: bool = False) -> None:
        normalized_owner = normalize_address(owner)
        normalized_wallet = normalize_address(wallet)
        key = "pendings" if pending else "msafes"

        with exclusive_lock(self._lock_path):
            state = read_json(self.path)
            entry = state.setdefault("owners", {}).setdefault(
                normalized_owner, {"msafes": [], "pendings": []}
            )
            wallets = set(entry.get(key, []))
            wallets.add(normalized_wallet)
            entry[key] = sorted(wallets)
            if not pending and normalized_wallet in entry.get("pendings", []):
                entry["pendings"] = [w for w in entry["pendings"] if w != normalized_wallet]
            atomic_write_json(self.path, state)

    def unregister(self, owner: str, wallet: str) -> None:
        normalized_owner = normalize_address(owner)
        normalized_wallet = normalize_address(wallet)

        with exclusive_lock(self._lock_path):
            state = read_json(self.path)
            entry = state.get("owners", {}).get(normalized_owner)
            if entry is None:
                return
            for key in ("msafes", "pendings"):
                entry[key] = [w for w in entry.get(key, []) if w != normalized_wallet]
            atomic_write_json(self.path, state)

    def get_owned_wallets(self, owner: str) -> tuple[list[str], list[str]]:
        """Return ``(pendings, owned)`` for an owner."""
        normalized_owner = normalize_address(owner)

        with exclusive_lock(self._lock_path):
            state = read_json(self.path)
        entry = state.get("owners", {}).get(normalized_owner, {})
        return list(entry.get("pendings", [])), list(entry.get("msafes", []))

    def owned_by(self, owner: str) -> set[str]:
        _pendings, owned = self.get_owned_wallets(owner)
        return set(owned)


class AptosRegistryClient:
    """Reads the MSafe ``registry::OwnerMomentumSafes`` resource over fullnode REST.

    The resource holds two table-maps (``msafes`` and ``pendings``) whose
    elements are stored in a table keyed by u64 index.
    """

    def __init__(
        self,
        base_url: str = MAINNET_FULLNODE_URL,
        modules_account: str = MSAFE_MODULES_ACCOUNT,
        timeout_seconds: float = 30.0,
        http: Optional[httpx.Client] = None,
    ):
        self.modules_account = normalize_address(modules_account)
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout_seconds)

    @property
    def resource_type(self) -> str:
        return f"{self.modules_account}::registry::OwnerMomentumSafes"

    @property
    def element_type(self) -> str:
        return f"{self.modules_account}::table_map::Element<address, bool>"

    def _get_resource(self, owner: str) -> Optional[dict]:
        try:
            response = self._http.get(f"/accounts/{owner}/resource/{self.resource_type}")
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry request failed: {e}") from e
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise RegistryError(
                f"Registry returned {response.status_code} for {owner}: {response.text[:200]}"
            )
        return response.json().get("data", {})

    def _table_item(self, handle: str, index: int) -> dict:
        body = {
            "key_type": "u64",
            "value_type": self.element_type,
            "key": str(index),
        }
        try:
            response = self._http.post(f"/tables/{handle}/item", json=body)
        except httpx.HTTPError as e:
            raise RegistryError(f"Registry table read failed: {e}") from e
        if response.status_code != 200:
            raise RegistryError(
                f"Registry table {handle}[{index}] returned {response.status_code}"
            )
        return response.json()

    def _read_table_map(self, table_map: dict) -> list[str]:
        data = (table_map or {}).get("data") or {}
        length = int(data.get("length", 0))
        handle = (data.get("inner") or {}).get("handle")
        if not length or not handle:
            return []
        return [
            normalize_address(self._table_item(handle, i)["key"])
            for i in range(length)
        ]

    def get_owned_wallets(self, owner: str) -> tuple[list[str], list[str]]:
        """Return ``(pendings, owned)`` for an owner; unregistered owners own nothing."""
        normalized_owner = normalize_address(owner)
        resource = self._get_resource(normalized_owner)
        if resource is None:
            return [], []
        pendings = self._read_table_map(resource.get("pendings", {}))
        owned = self._read_table_map(resource.get("msafes", {}))
        logger.debug(
            "Registry lookup for %s: %d owned, %d pending",
            normalized_owner,
            len(owned),
            len(pendings),
        )
        return pendings, owned

    def owned_by(self, owner: str) -> set[str]:
        """Owned wallets only; the pending table-map is not read."""
        resource = self._get_resource(normalize_address(owner))
        if resource is None:
            return set()
        return set(self._read_table_map(resource.get("msafes", {})))

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
