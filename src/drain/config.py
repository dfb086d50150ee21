"""Runtime configuration for the drain ledger."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .address import normalize_address
from .amounts import require_u64, require_u8


DEFAULT_HOME = Path.home() / ".drain"

# Seed used to derive the module's resource account.
DEFAULT_RESOURCE_SEED = b"from_msafe_resource_signer_seed"

DEFAULT_MODULE_NAME = "drain"
DEFAULT_FUNCTION_NAME = "withdraw"
DEFAULT_MAX_GAS = 12000
DEFAULT_GAS_PRICE = 120
WEEK_IN_SECS = 604800

MAINNET_CHAIN_ID = 1
# Placeholder administrator/deployer for local development.
DEV_ADDRESS = "0x" + "0" * 63 + "a"


@dataclass
class DrainConfig:
    admin_address: str = DEV_ADDRESS
    module_address: str = DEV_ADDRESS
    chain_id: int = MAINNET_CHAIN_ID
    home: Path = field(default_factory=lambda: DEFAULT_HOME)
    resource_seed: bytes = DEFAULT_RESOURCE_SEED
    module_name: str = DEFAULT_MODULE_NAME
    function_name: str = DEFAULT_FUNCTION_NAME
    max_gas: int = DEFAULT_MAX_GAS
    gas_price: int = DEFAULT_GAS_PRICE
    expiration_secs: int = WEEK_IN_SECS
    # Write the standard (count, length) framing around the call argument.
    frame_arguments: bool = False
    registry_url: Optional[str] = None

    def __post_init__(self) -> None:
        self.admin_address = normalize_address(self.admin_address)
        self.module_address = normalize_address(self.module_address)
        self.home = Path(self.home)
        require_u8(self.chain_id, "chain_id")
        require_u64(self.max_gas, "max_gas")
        require_u64(self.gas_price, "gas_price")
        require_u64(self.expiration_secs, "expiration_secs")

    @property
    def state_path(self) -> Path:
        return self.home / "state.sqlite3"

    @property
    def registry_path(self) -> Path:
        return self.home / "registry.json"

    @property
    def assets_path(self) -> Path:
        return self.home / "assets.json"

    @property
    def audit_path(self) -> Path:
        return self.home / "audit.jsonl"

    @property
    def audit_key_path(self) -> Path:
        return self.home.parent / ".drain-secrets" / "audit_hmac.key"

    @classmethod
    def from_env(cls, **overrides) -> DrainConfig:
        """Build config from ``DRAIN_*`` environment variables; keyword overrides win."""
        values: dict = {}
        if os.getenv("DRAIN_ADMIN_ADDRESS"):
            values["admin_address"] = os.environ["DRAIN_ADMIN_ADDRESS"]
        if os.getenv("DRAIN_MODULE_ADDRESS"):
            values["module_address"] = os.environ["DRAIN_MODULE_ADDRESS"]
        if os.getenv("DRAIN_CHAIN_ID"):
            values["chain_id"] = int(os.environ["DRAIN_CHAIN_ID"])
        if os.getenv("DRAIN_HOME"):
            values["home"] = Path(os.environ["DRAIN_HOME"])
        if os.getenv("DRAIN_REGISTRY_URL"):
            values["registry_url"] = os.environ["DRAIN_REGISTRY_URL"]
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
