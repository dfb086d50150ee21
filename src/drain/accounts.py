"""
Signing identities and the resource-account factory.

Addresses follow the account authentication-key scheme: the SHA3-256 of the
public key material followed by a one-byte scheme tag.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import Mapping, Protocol, Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .address import address_bytes, address_from_bytes, normalize_address


ED25519_SCHEME = b"\x00"
MULTI_ED25519_SCHEME = b"\x01"
DERIVE_RESOURCE_ACCOUNT_SCHEME = b"\xff"

MAX_MULTISIG_KEYS = 32


class Signer(Protocol):
    """An authenticated account identity."""

    @property
    def address(self) -> str: ...


class LocalAccount:
    """Single Ed25519 key account."""

    def __init__(self, private_key: ed25519.Ed25519PrivateKey):
        self._key = private_key
        self.public_key_bytes = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )
        digest = hashlib.sha3_256(self.public_key_bytes + ED25519_SCHEME).digest()
        self._address = address_from_bytes(digest)

    @classmethod
    def generate(cls) -> LocalAccount:
        return cls(ed25519.Ed25519PrivateKey.generate())

    @classmethod
    def from_private_key(cls, private_key_hex: str) -> LocalAccount:
        raw = private_key_hex.strip()
        if raw.startswith("0x"):
            raw = raw[2:]
        if len(raw) != 64:
            raise ValueError("Private key must be a 32-byte hex string")
        return cls(ed25519.Ed25519PrivateKey.from_private_bytes(bytes.fromhex(raw)))

    @property
    def address(self) -> str:
        return self._address

    @property
    def private_key_hex(self) -> str:
        raw = self._key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return "0x" + raw.hex()

    def sign(self, message: bytes) -> bytes:
        return self._key.sign(message)

    def __repr__(self) -> str:
        return f"LocalAccount({self._address})"


def verify_signature(public_key: bytes, message: bytes, signature: bytes) -> bool:
    try:
        ed25519.Ed25519PublicKey.from_public_bytes(public_key).verify(signature, message)
    except (InvalidSignature, ValueError):
        return False
    return True


@dataclass(frozen=True)
class MultisigAccount:
    """K-of-N Ed25519 multi-party account.

    Signatures are collected outside this package; an instance stands for the
    wallet's own authenticated identity once its owners have approved.
    """

    public_keys: tuple[bytes, ...]
    threshold: int

    def __post_init__(self) -> None:
        if not 1 <= len(self.public_keys) <= MAX_MULTISIG_KEYS:
            raise ValueError(f"Multisig needs 1..{MAX_MULTISIG_KEYS} public keys")
        if not 1 <= self.threshold <= len(self.public_keys):
            raise ValueError("Threshold must be between 1 and the number of keys")

    @classmethod
    def from_owners(cls, owners: Sequence[LocalAccount], threshold: int) -> MultisigAccount:
        return cls(tuple(o.public_key_bytes for o in owners), threshold)

    @property
    def address(self) -> str:
        material = b"".join(self.public_keys) + bytes([self.threshold]) + MULTI_ED25519_SCHEME
        return address_from_bytes(hashlib.sha3_256(material).digest())

    def verify(self, message: bytes, signatures: Mapping[int, bytes]) -> bool:
        """True when at least ``threshold`` distinct owners signed ``message``.

        ``signatures`` maps the owner's key index to its signature.
        """
        valid = 0
        for index, signature in signatures.items():
            if not 0 <= index < len(self.public_keys):
                continue
            if verify_signature(self.public_keys[index], message, signature):
                valid += 1
        return valid >= self.threshold


@dataclass(frozen=True)
class SignerCapability:
    """Lets the ledger act as its custodial resource account."""

    account: str

    @property
    def address(self) -> str:
        return self.account


class ResourceAccountFactory(Protocol):
    def create(self, admin: Signer, seed: bytes) -> tuple[str, SignerCapability]: ...


def derive_resource_address(source: str, seed: bytes) -> str:
    digest = hashlib.sha3_256(
        address_bytes(source) + seed + DERIVE_RESOURCE_ACCOUNT_SCHEME
    ).digest()
    return address_from_bytes(digest)


class LocalResourceAccountFactory:
    """Derives resource accounts deterministically from the creator and seed."""

    def create(self, admin: Signer, seed: bytes) -> tuple[str, SignerCapability]:
        address = derive_resource_address(normalize_address(admin.address), seed)
        return address, SignerCapability(account=address)
