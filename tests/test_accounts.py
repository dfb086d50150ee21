"""Tests for account identities and resource-account derivation."""

import hashlib

import pytest

from drain.accounts import (
    LocalAccount,
    LocalResourceAccountFactory,
    MultisigAccount,
    derive_resource_address,
    verify_signature,
)
from drain.address import address_bytes


OWNERS = [LocalAccount.generate() for _ in range(3)]


class TestLocalAccount:
    def test_address_derivation(self):
        account = LocalAccount.generate()
        digest = hashlib.sha3_256(account.public_key_bytes + b"\x00").hexdigest()
        assert account.address == "0x" + digest

    def test_private_key_round_trip(self):
        account = LocalAccount.generate()
        restored = LocalAccount.from_private_key(account.private_key_hex)
        assert restored.address == account.address

    def test_rejects_bad_key(self):
        with pytest.raises(ValueError):
            LocalAccount.from_private_key("0x1234")

    def test_sign_and_verify(self):
        account = LocalAccount.generate()
        signature = account.sign(b"payload")
        assert verify_signature(account.public_key_bytes, b"payload", signature)
        assert not verify_signature(account.public_key_bytes, b"other", signature)


class TestMultisigAccount:
    def test_address_derivation(self):
        wallet = MultisigAccount.from_owners(OWNERS, threshold=2)
        material = b"".join(o.public_key_bytes for o in OWNERS) + b"\x02\x01"
        assert wallet.address == "0x" + hashlib.sha3_256(material).hexdigest()

    def test_threshold_changes_address(self):
        assert (
            MultisigAccount.from_owners(OWNERS, threshold=2).address
            != MultisigAccount.from_owners(OWNERS, threshold=3).address
        )

    def test_verify_requires_threshold(self):
        wallet = MultisigAccount.from_owners(OWNERS, threshold=2)
        message = b"withdraw"
        one = {0: OWNERS[0].sign(message)}
        two = {0: OWNERS[0].sign(message), 2: OWNERS[2].sign(message)}
        assert not wallet.verify(message, one)
        assert wallet.verify(message, two)

    def test_verify_ignores_wrong_signers(self):
        wallet = MultisigAccount.from_owners(OWNERS, threshold=2)
        message = b"withdraw"
        signatures = {0: OWNERS[0].sign(message), 1: OWNERS[2].sign(message), 7: OWNERS[1].sign(message)}
        assert not wallet.verify(message, signatures)

    @pytest.mark.parametrize("threshold", [0, 4])
    def test_invalid_threshold(self, threshold):
        with pytest.raises(ValueError):
            MultisigAccount.from_owners(OWNERS, threshold=threshold)


class TestResourceAccount:
    def test_derivation(self):
        seed = b"from_msafe_resource_signer_seed"
        expected = hashlib.sha3_256(address_bytes("0x1") + seed + b"\xff").hexdigest()
        assert derive_resource_address("0x1", seed) == "0x" + expected

    def test_factory(self):
        admin = LocalAccount.generate()
        address, capability = LocalResourceAccountFactory().create(admin, b"seed")
        assert address == derive_resource_address(admin.address, b"seed")
        assert capability.address == address
