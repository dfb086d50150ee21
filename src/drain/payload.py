"""
Withdraw-transaction correlation payload.

The payload reproduces, field by field, the signing message of the pending
multisig transaction that calls ``<module>::withdraw(request_id)``:

    sha3_256("APTOS::RawTransaction")
    || sender || sequence_number || payload kind (2 = entry function)
    || module address || module name || function name || type args (empty)
    || request_id || max_gas || gas_price || expiration || chain_id

Co-signers rebuild the same bytes to recognize the transaction they are
asked to approve. The expiration comes from the clock at creation time, so
a stored payload is a snapshot and cannot be recomputed later from the
logical inputs alone.
"""

from __future__ import annotations

import hashlib
import time
from typing import Callable, Optional

from .address import address_bytes, normalize_address
from .amounts import checked_add, require_u64, require_u8
from .config import (
    DEFAULT_FUNCTION_NAME,
    DEFAULT_GAS_PRICE,
    DEFAULT_MAX_GAS,
    DEFAULT_MODULE_NAME,
    WEEK_IN_SECS,
)


RAW_TRANSACTION_SALT = b"APTOS::RawTransaction"
DOMAIN_SEPARATOR = hashlib.sha3_256(RAW_TRANSACTION_SALT).digest()

PAYLOAD_KIND_SCRIPT = 0
PAYLOAD_KIND_MODULE_BUNDLE = 1
PAYLOAD_KIND_ENTRY_FUNCTION = 2


class BcsWriter:
    """Append-only buffer of canonical binary encodings."""

    def __init__(self) -> None:
        self._buf = bytearray()

    def raw(self, data: bytes) -> BcsWriter:
        self._buf += data
        return self

    def u8(self, value: int) -> BcsWriter:
        self._buf.append(require_u8(value))
        return self

    def u64(self, value: int) -> BcsWriter:
        self._buf += require_u64(value).to_bytes(8, "little")
        return self

    def uleb128(self, value: int) -> BcsWriter:
        value = require_u64(value)
        while True:
            byte = value & 0x7F
            value >>= 7
            if value:
                self._buf.append(byte | 0x80)
            else:
                self._buf.append(byte)
                return self

    def address(self, value: str) -> BcsWriter:
        self._buf += address_bytes(value)
        return self

    def vector(self, data: bytes) -> BcsWriter:
        self.uleb128(len(data))
        self._buf += data
        return self

    def string(self, value: str) -> BcsWriter:
        return self.vector(value.encode("utf-8"))

    def to_bytes(self) -> bytes:
        return bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)


class WithdrawPayloadBuilder:
    """One method per payload field; call them in declaration order."""

    def __init__(self) -> None:
        self._w = BcsWriter()

    def domain_separator(self) -> WithdrawPayloadBuilder:
        self._w.raw(DOMAIN_SEPARATOR)
        return self

    def sender(self, wallet: str) -> WithdrawPayloadBuilder:
        self._w.address(wallet)
        return self

    def sequence_number(self, value: int) -> WithdrawPayloadBuilder:
        self._w.u64(value)
        return self

    def payload_kind(self, kind: int = PAYLOAD_KIND_ENTRY_FUNCTION) -> WithdrawPayloadBuilder:
        self._w.u8(kind)
        return self

    def module_address(self, address: str) -> WithdrawPayloadBuilder:
        self._w.address(address)
        return self

    def module_name(self, name: str) -> WithdrawPayloadBuilder:
        self._w.string(name)
        return self

    def function_name(self, name: str) -> WithdrawPayloadBuilder:
        self._w.string(name)
        return self

    def type_arguments(self) -> WithdrawPayloadBuilder:
        # Empty vector: length 0.
        self._w.uleb128(0)
        return self

    def request_id_argument(self, request_id: int, framed: bool = False) -> WithdrawPayloadBuilder:
        if framed:
            self._w.uleb128(1).vector(BcsWriter().u64(request_id).to_bytes())
        else:
            self._w.u64(request_id)
        return self

    def max_gas_amount(self, value: int) -> WithdrawPayloadBuilder:
        self._w.u64(value)
        return self

    def gas_unit_price(self, value: int) -> WithdrawPayloadBuilder:
        self._w.u64(value)
        return self

    def expiration_timestamp(self, value: int) -> WithdrawPayloadBuilder:
        self._w.u64(value)
        return self

    def chain_id(self, value: int) -> WithdrawPayloadBuilder:
        self._w.u8(value)
        return self

    def build(self) -> bytes:
        return self._w.to_bytes()


class PayloadEncoder:
    """Builds the frozen correlation payload stored with each request.

    ``clock`` returns the current time in seconds; ``chain_id`` is the
    network identifier read at call time.
    """

    def __init__(
        self,
        module_address: str,
        chain_id: int,
        clock: Optional[Callable[[], float]] = None,
        module_name: str = DEFAULT_MODULE_NAME,
        function_name: str = DEFAULT_FUNCTION_NAME,
        max_gas: int = DEFAULT_MAX_GAS,
        gas_price: int = DEFAULT_GAS_PRICE,
        expiration_secs: int = WEEK_IN_SECS,
        frame_arguments: bool = False,
    ):
        self.module_address = normalize_address(module_address)
        self.chain_id = require_u8(chain_id, "chain_id")
        self.clock = clock or time.time
        self.module_name = module_name
        self.function_name = function_name
        self.max_gas = require_u64(max_gas, "max_gas")
        self.gas_price = require_u64(gas_price, "gas_price")
        self.expiration_secs = require_u64(expiration_secs, "expiration_secs")
        self.frame_arguments = frame_arguments

    def now_seconds(self) -> int:
        return int(self.clock())

    def expiration(self, now: Optional[int] = None) -> int:
        current = self.now_seconds() if now is None else require_u64(now, "now")
        return checked_add(current, self.expiration_secs)

    def encode(
        self,
        wallet: str,
        sequence_number: int,
        request_id: int,
        now: Optional[int] = None,
    ) -> bytes:
        require_u64(sequence_number, "sequence_number")
        require_u64(request_id, "request_id")
        return (
            WithdrawPayloadBuilder()
            .domain_separator()
            .sender(wallet)
            .sequence_number(sequence_number)
            .payload_kind(PAYLOAD_KIND_ENTRY_FUNCTION)
            .module_address(self.module_address)
            .module_name(self.module_name)
            .function_name(self.function_name)
            .type_arguments()
            .request_id_argument(request_id, framed=self.frame_arguments)
            .max_gas_amount(self.max_gas)
            .gas_unit_price(self.gas_price)
            .expiration_timestamp(self.expiration(now))
            .chain_id(self.chain_id)
            .build()
        )
