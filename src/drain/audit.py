"""
Audit trail for committed drain operations.

One JSON object per line, each carrying an HMAC of its own fields plus
the previous line's HMAC. Reading re-derives the chain, so an edited,
dropped or reordered line is reported instead of returned. Rejected
operations never reach the trail; they surface as exceptions.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import secrets
import time
from dataclasses import asdict, dataclass, fields
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional

from .storage import ensure_private_dir, ensure_private_file, exclusive_lock


DEFAULT_AUDIT_PATH = Path.home() / ".drain" / "audit.jsonl"
DEFAULT_AUDIT_KEY_PATH = Path.home() / ".drain-secrets" / "audit_hmac.key"

AUDIT_KEY_ENV = "DRAIN_AUDIT_HMAC_KEY"

_CHAIN_FIELDS = ("prev_hash", "event_hash")
_TAIL_BLOCK = 4096


class EventType(str, Enum):
    STATE_INITIALIZED = "state_initialized"
    WALLET_ALLOWED = "wallet_allowed"
    WALLET_DISALLOWED = "wallet_disallowed"
    BUDGET_GRANTED = "budget_granted"
    REQUEST_CREATED = "request_created"
    REQUEST_EXECUTED = "request_executed"


@dataclass
class AuditEvent:
    event_type: str
    timestamp: float
    wallet: Optional[str] = None
    actor: Optional[str] = None
    asset: Optional[str] = None
    amount: Optional[int] = None
    request_id: Optional[int] = None
    details: Optional[dict[str, Any]] = None
    prev_hash: Optional[str] = None
    event_hash: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict) -> AuditEvent:
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in record.items() if k in known})

    def to_json(self) -> str:
        return json.dumps(
            {k: v for k, v in asdict(self).items() if v is not None},
            separators=(",", ":"),
        )


class AuditTrail:
    """Append-only, HMAC-chained JSONL log.

    Appends take an exclusive lock and re-read the chain tail, so several
    processes writing the same file extend one chain.
    """

    def __init__(
        self,
        path: Optional[Path] = None,
        key_path: Optional[Path] = None,
    ):
        self.path = path or DEFAULT_AUDIT_PATH
        self.key_path = key_path or DEFAULT_AUDIT_KEY_PATH
        self._lock_path = self.path.parent / ".audit.lock"

        for directory in {self.path.parent, self.key_path.parent}:
            ensure_private_dir(directory)
        for private in (self.path, self._lock_path):
            ensure_private_file(private)
        self._key = self._resolve_key()

    def _resolve_key(self) -> bytes:
        from_env = os.getenv(AUDIT_KEY_ENV)
        if from_env:
            return from_env.encode()
        ensure_private_file(self.key_path)
        stored = self.key_path.read_bytes().strip()
        if stored:
            return stored
        fresh = secrets.token_hex(32).encode()
        self.key_path.write_bytes(fresh)
        return fresh

    def _sign(self, record: dict, prev_hash: str) -> str:
        body = json.dumps(record, sort_keys=True, separators=(",", ":"))
        return hmac.new(self._key, f"{prev_hash}|{body}".encode(), hashlib.sha256).hexdigest()

    def _tail_hash(self) -> str:
        """``event_hash`` of the last line, reading backwards from the end of the file."""
        with open(self.path, "rb") as f:
            pos = f.seek(0, os.SEEK_END)
            chunk = b""
            while pos > 0:
                step = min(_TAIL_BLOCK, pos)
                pos -= step
                f.seek(pos)
                chunk = f.read(step) + chunk
                if chunk.strip().count(b"\n") >= 1:
                    break
        lines = chunk.strip().splitlines()
        if not lines:
            return ""
        return json.loads(lines[-1]).get("event_hash", "")

    def _verified_records(self) -> Iterator[dict]:
        expected_prev = ""
        with open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                record = json.loads(line)
                prev_hash = record.pop("prev_hash", None) or ""
                event_hash = record.pop("event_hash", None) or ""
                if prev_hash != expected_prev:
                    raise RuntimeError("Audit chain broken: previous hash mismatch")
                if not hmac.compare_digest(self._sign(record, prev_hash), event_hash):
                    raise RuntimeError("Audit chain broken: event hash mismatch")
                expected_prev = event_hash
                record.update(prev_hash=prev_hash or None, event_hash=event_hash)
                yield record

    def log(
        self,
        event_type: EventType,
        wallet: Optional[str] = None,
        actor: Optional[str] = None,
        asset: Optional[str] = None,
        amount: Optional[int] = None,
        request_id: Optional[int] = None,
        details: Optional[dict] = None,
        timestamp: Optional[float] = None,
    ) -> AuditEvent:
        """Append one event; ``timestamp`` defaults to the wall clock."""
        candidate = AuditEvent(
            event_type=event_type.value,
            timestamp=time.time() if timestamp is None else timestamp,
            wallet=wallet,
            actor=actor,
            asset=asset,
            amount=amount,
            request_id=request_id,
            details=details,
        )
        record = {
            k: v
            for k, v in asdict(candidate).items()
            if v is not None and k not in _CHAIN_FIELDS
        }

        with exclusive_lock(self._lock_path):
            prev_hash = self._tail_hash()
            candidate.prev_hash = prev_hash or None
            candidate.event_hash = self._sign(record, prev_hash)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(candidate.to_json() + "\n")
                f.flush()
                os.fsync(f.fileno())
        return candidate

    def read_events(
        self,
        wallet: Optional[str] = None,
        event_type: Optional[EventType] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """Verify the whole chain, then return the newest ``limit`` matching events."""
        matched = [
            AuditEvent.from_record(record)
            for record in self._verified_records()
            if (wallet is None or record.get("wallet") == wallet)
            and (event_type is None or record.get("event_type") == event_type.value)
        ]
        return matched[-limit:]
