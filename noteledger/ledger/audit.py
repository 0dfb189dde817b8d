"""
noteledger/ledger/audit.py

Settlement Audit Ledger

Every committed settlement is appended here as a signed, hash-chained entry.

Contract: append() MUST, in this exact order:
  1. Acquire lock
  2. Build the entry with causal_hash from the last entry
  3. Sign it with the ledger key
  4. Write the JSONL line (when file backed)
  5. Advance in-memory state, only after a confirmed write

Chain rule:
    causal_hash = SHA-256(JCS(prev.to_chain_dict()))
    first entry = GENESIS_HASH ("0" * 64)

Signature:
    Ed25519 over JCS(entry.to_signing_dict()), base64url without padding
"""

import json
import threading
import uuid
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from noteledger.core.canonical import canonical_hash, canonicalize
from noteledger.core.crypto import Ed25519Key
from noteledger.core.exceptions import AuditLedgerError
from noteledger.core.models import SettlementRecord
from noteledger.core.time import ledger_timestamp


GENESIS_HASH = "0" * 64


@dataclass
class AuditEntry:
    """One signed line of the audit ledger."""

    entry_id:    str
    sequence:    int
    timestamp:   str
    causal_hash: str
    signer:      str
    payload:     Dict[str, Any]
    signature:   Optional[str] = None

    @classmethod
    def create(
        cls,
        sequence: int,
        signer:   str,
        payload:  Dict[str, Any],
        prev:     Optional["AuditEntry"] = None,
    ) -> "AuditEntry":
        return cls(
            entry_id=    f"audit-{uuid.uuid4()}",
            sequence=    sequence,
            timestamp=   ledger_timestamp(),
            causal_hash= cls.chain_hash_of(prev),
            signer=      signer,
            payload=     payload,
        )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditEntry":
        return cls(
            entry_id=    data["entry_id"],
            sequence=    data["sequence"],
            timestamp=   data["timestamp"],
            causal_hash= data["causal_hash"],
            signer=      data["signer"],
            payload=     data.get("payload", {}),
            signature=   data.get("signature"),
        )

    def to_signing_dict(self) -> Dict[str, Any]:
        return {
            "causal_hash": self.causal_hash,
            "entry_id":    self.entry_id,
            "payload":     self.payload,
            "sequence":    self.sequence,
            "signer":      self.signer,
            "timestamp":   self.timestamp,
        }

    # What is chained is exactly what is signed.
    to_chain_dict = to_signing_dict

    def to_dict(self) -> Dict[str, Any]:
        d = self.to_signing_dict()
        d["signature"] = self.signature
        return d

    @staticmethod
    def chain_hash_of(prev: Optional["AuditEntry"]) -> str:
        if prev is None:
            return GENESIS_HASH
        return canonical_hash(prev.to_chain_dict())

    def sign(self, key: Ed25519Key) -> "AuditEntry":
        self.signature = key.sign(canonicalize(self.to_signing_dict()))
        return self

    def verify_signature(self) -> bool:
        if not self.signature:
            return False
        return Ed25519Key.verify_detached(
            canonicalize(self.to_signing_dict()), self.signature, self.signer
        )

    def verify_chain(self, prev: Optional["AuditEntry"]) -> bool:
        return self.causal_hash == self.chain_hash_of(prev)

    @property
    def record(self) -> SettlementRecord:
        return SettlementRecord.from_dict(self.payload)


class AuditLedger:
    """
    Append-only settlement audit sink.

    In-memory when ledger_path is None, otherwise a JSONL file whose state
    is restored on construction. Thread-safe within one process.
    """

    def __init__(self, key: Ed25519Key, ledger_path: Optional[Path] = None) -> None:
        self.key = key

        self._lock:    threading.Lock    = threading.Lock()
        self._entries: List[AuditEntry] = []
        self._path:    Optional[Path]    = Path(ledger_path) if ledger_path else None

        if self._path is not None:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._restore_state()

    # ── Public API ────────────────────────────────────────────

    def append(self, record: SettlementRecord) -> AuditEntry:
        """
        Append one settlement record. Raises AuditLedgerError if the write
        fails; the ledger does not advance in that case.
        """
        with self._lock:
            prev  = self._entries[-1] if self._entries else None
            entry = AuditEntry.create(
                sequence= len(self._entries),
                signer=   self.key.owner_hex,
                payload=  record.to_dict(),
                prev=     prev,
            ).sign(self.key)

            if self._path is not None:
                self._write(entry)
            self._entries.append(entry)
            return entry

    def entries(self) -> List[AuditEntry]:
        with self._lock:
            return list(self._entries)

    def records(self) -> List[SettlementRecord]:
        return [entry.record for entry in self.entries()]

    def verify_chain(self) -> bool:
        """
        True when every entry is in sequence, chained to its predecessor
        and signed by its declared signer. Re-reads the file when backed by one.
        """
        try:
            entries = self._read_all() if self._path is not None else self.entries()
        except AuditLedgerError:
            return False
        prev = None
        for index, entry in enumerate(entries):
            if entry.sequence != index:
                return False
            if not entry.verify_chain(prev):
                return False
            if not entry.verify_signature():
                return False
            prev = entry
        return True

    def __len__(self) -> int:
        return len(self._entries)

    # ── Internal ──────────────────────────────────────────────

    def _write(self, entry: AuditEntry) -> None:
        try:
            with open(self._path, "a", encoding="utf-8") as f:
                f.write(json.dumps(entry.to_dict()) + "\n")
        except OSError as exc:
            raise AuditLedgerError(
                f"audit ledger write failed: {exc}", {"path": str(self._path)}
            ) from exc

    def _read_all(self) -> List[AuditEntry]:
        if not self._path.exists():
            return []
        entries = []
        with open(self._path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AuditEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError) as exc:
                    raise AuditLedgerError(
                        f"invalid audit entry at line {line_num}: {exc}"
                    ) from exc
        return entries

    def _restore_state(self) -> None:
        """
        Load existing entries. A corrupted file leaves the ledger empty in
        memory and issues a RuntimeWarning; verify_chain() then reports False.
        """
        try:
            self._entries = self._read_all()
        except (AuditLedgerError, OSError) as exc:
            self._entries = []
            warnings.warn(
                f"AuditLedger: could not restore state from {self._path}: {exc}. "
                "Call verify_chain() before appending.",
                RuntimeWarning,
                stacklevel=3,
            )
