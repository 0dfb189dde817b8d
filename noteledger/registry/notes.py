"""
Note registry and the double-spend protocol.

One NoteRegistry per confidential asset. apply() is the only way note state
changes, and it is check-then-act under the registry lock:

    1. every input exists and is UNSPENT      NoteNotFound / NoteAlreadySpent
    2. every output is new                    NoteCollision
    3. public value movement is possible      PublicValueMismatch
    4. commit: inputs SPENT, outputs UNSPENT, public tokens moved,
       settlement record appended to history and the audit sink

Nothing is mutated before step 4 and step 4 cannot partially fail: the only
fallible effects (public transfer, audit write) run before any note changes,
and a failed audit write hands the public transfer back.
"""

import hashlib
import logging
import threading
from typing import Dict, Iterable, List, Optional, Sequence

from noteledger.core.canonical import canonicalize
from noteledger.core.exceptions import (
    NoteAlreadySpent,
    NoteCollision,
    NoteNotFound,
    PublicValueMismatch,
)
from noteledger.core.models import (
    ZERO_WORD,
    Note,
    NoteStatus,
    OutputNote,
    ProofType,
    SettlementRecord,
)
from noteledger.ledger.audit import AuditLedger
from noteledger.ledger.public import PublicTokenLedger, escrow_account


logger = logging.getLogger(__name__)


# Mint counter notes belong to nobody: no key can sign for the zero owner.
MINT_COUNTER_OWNER = ZERO_WORD


class NoteRegistry:
    """
    Per-asset note store.

    Feature flags are fixed at creation by the factory that provisioned it:
        can_adjust_supply  mint proofs may be settled here
        can_convert        join-splits may move value to / from public_ledger
    """

    def __init__(
        self,
        asset_id:          str,
        owner:             bytes,
        can_adjust_supply: bool = False,
        can_convert:       bool = False,
        public_ledger:     Optional[PublicTokenLedger] = None,
        audit:             Optional[AuditLedger] = None,
        mint_counter:      Optional[bytes] = None,
        factory_id:        Optional[int] = None,
    ) -> None:
        self.asset_id          = asset_id
        self.owner             = bytes(owner)
        self.can_adjust_supply = can_adjust_supply
        self.can_convert       = can_convert
        self.public_ledger     = public_ledger
        self.audit             = audit
        self.factory_id        = factory_id
        self.escrow            = escrow_account(asset_id)

        self._lock:    threading.Lock           = threading.Lock()
        self._notes:   Dict[bytes, Note]        = {}
        self._history: List[SettlementRecord]   = []
        self._limits:  Dict[bytes, bytes]       = {}

        self._mint_counter: Optional[bytes] = None
        if can_adjust_supply and mint_counter is not None:
            self._mint_counter = bytes(mint_counter)
            self._notes[bytes(mint_counter)] = Note(
                commitment= bytes(mint_counter),
                owner=      MINT_COUNTER_OWNER,
                status=     NoteStatus.UNSPENT,
            )

    # ── Queries ───────────────────────────────────────────────

    def status(self, commitment: bytes) -> NoteStatus:
        note = self._notes.get(bytes(commitment))
        return note.status if note else NoteStatus.DOES_NOT_EXIST

    def get_note(self, commitment: bytes) -> Optional[Note]:
        return self._notes.get(bytes(commitment))

    def notes(self) -> List[Note]:
        with self._lock:
            return list(self._notes.values())

    def unspent_notes(self, owner: Optional[bytes] = None) -> List[Note]:
        return [
            n for n in self.notes()
            if n.status == NoteStatus.UNSPENT
            and (owner is None or n.owner == bytes(owner))
        ]

    def history(self) -> List[SettlementRecord]:
        with self._lock:
            return list(self._history)

    @property
    def mint_counter(self) -> Optional[bytes]:
        """Commitment of the current (unspent) mint counter note."""
        return self._mint_counter

    def spending_limit(self, holder: bytes) -> Optional[bytes]:
        """Commitment of holder's pinned limit note, if one is set."""
        with self._lock:
            return self._limits.get(bytes(holder))

    def set_spending_limit(self, holder: bytes, limit_note: bytes) -> None:
        with self._lock:
            self._limits[bytes(holder)] = bytes(limit_note)
        logger.info(
            "%s: spending limit for %s set to %s",
            self.asset_id, bytes(holder).hex()[:16], bytes(limit_note).hex()[:16],
        )

    def snapshot(self) -> bytes:
        """
        Canonical bytes of every note, the settlement count and the escrow
        balance. Two equal snapshots mean identical registry state.
        """
        with self._lock:
            state = {
                "asset_id":    self.asset_id,
                "notes":       [
                    self._notes[c].to_dict() for c in sorted(self._notes)
                ],
                "settlements": len(self._history),
                "limits":      {h.hex(): n.hex() for h, n in sorted(self._limits.items())},
                "escrow":      (
                    self.public_ledger.balance_of(self.escrow)
                    if self.public_ledger else 0
                ),
            }
        return canonicalize(state)

    def state_hash(self) -> str:
        return hashlib.sha256(self.snapshot()).hexdigest()

    # ── The double-spend protocol ─────────────────────────────

    def apply(
        self,
        input_notes:        Sequence[bytes],
        output_notes:       Sequence[OutputNote],
        public_value_delta: int = 0,
        public_owner:       Optional[bytes] = None,
        proof_type:         ProofType = ProofType.JOIN_SPLIT,
    ) -> SettlementRecord:
        """
        Atomically retire input_notes and create output_notes.

        Returns the committed SettlementRecord. Raises a LedgerStateError
        subclass and leaves every note, balance and history entry untouched
        on rejection.
        """
        inputs  = [bytes(c) for c in input_notes]
        outputs = [OutputNote(bytes(n.commitment), bytes(n.owner)) for n in output_notes]

        with self._lock:
            self._check_inputs(inputs)
            self._check_outputs(inputs, outputs)
            self._check_public_value(public_value_delta, public_owner, proof_type)

            record = SettlementRecord.create(
                asset_id=           self.asset_id,
                proof_type=         proof_type,
                input_notes=        tuple(inputs),
                output_notes=       tuple(outputs),
                public_value_delta= public_value_delta,
                public_owner=       bytes(public_owner) if public_owner else None,
            )

            self._move_public_value(public_value_delta, public_owner)
            if self.audit is not None:
                try:
                    self.audit.append(record)
                except Exception:
                    self._undo_public_value(public_value_delta, public_owner)
                    raise

            for commitment in inputs:
                self._advance(commitment, NoteStatus.SPENT)
            for output in outputs:
                self._notes[output.commitment] = Note(
                    commitment= output.commitment,
                    owner=      output.owner,
                    status=     NoteStatus.UNSPENT,
                )
            self._history.append(record)
            if proof_type == ProofType.MINT and outputs:
                self._mint_counter = outputs[0].commitment

        logger.info(
            "settled %s on %s: %d spent, %d created, public %d",
            proof_type.name, self.asset_id, len(inputs), len(outputs), public_value_delta,
        )
        return record

    # ── Internal ──────────────────────────────────────────────

    def _check_inputs(self, inputs: List[bytes]) -> None:
        seen = set()
        for commitment in inputs:
            if commitment in seen:
                raise NoteCollision(
                    "input note cited twice", {"commitment": commitment.hex()}
                )
            seen.add(commitment)
            status = self.status(commitment)
            if status == NoteStatus.DOES_NOT_EXIST:
                raise NoteNotFound(
                    "input note does not exist", {"commitment": commitment.hex()}
                )
            if status == NoteStatus.SPENT:
                raise NoteAlreadySpent(
                    "input note already spent", {"commitment": commitment.hex()}
                )

    def _check_outputs(self, inputs: Iterable[bytes], outputs: List[OutputNote]) -> None:
        seen = set(inputs)
        for output in outputs:
            if output.commitment in seen:
                raise NoteCollision(
                    "output note repeats a note in this settlement",
                    {"commitment": output.commitment.hex()},
                )
            seen.add(output.commitment)
            status = self.status(output.commitment)
            if status != NoteStatus.DOES_NOT_EXIST:
                raise NoteCollision(
                    "output note already exists",
                    {"commitment": output.commitment.hex(), "status": status.name},
                )

    def _check_public_value(
        self,
        delta:        int,
        public_owner: Optional[bytes],
        proof_type:   ProofType,
    ) -> None:
        if delta == 0:
            return
        if not proof_type.allows_public_value:
            raise PublicValueMismatch(
                "proof type cannot move public value",
                {"proof_type": proof_type.name, "delta": delta},
            )
        if not self.can_convert or self.public_ledger is None:
            raise PublicValueMismatch(
                "asset is not convertible to a public token",
                {"asset_id": self.asset_id, "delta": delta},
            )
        if not public_owner or bytes(public_owner) == ZERO_WORD:
            raise PublicValueMismatch("public value movement needs a public owner")
        source = self.escrow if delta > 0 else bytes(public_owner)
        available = self.public_ledger.balance_of(source)
        if available < abs(delta):
            raise PublicValueMismatch(
                "public balance cannot cover the movement",
                {"delta": delta, "available": available},
            )
        if delta < 0:
            allowed = self.public_ledger.allowance(public_owner, self.escrow)
            if allowed < -delta:
                raise PublicValueMismatch(
                    "public owner has not approved the deposit",
                    {"delta": delta, "allowance": allowed},
                )

    def _move_public_value(self, delta: int, public_owner: Optional[bytes]) -> None:
        if delta > 0:
            self.public_ledger.transfer(self.escrow, bytes(public_owner), delta)
        elif delta < 0:
            self.public_ledger.transfer_from(bytes(public_owner), self.escrow, -delta)

    def _undo_public_value(self, delta: int, public_owner: Optional[bytes]) -> None:
        if delta > 0:
            self.public_ledger.transfer(bytes(public_owner), self.escrow, delta)
        elif delta < 0:
            owner = bytes(public_owner)
            self.public_ledger.transfer(self.escrow, owner, -delta)
            self.public_ledger.approve(
                owner, self.escrow, self.public_ledger.allowance(owner, self.escrow) - delta
            )

    def _advance(self, commitment: bytes, new_status: NoteStatus) -> None:
        note = self._notes[commitment]
        if not note.status.can_advance_to(new_status):
            raise RuntimeError(
                f"illegal note transition {note.status.name} -> {new_status.name}"
            )
        self._notes[commitment] = Note(note.commitment, note.owner, new_status)

    def __repr__(self) -> str:
        return (
            f"NoteRegistry(asset_id={self.asset_id!r}, notes={len(self._notes)}, "
            f"adjustable={self.can_adjust_supply}, convertible={self.can_convert})"
        )
