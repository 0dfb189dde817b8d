"""
noteledger/core/models.py

Settlement Data Model

═══════════════════════════════════════════════════════════════════
CONTRACTS
═══════════════════════════════════════════════════════════════════

CONTRACT 1: Words
    every scalar is an unsigned 256-bit integer, 32 bytes big-endian
    signed values (public value) travel as 256-bit two's complement

CONTRACT 2: Proof type identity
    ProofType value = epoch * 256**2 + category * 256 + id

CONTRACT 3: Note identity
    commitment = SHA3-256(gamma_x ‖ gamma_y ‖ sigma_x ‖ sigma_y)
    computed from the note's proof-data group, whatever the proof family

CONTRACT 4: Note lifecycle
    DOES_NOT_EXIST → UNSPENT → SPENT, nothing else
    notes are never deleted

CONTRACT 5: Payload variants
    one ProofPayload type, header fields fixed per type by PAYLOAD_LAYOUTS
═══════════════════════════════════════════════════════════════════
"""

import hashlib
import uuid
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from noteledger.core.time import ledger_timestamp


# ─────────────────────────────────────────────────────────────
# Word helpers
# ─────────────────────────────────────────────────────────────

WORD_BYTES       = 32
WORD_LIMIT       = 2 ** 256
NOTE_GROUP_WORDS = 6
ZERO_WORD        = b"\x00" * WORD_BYTES


def int_to_word(value: int) -> bytes:
    """Encode an unsigned 256-bit integer as one big-endian word."""
    return value.to_bytes(WORD_BYTES, "big")


def word_to_int(word: bytes) -> int:
    return int.from_bytes(word, "big")


def to_twos_complement(value: int) -> int:
    """Map a signed value into the unsigned word range."""
    if not -(WORD_LIMIT // 2) <= value < WORD_LIMIT // 2:
        raise ValueError(f"signed value out of 256-bit range: {value}")
    return value % WORD_LIMIT


def from_twos_complement(word_value: int) -> int:
    if word_value >= WORD_LIMIT // 2:
        return word_value - WORD_LIMIT
    return word_value


# ─────────────────────────────────────────────────────────────
# Proof types
# ─────────────────────────────────────────────────────────────

def pack_triple(epoch: int, category: int, id_: int) -> int:
    """CONTRACT 2 packing, shared by proof types and factory ids."""
    for name, part in (("epoch", epoch), ("category", category), ("id", id_)):
        if not 0 <= part <= 255:
            raise ValueError(f"{name} must be in 0..255, got {part}")
    return epoch * 256 ** 2 + category * 256 + id_


def unpack_triple(value: int) -> Tuple[int, int, int]:
    return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF


class ProofCategory(IntEnum):
    BALANCED = 1
    MINT     = 2
    BURN     = 3
    UTILITY  = 4


class ProofType(IntEnum):
    """
    Closed set of proof families the settlement core understands.

    Only BALANCED proofs may move value across the public boundary.
    """
    JOIN_SPLIT    = 65793   # 1.1.1
    SWAP          = 65794   # 1.1.2
    MINT          = 66049   # 1.2.1
    DIVIDEND      = 66561   # 1.4.1
    PRIVATE_RANGE = 66562   # 1.4.2

    @property
    def epoch(self) -> int:
        return unpack_triple(self.value)[0]

    @property
    def category(self) -> ProofCategory:
        return ProofCategory(unpack_triple(self.value)[1])

    @property
    def allows_public_value(self) -> bool:
        return self.category == ProofCategory.BALANCED

    @classmethod
    def parse(cls, value: Any) -> "ProofType":
        """Accept a ProofType, its integer id or its name (any case)."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls[value.strip().upper()]
            except KeyError:
                pass
            try:
                value = int(value, 0)
            except ValueError:
                raise ValueError(f"unknown proof type {value!r}") from None
        return cls(value)


# Header words preceding the offset table, in wire order.
PAYLOAD_LAYOUTS: Dict[ProofType, Tuple[str, ...]] = {
    ProofType.MINT:          ("challenge",),
    ProofType.JOIN_SPLIT:    ("m", "challenge", "public_owner"),
    ProofType.PRIVATE_RANGE: ("challenge",),
    ProofType.SWAP:          ("challenge",),
    ProofType.DIVIDEND:      ("challenge", "za", "zb"),
}

_OPTIONAL_HEADER_FIELDS = ("m", "public_owner", "za", "zb")


# ─────────────────────────────────────────────────────────────
# Notes
# ─────────────────────────────────────────────────────────────

class NoteStatus(IntEnum):
    DOES_NOT_EXIST = 0
    UNSPENT        = 1
    SPENT          = 2

    def can_advance_to(self, new_status: "NoteStatus") -> bool:
        """CONTRACT 4: only single forward steps are legal."""
        return new_status == self + 1


@dataclass(frozen=True)
class Note:
    """A registered note. Carries no value: only its commitment and owner."""
    commitment: bytes
    owner:      bytes
    status:     NoteStatus = NoteStatus.UNSPENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commitment": self.commitment.hex(),
            "owner":      self.owner.hex(),
            "status":     self.status.name,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Note":
        return cls(
            commitment= bytes.fromhex(data["commitment"]),
            owner=      bytes.fromhex(data["owner"]),
            status=     NoteStatus[data["status"]],
        )


class NoteGroup(NamedTuple):
    """The six proof-data words attached to one note."""
    k_bar:   int
    a_bar:   int
    gamma_x: int
    gamma_y: int
    sigma_x: int
    sigma_y: int

    def note_hash(self) -> bytes:
        """CONTRACT 3: the registry key for this note."""
        data = b"".join(
            int_to_word(w)
            for w in (self.gamma_x, self.gamma_y, self.sigma_x, self.sigma_y)
        )
        return hashlib.sha3_256(data).digest()


class OutputNote(NamedTuple):
    commitment: bytes
    owner:      bytes


# ─────────────────────────────────────────────────────────────
# Payload
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ProofPayload:
    """
    Decoded proof payload. One variant type for every family:
    which of the optional header fields are present is fixed by
    PAYLOAD_LAYOUTS[proof_type].
    """
    proof_type:   ProofType
    challenge:    int
    proof_data:   Tuple[NoteGroup, ...] = ()
    m:            Optional[int]   = None
    public_owner: Optional[bytes] = None
    za:           Optional[int]   = None
    zb:           Optional[int]   = None

    @property
    def layout(self) -> Tuple[str, ...]:
        return PAYLOAD_LAYOUTS[self.proof_type]

    def header_values(self) -> List[Any]:
        return [getattr(self, name) for name in self.layout]

    def missing_or_extra_fields(self) -> List[str]:
        """Header fields set or unset against the type's layout."""
        problems = []
        for name in _OPTIONAL_HEADER_FIELDS:
            present = getattr(self, name) is not None
            if present != (name in self.layout):
                problems.append(name)
        return problems

    def note_hashes(self) -> List[bytes]:
        return [group.note_hash() for group in self.proof_data]

    @property
    def input_groups(self) -> Tuple[NoteGroup, ...]:
        """Join-split only: the first m groups are spent."""
        return self.proof_data[: self.m or 0]

    @property
    def output_groups(self) -> Tuple[NoteGroup, ...]:
        return self.proof_data[self.m or 0:]


# ─────────────────────────────────────────────────────────────
# Validator output
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SettlementResult:
    """
    What a validator asserts a proof does. Advisory: the note registry
    re-checks every status before committing any of it.

    public_value_delta > 0: value leaves the confidential domain to public_owner
    public_value_delta < 0: value enters the confidential domain from public_owner
    """
    proof_type:         ProofType
    input_notes:        Tuple[bytes, ...]      = ()
    output_notes:       Tuple[OutputNote, ...] = ()
    public_value_delta: int                    = 0
    public_owner:       Optional[bytes]        = None
    constraint_notes:   Tuple[bytes, ...]      = ()

    @property
    def is_predicate(self) -> bool:
        return not self.input_notes and not self.output_notes


# ─────────────────────────────────────────────────────────────
# Settlement records and receipts
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SettlementRecord:
    """Immutable audit record of one committed settlement."""
    record_id:          str
    asset_id:           str
    proof_type:         ProofType
    input_notes:        Tuple[bytes, ...]
    output_notes:       Tuple[OutputNote, ...]
    public_value_delta: int
    public_owner:       Optional[bytes]
    settled_at:         str

    @classmethod
    def create(
        cls,
        asset_id:           str,
        proof_type:         ProofType,
        input_notes:        Tuple[bytes, ...],
        output_notes:       Tuple[OutputNote, ...],
        public_value_delta: int = 0,
        public_owner:       Optional[bytes] = None,
    ) -> "SettlementRecord":
        return cls(
            record_id=          f"settlement-{uuid.uuid4()}",
            asset_id=           asset_id,
            proof_type=         proof_type,
            input_notes=        tuple(input_notes),
            output_notes=       tuple(output_notes),
            public_value_delta= public_value_delta,
            public_owner=       public_owner,
            settled_at=         ledger_timestamp(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "record_id":          self.record_id,
            "asset_id":           self.asset_id,
            "proof_type":         self.proof_type.name,
            "input_notes":        [c.hex() for c in self.input_notes],
            "output_notes":       [
                {"commitment": n.commitment.hex(), "owner": n.owner.hex()}
                for n in self.output_notes
            ],
            "public_value_delta": self.public_value_delta,
            "public_owner":       self.public_owner.hex() if self.public_owner else None,
            "settled_at":         self.settled_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SettlementRecord":
        owner = data.get("public_owner")
        return cls(
            record_id=          data["record_id"],
            asset_id=           data["asset_id"],
            proof_type=         ProofType[data["proof_type"]],
            input_notes=        tuple(bytes.fromhex(c) for c in data["input_notes"]),
            output_notes=       tuple(
                OutputNote(bytes.fromhex(n["commitment"]), bytes.fromhex(n["owner"]))
                for n in data["output_notes"]
            ),
            public_value_delta= data["public_value_delta"],
            public_owner=       bytes.fromhex(owner) if owner else None,
            settled_at=         data["settled_at"],
        )


class EventKind(str, Enum):
    MINTED    = "minted"
    SETTLED   = "settled"
    VALIDATED = "validated"


@dataclass(frozen=True)
class SettlementEvent:
    proof_type:       ProofType
    kind:             EventKind
    input_notes:      Tuple[bytes, ...]      = ()
    output_notes:     Tuple[OutputNote, ...] = ()
    constraint_notes: Tuple[bytes, ...]      = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proof_type":   self.proof_type.name,
            "kind":         self.kind.value,
            "input_notes":  [c.hex() for c in self.input_notes],
            "output_notes": [
                {"commitment": n.commitment.hex(), "owner": n.owner.hex()}
                for n in self.output_notes
            ],
            "constraint_notes": [c.hex() for c in self.constraint_notes],
        }


@dataclass
class Receipt:
    """Returned by every successful engine entry point."""
    events:  List[SettlementEvent]  = field(default_factory=list)
    records: List[SettlementRecord] = field(default_factory=list)

    @property
    def created_notes(self) -> List[OutputNote]:
        return [n for record in self.records for n in record.output_notes]

    @property
    def spent_notes(self) -> List[bytes]:
        return [c for record in self.records for c in record.input_notes]
