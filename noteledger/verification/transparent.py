"""
noteledger/verification/transparent.py

Transparent reference proof system.

A development stand-in for the real zero-knowledge verifiers, which live
outside this package. It keeps the wire shapes and the settlement semantics
of every proof family but hides nothing: each note group carries its value
and blinding factor in the clear.

Note group words:
    k_bar    value            (join-split: the LAST group carries the public value)
    a_bar    blinding factor
    gamma_x  owner key
    gamma_y  value commitment = SHA3-256(value ‖ blinding ‖ owner)
    sigma_x  0
    sigma_y  0

Challenge:
    SHA3-256(proof_type ‖ sender ‖ header scalars except challenge ‖ all note words)

Never deploy these validators against real value.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from noteledger.core.crypto import OwnerKey, owner_bytes
from noteledger.core.exceptions import VerificationFailed
from noteledger.core.models import (
    PAYLOAD_LAYOUTS,
    WORD_LIMIT,
    ZERO_WORD,
    NoteGroup,
    OutputNote,
    ProofPayload,
    ProofType,
    SettlementResult,
    from_twos_complement,
    int_to_word,
    to_twos_complement,
    word_to_int,
)
from noteledger.registry.validators import Validator


# ─────────────────────────────────────────────────────────────
# Notes
# ─────────────────────────────────────────────────────────────

def value_commitment(value: int, blinding: int, owner: bytes) -> int:
    data = int_to_word(value) + int_to_word(blinding) + owner_bytes(owner)
    return word_to_int(hashlib.sha3_256(data).digest())


@dataclass(frozen=True)
class TransparentNote:
    value:    int
    owner:    bytes
    blinding: int

    @classmethod
    def create(cls, owner: OwnerKey, value: int, blinding: Optional[int] = None) -> "TransparentNote":
        if not 0 <= value < WORD_LIMIT:
            raise ValueError(f"note value out of range: {value}")
        if blinding is None:
            blinding = secrets.randbelow(WORD_LIMIT)
        return cls(value=value, owner=owner_bytes(owner), blinding=blinding)

    @classmethod
    def zero_value(cls) -> "TransparentNote":
        """The well-known counter note every adjustable asset starts from."""
        return cls(value=0, owner=ZERO_WORD, blinding=0)

    def group(self, k_bar: Optional[int] = None) -> NoteGroup:
        return NoteGroup(
            k_bar=   self.value if k_bar is None else k_bar,
            a_bar=   self.blinding,
            gamma_x= word_to_int(self.owner),
            gamma_y= value_commitment(self.value, self.blinding, self.owner),
            sigma_x= 0,
            sigma_y= 0,
        )

    @property
    def commitment(self) -> bytes:
        return self.group().note_hash()


ZERO_COUNTER_NOTE = TransparentNote.zero_value().commitment


def compute_challenge(
    proof_type: ProofType,
    sender:     bytes,
    header:     Sequence[int],
    groups:     Sequence[NoteGroup],
) -> int:
    h = hashlib.sha3_256()
    h.update(int_to_word(int(proof_type)))
    h.update(owner_bytes(sender))
    for scalar in header:
        h.update(int_to_word(scalar))
    for group in groups:
        for word in group:
            h.update(int_to_word(word))
    return word_to_int(h.digest())


def _challenge_header(payload: ProofPayload) -> List[int]:
    values = []
    for name in PAYLOAD_LAYOUTS[payload.proof_type]:
        if name == "challenge":
            continue
        value = getattr(payload, name)
        values.append(word_to_int(value) if isinstance(value, bytes) else value)
    return values


# ─────────────────────────────────────────────────────────────
# Prover
# ─────────────────────────────────────────────────────────────

class TransparentProver:
    """
    Builds payloads for the transparent validators.

    The prover does not check the relations it encodes; an unbalanced or
    out-of-range statement produces a well-formed payload that the
    validator then rejects.
    """

    def __init__(self, sender: OwnerKey = ZERO_WORD) -> None:
        self.sender = owner_bytes(sender)

    def _finish(self, proof_type: ProofType, groups: Sequence[NoteGroup], **header) -> ProofPayload:
        draft = ProofPayload(proof_type=proof_type, challenge=0, proof_data=tuple(groups), **header)
        challenge = compute_challenge(proof_type, self.sender, _challenge_header(draft), groups)
        return ProofPayload(proof_type=proof_type, challenge=challenge, proof_data=tuple(groups), **header)

    def mint(
        self,
        old_counter: TransparentNote,
        new_counter: TransparentNote,
        minted:      Sequence[TransparentNote],
    ) -> ProofPayload:
        groups = [old_counter.group(), new_counter.group()] + [n.group() for n in minted]
        return self._finish(ProofType.MINT, groups)

    def join_split(
        self,
        inputs:       Sequence[TransparentNote],
        outputs:      Sequence[TransparentNote],
        public_owner: OwnerKey = ZERO_WORD,
        public_value: int = 0,
    ) -> ProofPayload:
        notes = list(inputs) + list(outputs)
        if not notes:
            raise ValueError("join-split needs at least one note")
        groups = [n.group() for n in notes[:-1]]
        groups.append(notes[-1].group(k_bar=to_twos_complement(public_value)))
        return self._finish(
            ProofType.JOIN_SPLIT,
            groups,
            m=            len(inputs),
            public_owner= owner_bytes(public_owner),
        )

    def private_range(
        self,
        original:   TransparentNote,
        comparison: TransparentNote,
        utility:    TransparentNote,
    ) -> ProofPayload:
        groups = [original.group(), comparison.group(), utility.group()]
        return self._finish(ProofType.PRIVATE_RANGE, groups)

    def dividend(
        self,
        notional: TransparentNote,
        residual: TransparentNote,
        target:   TransparentNote,
        za:       int,
        zb:       int,
    ) -> ProofPayload:
        groups = [notional.group(), residual.group(), target.group()]
        return self._finish(ProofType.DIVIDEND, groups, za=za, zb=zb)

    def swap(
        self,
        maker_bid: TransparentNote,
        taker_bid: TransparentNote,
        taker_ask: TransparentNote,
        maker_ask: TransparentNote,
    ) -> ProofPayload:
        groups = [maker_bid.group(), taker_bid.group(), taker_ask.group(), maker_ask.group()]
        return self._finish(ProofType.SWAP, groups)


# ─────────────────────────────────────────────────────────────
# Validators
# ─────────────────────────────────────────────────────────────

def _open(group: NoteGroup, value: Optional[int] = None) -> Tuple[int, bytes, bytes]:
    """(value, owner, commitment) of a group, after checking its commitment."""
    value = group.k_bar if value is None else value
    if not 0 <= value < WORD_LIMIT:
        raise VerificationFailed("note value out of range")
    if group.sigma_x or group.sigma_y:
        raise VerificationFailed("reserved note words must be zero")
    owner = int_to_word(group.gamma_x)
    if group.gamma_y != value_commitment(value, group.a_bar, owner):
        raise VerificationFailed(
            "note does not open to its value commitment",
            {"commitment": group.note_hash().hex()[:16]},
        )
    return value, owner, group.note_hash()


class TransparentValidator(Validator):

    note_count: Optional[int] = None

    def verify(self, payload: ProofPayload, sender: bytes = ZERO_WORD) -> SettlementResult:
        if payload.proof_type != self.proof_type:
            raise VerificationFailed(
                "payload is for a different proof type",
                {"expected": self.proof_type.name, "got": payload.proof_type.name},
            )
        if self.note_count is not None and len(payload.proof_data) != self.note_count:
            raise VerificationFailed(
                "wrong number of notes",
                {"expected": self.note_count, "got": len(payload.proof_data)},
            )
        expected = compute_challenge(
            payload.proof_type, sender, _challenge_header(payload), payload.proof_data
        )
        if payload.challenge != expected:
            raise VerificationFailed("challenge does not bind the proof's public inputs")
        return self._verify_relation(payload)

    def _verify_relation(self, payload: ProofPayload) -> SettlementResult:
        raise NotImplementedError


class TransparentMintValidator(TransparentValidator):
    """[old counter, new counter, minted...]: new = old + Σ minted."""

    proof_type = ProofType.MINT

    def _verify_relation(self, payload: ProofPayload) -> SettlementResult:
        if len(payload.proof_data) < 2:
            raise VerificationFailed("mint needs an old and a new counter note")
        old_value, old_owner, old_hash = _open(payload.proof_data[0])
        new_value, new_owner, new_hash = _open(payload.proof_data[1])
        minted = [_open(g) for g in payload.proof_data[2:]]

        if old_owner != ZERO_WORD or new_owner != ZERO_WORD:
            raise VerificationFailed("counter notes must belong to the zero owner")
        if new_value != old_value + sum(v for v, _, _ in minted):
            raise VerificationFailed(
                "new counter does not equal old counter plus minted value"
            )
        return SettlementResult(
            proof_type=   ProofType.MINT,
            input_notes=  (old_hash,),
            output_notes= (OutputNote(new_hash, ZERO_WORD),)
                          + tuple(OutputNote(h, o) for _, o, h in minted),
        )


class TransparentJoinSplitValidator(TransparentValidator):
    """
    Σ inputs = Σ outputs + public value. The last group's k_bar carries the
    public value, so the last note's own value is derived from the balance.
    """

    proof_type = ProofType.JOIN_SPLIT

    def _verify_relation(self, payload: ProofPayload) -> SettlementResult:
        groups = payload.proof_data
        if not groups:
            raise VerificationFailed("join-split needs at least one note")
        m = payload.m
        public_value = from_twos_complement(groups[-1].k_bar)

        known = [_open(g) for g in groups[:-1]]
        in_known  = sum(v for v, _, _ in known[:m])
        out_known = sum(v for v, _, _ in known[m:])
        if len(groups) - 1 < m:
            last_value = out_known + public_value - in_known
        else:
            last_value = in_known - out_known - public_value
        if last_value < 0:
            raise VerificationFailed("join-split does not balance")
        opened = known + [_open(groups[-1], value=last_value)]

        return SettlementResult(
            proof_type=         ProofType.JOIN_SPLIT,
            input_notes=        tuple(h for _, _, h in opened[:m]),
            output_notes=       tuple(OutputNote(h, o) for _, o, h in opened[m:]),
            public_value_delta= public_value,
            public_owner=       payload.public_owner,
        )


class TransparentRangeValidator(TransparentValidator):
    """[original, comparison, utility]: original ≥ comparison + utility."""

    proof_type = ProofType.PRIVATE_RANGE
    note_count = 3

    def _verify_relation(self, payload: ProofPayload) -> SettlementResult:
        (original, _, h0), (comparison, _, h1), (utility, _, h2) = (
            _open(g) for g in payload.proof_data
        )
        if original < comparison + utility:
            raise VerificationFailed("range relation does not hold")
        return SettlementResult(
            proof_type=       ProofType.PRIVATE_RANGE,
            constraint_notes= (h0, h1, h2),
        )


class TransparentDividendValidator(TransparentValidator):
    """[notional, residual, target]: za * notional == zb * target + residual."""

    proof_type = ProofType.DIVIDEND
    note_count = 3

    def _verify_relation(self, payload: ProofPayload) -> SettlementResult:
        if not payload.za or not payload.zb:
            raise VerificationFailed("dividend ratio terms must be nonzero")
        (notional, _, h0), (residual, _, h1), (target, _, h2) = (
            _open(g) for g in payload.proof_data
        )
        if payload.za * notional != payload.zb * target + residual:
            raise VerificationFailed("dividend relation does not hold")
        return SettlementResult(
            proof_type=       ProofType.DIVIDEND,
            constraint_notes= (h0, h1, h2),
        )


class TransparentSwapValidator(TransparentValidator):
    """[maker bid, taker bid, taker ask, maker ask]: bids match asks crosswise."""

    proof_type = ProofType.SWAP
    note_count = 4

    def _verify_relation(self, payload: ProofPayload) -> SettlementResult:
        maker_bid, taker_bid, taker_ask, maker_ask = (_open(g) for g in payload.proof_data)
        if maker_bid[0] != taker_ask[0] or taker_bid[0] != maker_ask[0]:
            raise VerificationFailed("swap legs do not match")
        return SettlementResult(
            proof_type=   ProofType.SWAP,
            input_notes=  (maker_bid[2], taker_bid[2]),
            output_notes= (
                OutputNote(taker_ask[2], taker_ask[1]),
                OutputNote(maker_ask[2], maker_ask[1]),
            ),
        )


def transparent_validators() -> Dict[ProofType, Validator]:
    """One fresh validator per proof family."""
    return {
        v.proof_type: v
        for v in (
            TransparentMintValidator(),
            TransparentJoinSplitValidator(),
            TransparentRangeValidator(),
            TransparentDividendValidator(),
            TransparentSwapValidator(),
        )
    }
