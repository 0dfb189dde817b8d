"""
tests/test_note_registry.py

The double-spend protocol, exercised directly on a NoteRegistry with
opaque commitments: lifecycle, collisions, public value movement and
all-or-nothing rejection.
"""

import hashlib

import pytest

from noteledger.core.crypto import Ed25519Key
from noteledger.core.exceptions import (
    AuditLedgerError,
    NoteAlreadySpent,
    NoteCollision,
    NoteNotFound,
    PublicValueMismatch,
)
from noteledger.core.models import ZERO_WORD, NoteStatus, OutputNote, ProofType
from noteledger.ledger.audit import AuditLedger
from noteledger.ledger.public import PublicTokenLedger
from noteledger.registry.notes import MINT_COUNTER_OWNER, NoteRegistry


OWNER_A = b"\xaa" * 32
OWNER_B = b"\xbb" * 32
COUNTER = hashlib.sha3_256(b"counter").digest()


def c(label: str) -> bytes:
    """An opaque 32-byte commitment."""
    return hashlib.sha3_256(label.encode()).digest()


@pytest.fixture
def registry():
    reg = NoteRegistry("asset", OWNER_A, can_adjust_supply=True, mint_counter=COUNTER)
    reg.apply([COUNTER], [OutputNote(c("counter-1"), MINT_COUNTER_OWNER), OutputNote(c("n1"), OWNER_B)],
              proof_type=ProofType.MINT)
    return reg


@pytest.fixture
def bridged():
    ledger = PublicTokenLedger("DAI")
    reg = NoteRegistry("bridged", OWNER_A, can_convert=True, public_ledger=ledger)
    ledger.credit(OWNER_B, 100)
    return reg, ledger


class TestLifecycle:

    def test_unknown_commitment_does_not_exist(self, registry):
        assert registry.status(c("never")) == NoteStatus.DOES_NOT_EXIST
        assert registry.get_note(c("never")) is None

    def test_apply_spends_inputs_and_creates_outputs(self, registry):
        record = registry.apply([c("n1")], [OutputNote(c("n2"), OWNER_A)])
        assert registry.status(c("n1")) == NoteStatus.SPENT
        assert registry.get_note(c("n2")).owner == OWNER_A
        assert record.input_notes == (c("n1"),)
        assert registry.history()[-1] == record

    def test_spent_note_is_never_resurrected(self, registry):
        registry.apply([c("n1")], [OutputNote(c("n2"), OWNER_A)])
        with pytest.raises(NoteAlreadySpent):
            registry.apply([c("n1")], [OutputNote(c("n3"), OWNER_A)])
        with pytest.raises(NoteCollision):
            registry.apply([c("n2")], [OutputNote(c("n1"), OWNER_A)])
        assert registry.status(c("n1")) == NoteStatus.SPENT

    def test_missing_input(self, registry):
        with pytest.raises(NoteNotFound):
            registry.apply([c("ghost")], [])

    def test_counter_seeded_only_when_adjustable(self):
        fixed = NoteRegistry("fixed", OWNER_A, mint_counter=COUNTER)
        assert fixed.status(COUNTER) == NoteStatus.DOES_NOT_EXIST
        assert fixed.mint_counter is None

    def test_mint_counter_tracks_latest(self, registry):
        assert registry.mint_counter == c("counter-1")
        assert registry.get_note(c("counter-1")).owner == ZERO_WORD
        assert registry.status(COUNTER) == NoteStatus.SPENT

    def test_mint_counter_ignores_burned_zero_owned_notes(self, registry):
        registry.apply([c("counter-1")],
                       [OutputNote(c("counter-2"), ZERO_WORD), OutputNote(c("burned"), ZERO_WORD)],
                       proof_type=ProofType.MINT)
        registry.apply([c("counter-2")],
                       [OutputNote(c("counter-3"), ZERO_WORD), OutputNote(c("n3"), OWNER_B)],
                       proof_type=ProofType.MINT)
        assert registry.mint_counter == c("counter-3")
        assert registry.status(c("burned")) == NoteStatus.UNSPENT

    def test_non_mint_settlement_keeps_counter(self, registry):
        registry.apply([c("n1")], [OutputNote(c("n2"), ZERO_WORD)])
        assert registry.mint_counter == c("counter-1")

    def test_unspent_notes_by_owner(self, registry):
        assert [n.commitment for n in registry.unspent_notes(OWNER_B)] == [c("n1")]


class TestCollisions:

    def test_input_cited_twice(self, registry):
        with pytest.raises(NoteCollision):
            registry.apply([c("n1"), c("n1")], [])

    def test_output_repeats_input(self, registry):
        with pytest.raises(NoteCollision):
            registry.apply([c("n1")], [OutputNote(c("n1"), OWNER_A)])

    def test_duplicate_outputs(self, registry):
        with pytest.raises(NoteCollision):
            registry.apply([c("n1")], [OutputNote(c("x"), OWNER_A), OutputNote(c("x"), OWNER_B)])

    def test_output_already_exists(self, registry):
        with pytest.raises(NoteCollision):
            registry.apply([], [OutputNote(c("n1"), OWNER_A)])


class TestAtomicity:

    def test_rejection_leaves_state_byte_identical(self, registry):
        before = registry.snapshot()
        # first input fine, second missing: nothing may change
        with pytest.raises(NoteNotFound):
            registry.apply([c("n1"), c("ghost")], [OutputNote(c("n9"), OWNER_A)])
        # inputs fine, second output collides
        with pytest.raises(NoteCollision):
            registry.apply([c("n1")], [OutputNote(c("n9"), OWNER_A), OutputNote(c("counter-1"), OWNER_A)])
        assert registry.snapshot() == before
        assert registry.status(c("n9")) == NoteStatus.DOES_NOT_EXIST

    def test_failed_audit_write_changes_nothing(self, tmp_path, bridged):
        reg, ledger = bridged
        ledger.approve(OWNER_B, reg.escrow, 40)
        audit_path = tmp_path / "audit.jsonl"
        reg.audit = AuditLedger(Ed25519Key.generate(), audit_path)
        audit_path.mkdir()  # appending to a directory fails

        before, balances, allowance = reg.snapshot(), ledger.snapshot(), ledger.allowance(OWNER_B, reg.escrow)
        with pytest.raises(AuditLedgerError):
            reg.apply([], [OutputNote(c("d"), OWNER_B)], -40, OWNER_B)
        assert reg.snapshot() == before
        assert ledger.snapshot() == balances
        assert ledger.allowance(OWNER_B, reg.escrow) == allowance
        assert reg.history() == []


class TestPublicValue:

    def test_deposit_then_withdraw(self, bridged):
        reg, ledger = bridged
        ledger.approve(OWNER_B, reg.escrow, 60)
        reg.apply([], [OutputNote(c("d"), OWNER_B)], -60, OWNER_B)
        assert ledger.balance_of(reg.escrow) == 60
        assert ledger.balance_of(OWNER_B) == 40
        assert ledger.allowance(OWNER_B, reg.escrow) == 0

        reg.apply([c("d")], [OutputNote(c("e"), OWNER_B)], 25, OWNER_B)
        assert ledger.balance_of(reg.escrow) == 35
        assert ledger.balance_of(OWNER_B) == 65

    def test_deposit_needs_approval(self, bridged):
        reg, ledger = bridged
        with pytest.raises(PublicValueMismatch):
            reg.apply([], [OutputNote(c("d"), OWNER_B)], -10, OWNER_B)

    def test_withdraw_beyond_escrow(self, bridged):
        reg, ledger = bridged
        before = reg.snapshot()
        with pytest.raises(PublicValueMismatch):
            reg.apply([], [OutputNote(c("d"), OWNER_B)], 1, OWNER_B)
        assert reg.snapshot() == before

    def test_non_convertible_registry_refuses(self, registry):
        with pytest.raises(PublicValueMismatch):
            registry.apply([c("n1")], [OutputNote(c("n2"), OWNER_A)], 5, OWNER_A)

    def test_only_balanced_proofs_move_public_value(self, bridged):
        reg, ledger = bridged
        ledger.approve(OWNER_B, reg.escrow, 10)
        with pytest.raises(PublicValueMismatch):
            reg.apply([], [OutputNote(c("d"), OWNER_B)], -10, OWNER_B, proof_type=ProofType.MINT)

    def test_zero_public_owner_refused(self, bridged):
        reg, _ = bridged
        with pytest.raises(PublicValueMismatch):
            reg.apply([], [OutputNote(c("d"), OWNER_B)], -10, ZERO_WORD)


class TestSnapshot:

    def test_state_hash_follows_state(self, registry):
        h = registry.state_hash()
        assert h == registry.state_hash()
        registry.apply([c("n1")], [OutputNote(c("n2"), OWNER_A)])
        assert registry.state_hash() != h

    def test_spending_limit_is_part_of_state(self, registry):
        before = registry.snapshot()
        assert registry.spending_limit(OWNER_B) is None
        registry.set_spending_limit(OWNER_B, c("limit"))
        assert registry.spending_limit(OWNER_B) == c("limit")
        assert registry.spending_limit(OWNER_A) is None
        assert registry.snapshot() != before
