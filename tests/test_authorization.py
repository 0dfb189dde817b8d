"""
tests/test_authorization.py

Spend authorization: exactly one valid signature per distinct input-note
owner, over a message bound to the settlement context.
"""

import pytest

from noteledger.core.crypto import Ed25519Key
from noteledger.core.exceptions import SignatureInvalid, SignatureMissing
from noteledger.core.models import ZERO_WORD, ProofType
from noteledger.settlement.authorization import (
    SpendSignature,
    binding_message,
    check_spend_authorization,
    construct_signatures,
    verify_signatures,
)


PAYLOAD = bytes(range(64))


@pytest.fixture
def owners():
    return [Ed25519Key.from_seed(bytes([n]) * 32) for n in (10, 11, 12)]


def _message(context="ctx"):
    return binding_message(context, ProofType.JOIN_SPLIT, PAYLOAD)


def _signatures(keys, context="ctx"):
    return construct_signatures(keys, context, ProofType.JOIN_SPLIT, PAYLOAD)


class TestCompleteness:

    def test_exact_set_passes_in_any_order(self, owners):
        sigs = _signatures(owners)
        spenders = [k.owner for k in owners]
        check_spend_authorization(spenders, _message(), sigs)
        check_spend_authorization(spenders, _message(), list(reversed(sigs)))

    def test_repeated_owner_needs_one_signature(self, owners):
        a = owners[0]
        check_spend_authorization([a.owner, a.owner], _message(), _signatures([a]))

    def test_removing_any_signature_rejects(self, owners):
        sigs = _signatures(owners)
        spenders = [k.owner for k in owners]
        for i in range(len(sigs)):
            with pytest.raises(SignatureMissing):
                check_spend_authorization(spenders, _message(), sigs[:i] + sigs[i + 1:])

    def test_duplicate_in_place_of_missing_rejects(self, owners):
        sigs = _signatures(owners)
        spenders = [k.owner for k in owners]
        with pytest.raises(SignatureInvalid):
            check_spend_authorization(spenders, _message(), [sigs[0], sigs[0], sigs[1]])

    def test_unexpected_signer_rejects(self, owners):
        outsider = Ed25519Key.from_seed(b"\x63" * 32)
        spenders = [k.owner for k in owners[:2]]
        with pytest.raises(SignatureInvalid):
            check_spend_authorization(spenders, _message(), _signatures(owners[:2] + [outsider]))

    def test_no_inputs_accepts_no_signatures_only(self, owners):
        check_spend_authorization([], _message(), [])
        with pytest.raises(SignatureInvalid):
            check_spend_authorization([], _message(), _signatures(owners[:1]))


class TestBinding:

    def test_signature_from_other_context_rejected(self, owners):
        a = owners[0]
        with pytest.raises(SignatureInvalid):
            check_spend_authorization([a.owner], _message("ctx"), _signatures([a], "other"))

    def test_signature_over_other_payload_rejected(self, owners):
        a = owners[0]
        forged = SpendSignature(a.owner, a.sign(b"something else"))
        assert not verify_signatures([a.owner], _message(), [forged])

    def test_signature_under_wrong_key_rejected(self, owners):
        a, b = owners[:2]
        swapped = SpendSignature(a.owner, b.sign(_message()))
        with pytest.raises(SignatureInvalid):
            check_spend_authorization([a.owner], _message(), [swapped])

    def test_hex_signer_accepted(self, owners):
        a = owners[0]
        sig = SpendSignature("0x" + a.owner_hex.upper(), a.sign(_message()))
        assert verify_signatures([a.owner], _message(), [sig])

    def test_zero_owner_can_never_sign(self, owners):
        with pytest.raises(SignatureMissing):
            check_spend_authorization([ZERO_WORD], _message(), [])

    def test_garbage_signer(self):
        with pytest.raises(SignatureInvalid):
            check_spend_authorization([b"\x01" * 32], _message(), [SpendSignature("zz", "AAAA")])

    def test_message_is_canonical_json(self):
        assert _message() == (
            b'{"context":"ctx","payload":"' + PAYLOAD.hex().encode()
            + b'","proof_type":65793}'
        )
