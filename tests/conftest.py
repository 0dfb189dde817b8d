"""
tests/conftest.py

Shared fixtures: deterministic owner keys, a fully wired engine and a Desk,
the prover-side helper that builds, encodes and signs proofs for one asset.
"""

from typing import List, Sequence

import pytest

from noteledger.codec.abi import encode
from noteledger.config import EngineConfig, build_engine
from noteledger.core.crypto import Ed25519Key
from noteledger.core.models import ZERO_WORD, ProofType, Receipt
from noteledger.ledger.public import PublicTokenLedger
from noteledger.settlement.authorization import SpendSignature, construct_signatures
from noteledger.settlement.engine import SettlementEngine
from noteledger.verification.transparent import TransparentNote, TransparentProver


CONTEXT = "noteledger-test"
ASSET   = "zkDAI"


def _key(n: int) -> Ed25519Key:
    return Ed25519Key.from_seed(bytes([n]) * 32)


@pytest.fixture
def issuer():
    """Owner of every test asset; the only key allowed to mint."""
    return _key(1)


@pytest.fixture
def alice():
    return _key(2)


@pytest.fixture
def bob():
    return _key(3)


@pytest.fixture
def sally():
    return _key(4)


@pytest.fixture
def engine():
    return build_engine(EngineConfig(context=CONTEXT))


@pytest.fixture
def public_ledger():
    return PublicTokenLedger("DAI")


class Desk:
    """Builds proofs for one asset and pushes them through the engine."""

    def __init__(self, engine: SettlementEngine, asset: str, issuer: Ed25519Key) -> None:
        self.engine   = engine
        self.asset    = asset
        self.issuer   = issuer
        self.counter  = TransparentNote.zero_value()

    @property
    def registry(self):
        return self.engine.registry(self.asset)

    def note(self, owner: Ed25519Key, value: int) -> TransparentNote:
        return TransparentNote.create(owner.owner, value)

    def mint_payload(self, *notes: TransparentNote) -> bytes:
        new_counter = TransparentNote.create(
            ZERO_WORD, self.counter.value + sum(n.value for n in notes)
        )
        payload = TransparentProver(self.issuer.owner).mint(self.counter, new_counter, notes)
        self._pending_counter = new_counter
        return encode(payload)

    def mint(self, *notes: TransparentNote) -> Receipt:
        payload = self.mint_payload(*notes)
        receipt = self.engine.mint(ProofType.MINT, payload, self.asset, self.issuer.owner)
        self.counter = self._pending_counter
        return receipt

    def join_split(
        self,
        inputs:       Sequence[TransparentNote],
        outputs:      Sequence[TransparentNote],
        public_owner: bytes = ZERO_WORD,
        public_value: int = 0,
    ) -> bytes:
        return encode(
            TransparentProver().join_split(inputs, outputs, public_owner, public_value)
        )

    def sign(self, payload: bytes, *keys: Ed25519Key) -> List[SpendSignature]:
        return construct_signatures(keys, CONTEXT, ProofType.JOIN_SPLIT, payload)

    def transfer(
        self,
        inputs:  Sequence[TransparentNote],
        outputs: Sequence[TransparentNote],
        signers: Sequence[Ed25519Key],
        **public,
    ) -> Receipt:
        payload = self.join_split(inputs, outputs, **public)
        return self.engine.settle(
            ProofType.JOIN_SPLIT, payload, self.asset, self.sign(payload, *signers)
        )


@pytest.fixture
def desk(engine, issuer):
    """Adjustable-supply, non-convertible asset."""
    engine.create_note_registry(ASSET, issuer.owner, can_adjust_supply=True)
    return Desk(engine, ASSET, issuer)


@pytest.fixture
def convertible_desk(engine, issuer, public_ledger):
    """Fixed-supply asset backed by public DAI held in escrow."""
    engine.create_note_registry(
        "zkDAI-public", issuer.owner, can_convert=True, public_ledger=public_ledger
    )
    return Desk(engine, "zkDAI-public", issuer)
