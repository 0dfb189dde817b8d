"""
noteledger: Basic Usage Example

Demonstrates:
- Provisioning an adjustable-supply asset
- Minting a confidential note
- Paying a counterparty under a private spending limit
- Double-spend rejection
"""

from noteledger import EngineConfig, build_engine
from noteledger.codec.abi import encode
from noteledger.core.crypto import Ed25519Key
from noteledger.core.exceptions import NoteAlreadySpent
from noteledger.core.models import ZERO_WORD, ProofType
from noteledger.settlement.authorization import construct_signatures
from noteledger.verification.transparent import TransparentNote, TransparentProver


CONTEXT = "noteledger-demo"
ASSET   = "zkDAI"


def main():
    """Bob takes a taxi and pays Sally without revealing either amount."""

    print("=" * 60)
    print("noteledger: Basic Usage Example")
    print("=" * 60)
    print()

    issuer = Ed25519Key.generate()
    bob    = Ed25519Key.generate()
    sally  = Ed25519Key.generate()

    # 1. Engine and asset
    print("1. Provisioning asset...")
    engine = build_engine(EngineConfig(context=CONTEXT))
    registry = engine.create_note_registry(ASSET, issuer.owner, can_adjust_supply=True)
    print(f"   {registry!r}")
    print()

    # 2. Mint 100 to Bob
    print("2. Minting 100 to Bob...")
    bobs_note = TransparentNote.create(bob.owner, 100)
    counter   = TransparentNote.create(ZERO_WORD, 100)
    mint = TransparentProver(issuer.owner).mint(TransparentNote.zero_value(), counter, [bobs_note])
    engine.mint(ProofType.MINT, encode(mint), ASSET, issuer.owner)
    print(f"   note {bobs_note.commitment.hex()[:16]}... is {registry.status(bobs_note.commitment).name}")
    print()

    # 3. Pay Sally 25, bounded by a private limit of 30
    print("3. Paying Sally 25 under a limit of 30...")
    fare   = TransparentNote.create(sally.owner, 25)
    change = TransparentNote.create(bob.owner, 75)
    limit  = TransparentNote.create(bob.owner, 30)
    slack  = TransparentNote.create(bob.owner, 5)
    engine.set_spending_limit(ASSET, bob.owner, limit.commitment, issuer.owner)

    transfer = encode(TransparentProver().join_split([bobs_note], [fare, change]))
    bound    = encode(TransparentProver().private_range(limit, fare, slack))
    signatures = construct_signatures([bob], CONTEXT, ProofType.JOIN_SPLIT, transfer)

    receipt = engine.settle_transfer(transfer, signatures, bound, sally.owner, ASSET)
    for event in receipt.events:
        print(f"   {event.kind.value}: {event.proof_type.name}")
    print()

    # 4. Replaying the same transfer
    print("4. Replaying the transfer...")
    try:
        engine.settle(ProofType.JOIN_SPLIT, transfer, ASSET, signatures)
    except NoteAlreadySpent as e:
        print(f"   rejected: {e}")
    print()

    print("=" * 60)
    print(f"Unspent notes: {len(registry.unspent_notes())}")
    print(f"State hash:    {registry.state_hash()[:16]}...")
    print("=" * 60)


if __name__ == "__main__":
    main()
