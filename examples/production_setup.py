"""
noteledger: Production Setup Example

Demonstrates:
- Loading the engine from YAML
- A persistent, signed audit ledger
- A convertible asset backed by public tokens in escrow
- Verifying the audit chain after the fact
"""

import logging
from pathlib import Path

from noteledger import EngineConfig, build_engine
from noteledger.codec.abi import encode
from noteledger.core.crypto import Ed25519Key
from noteledger.core.models import ProofType
from noteledger.ledger.public import PublicTokenLedger
from noteledger.settlement.authorization import construct_signatures
from noteledger.verification.transparent import TransparentNote, TransparentProver


CONFIG = """\
context: "noteledger-production"
proof_types: [MINT, JOIN_SPLIT, PRIVATE_RANGE, DIVIDEND]
factories:
  - {epoch: 1, category: 1, id: 1, kind: base}
  - {epoch: 1, category: 1, id: 3, kind: adjustable}
audit:
  path: "state/audit.jsonl"
  key_path: "keys/audit.pem"
"""


def setup_production(root: Path = Path(".")):
    """Stand up an engine with a convertible DAI-backed asset."""

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("=" * 60)
    print("noteledger: Production Setup")
    print("=" * 60)
    print()

    config_file = root / "noteledger.yaml"
    config_file.write_text(CONFIG)
    config = EngineConfig.from_yaml(config_file)
    config.audit_path     = root / config.audit_path
    config.audit_key_path = root / config.audit_key_path

    # 1. Engine
    print("1. Building engine...")
    engine = build_engine(config)
    print(f"   validators: {[p.name for p in engine.validators.registered()]}")
    print(f"   audit key:  {engine.audit.key.owner_hex[:16]}...")
    print()

    # 2. Convertible asset
    print("2. Provisioning convertible asset...")
    dai = PublicTokenLedger("DAI")
    issuer = Ed25519Key.generate()
    registry = engine.create_note_registry(
        "zkDAI", issuer.owner, can_convert=True, public_ledger=dai
    )
    print(f"   {registry!r}")
    print()

    # 3. Deposit public DAI into a note
    print("3. Alice deposits 60 DAI...")
    alice = Ed25519Key.generate()
    dai.credit(alice.owner, 100)
    dai.approve(alice.owner, registry.escrow, 60)

    deposit = TransparentNote.create(alice.owner, 60)
    payload = encode(TransparentProver().join_split(
        [], [deposit], public_owner=alice.owner, public_value=-60
    ))
    signatures = construct_signatures([alice], config.context, ProofType.JOIN_SPLIT, payload)
    engine.settle(ProofType.JOIN_SPLIT, payload, "zkDAI", signatures)
    print(f"   escrow: {dai.balance_of(registry.escrow)} DAI")
    print()

    # 4. Withdraw part of it
    print("4. Alice withdraws 15 DAI...")
    change = TransparentNote.create(alice.owner, 45)
    payload = encode(TransparentProver().join_split(
        [deposit], [change], public_owner=alice.owner, public_value=15
    ))
    signatures = construct_signatures([alice], config.context, ProofType.JOIN_SPLIT, payload)
    engine.settle(ProofType.JOIN_SPLIT, payload, "zkDAI", signatures)
    print(f"   alice:  {dai.balance_of(alice.owner)} DAI")
    print(f"   escrow: {dai.balance_of(registry.escrow)} DAI")
    print()

    # 5. Audit
    print("5. Verifying audit chain...")
    print(f"   entries: {len(engine.audit)}")
    print(f"   intact:  {engine.audit.verify_chain()}")
    print()

    return engine


if __name__ == "__main__":
    setup_production()
