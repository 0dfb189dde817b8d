"""
tests/test_registries.py

Validator and factory registries: first-write-wins binding, dispatch
misses and registry provisioning through factories.
"""

import pytest

from noteledger.core.exceptions import (
    AssetAlreadyRegistered,
    FactoryAlreadyRegistered,
    OperationNotPermitted,
    UnknownAsset,
    UnknownFactory,
    UnknownProofType,
    ValidatorAlreadyRegistered,
    VerificationFailed,
)
from noteledger.core.models import ProofPayload, ProofType, SettlementResult
from noteledger.ledger.public import PublicTokenLedger
from noteledger.registry.factories import (
    AdjustableFactory,
    BaseFactory,
    FactoryId,
    FactoryRegistry,
    asset_type,
)
from noteledger.registry.validators import Validator, ValidatorRegistry
from noteledger.verification.transparent import (
    ZERO_COUNTER_NOTE,
    TransparentJoinSplitValidator,
    TransparentMintValidator,
)


class _Liar(Validator):
    """Answers every proof with a result for a different proof type."""
    proof_type = ProofType.MINT

    def verify(self, payload, sender=None):
        return SettlementResult(proof_type=ProofType.JOIN_SPLIT)


class TestValidatorRegistry:

    def test_resolve_registered(self):
        registry = ValidatorRegistry()
        validator = TransparentMintValidator()
        registry.register(ProofType.MINT, validator)
        assert registry.resolve(ProofType.MINT) is validator
        assert registry.resolve("mint") is validator
        assert registry.resolve(66049) is validator
        assert ProofType.MINT in registry

    def test_identical_reregistration_is_noop(self):
        registry = ValidatorRegistry()
        validator = TransparentMintValidator()
        registry.register(ProofType.MINT, validator)
        registry.register(ProofType.MINT, validator)
        assert registry.registered() == [ProofType.MINT]

    def test_different_validator_rejected(self):
        registry = ValidatorRegistry()
        registry.register(ProofType.MINT, TransparentMintValidator())
        with pytest.raises(ValidatorAlreadyRegistered):
            registry.register(ProofType.MINT, TransparentMintValidator())

    def test_unbound_type_is_unknown(self):
        registry = ValidatorRegistry()
        registry.register(ProofType.JOIN_SPLIT, TransparentJoinSplitValidator())
        with pytest.raises(UnknownProofType):
            registry.resolve(ProofType.SWAP)
        with pytest.raises(UnknownProofType):
            registry.resolve(12345)
        assert 12345 not in registry

    def test_result_for_wrong_type_fails_verification(self):
        registry = ValidatorRegistry()
        registry.register(ProofType.MINT, _Liar())
        with pytest.raises(VerificationFailed):
            registry.verify(ProofType.MINT, ProofPayload(ProofType.MINT, challenge=0))


class TestFactoryId:

    def test_packing_matches_proof_types(self):
        assert FactoryId(1, 1, 1).packed == 65793
        assert FactoryId.from_packed(65794) == FactoryId(1, 1, 2)

    def test_asset_type_flags(self):
        assert asset_type(False, False) == 0
        assert asset_type(False, True) == 1
        assert asset_type(True, False) == 2
        assert asset_type(True, True) == 3
        fid = FactoryId(1, 1, 3)
        assert fid.can_adjust_supply and fid.can_convert


class TestFactoryRegistry:

    def test_first_write_wins(self):
        factories = FactoryRegistry()
        base = BaseFactory()
        factories.register((1, 1, 1), base)
        factories.register(FactoryId(1, 1, 1), base)
        with pytest.raises(FactoryAlreadyRegistered):
            factories.register(FactoryId(1, 1, 1), BaseFactory())

    def test_component_out_of_range(self):
        with pytest.raises(ValueError):
            FactoryRegistry().register(FactoryId(256, 1, 1), BaseFactory())

    def test_unknown_factory(self):
        with pytest.raises(UnknownFactory):
            FactoryRegistry().resolve(FactoryId(1, 1, 1))

    def test_select_uses_latest_epoch(self):
        factories = FactoryRegistry()
        old, new = AdjustableFactory(), AdjustableFactory()
        factories.register(FactoryId(1, 1, 2), old)
        factories.register(FactoryId(2, 1, 2), new)
        assert factories.latest_epoch == 2
        assert factories.select(True, False) == (FactoryId(2, 1, 2), new)
        assert factories.select(True, False, epoch=1) == (FactoryId(1, 1, 2), old)
        with pytest.raises(UnknownFactory):
            factories.select(False, False)

    def test_factory_refuses_other_supply_model(self):
        with pytest.raises(OperationNotPermitted):
            BaseFactory().create(FactoryId(1, 1, 2), "x", b"\x01" * 32)

    def test_convertible_needs_public_ledger(self):
        with pytest.raises(OperationNotPermitted):
            BaseFactory().create(FactoryId(1, 1, 1), "x", b"\x01" * 32)

    def test_adjustable_registry_is_seeded_with_counter(self):
        registry = AdjustableFactory().create(
            FactoryId(1, 1, 2), "x", b"\x01" * 32, mint_counter=ZERO_COUNTER_NOTE
        )
        assert registry.can_adjust_supply and not registry.can_convert
        assert registry.mint_counter == ZERO_COUNTER_NOTE
        assert registry.factory_id == 65794


class TestEngineProvisioning:

    def test_one_registry_per_asset(self, engine, issuer):
        engine.create_note_registry("A", issuer.owner)
        with pytest.raises(AssetAlreadyRegistered):
            engine.create_note_registry("A", issuer.owner, can_adjust_supply=True)
        assert engine.assets == ["A"]

    def test_unknown_asset(self, engine):
        with pytest.raises(UnknownAsset):
            engine.registry("nope")

    def test_feature_flags_follow_factory(self, engine, issuer):
        public = PublicTokenLedger()
        reg = engine.create_note_registry(
            "B", issuer.owner, can_adjust_supply=True, can_convert=True, public_ledger=public
        )
        assert reg.can_adjust_supply and reg.can_convert
        assert reg.factory_id == FactoryId(1, 1, 3).packed
        assert reg.owner == issuer.owner

    def test_missing_epoch(self, engine, issuer):
        with pytest.raises(UnknownFactory):
            engine.create_note_registry("C", issuer.owner, epoch=7)
