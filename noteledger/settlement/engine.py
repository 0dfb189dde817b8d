"""
noteledger/settlement/engine.py

Settlement engine: the orchestrator in front of every note registry.

    caller → settle(proof_type, payload, asset, signatures, sender)
        decode        ProofCodec                  MalformedPayload / UnknownProofType
        verify        ValidatorRegistry           VerificationFailed
        authorize     input-note owners sign      SignatureMissing / SignatureInvalid
        apply         NoteRegistry.apply          NoteNotFound / NoteAlreadySpent / ...
        → Receipt

Each stage runs only if the one before it succeeded, so a decode error
never reaches a validator and a verification error never reaches a
registry. Passing verification does not imply commitment: the registry
re-checks every note under its own lock.

Per proof family:
    MINT            registry owner only, adjustable-supply registries only
    JOIN_SPLIT      one signature per distinct input-note owner, plus the
                    public owner when value is deposited
    PRIVATE_RANGE   predicate: verified, nothing consumed or created
    DIVIDEND        predicate: verified, nothing consumed or created
    SWAP            validate_proof() only; settling spans two registries
"""

import hashlib
import logging
import threading
from contextlib import contextmanager
from typing import Dict, List, Optional, Sequence, Set, Tuple, Union

from noteledger.codec.abi import ProofCodec, parse_proof_type, payload_bytes
from noteledger.core.crypto import OwnerKey, owner_bytes
from noteledger.core.exceptions import (
    AssetAlreadyRegistered,
    MalformedPayload,
    NoteLedgerError,
    NoteNotFound,
    OperationNotPermitted,
    UnknownAsset,
    VerificationFailed,
)
from noteledger.core.models import (
    ZERO_WORD,
    EventKind,
    OutputNote,
    ProofCategory,
    ProofPayload,
    ProofType,
    Receipt,
    SettlementEvent,
    SettlementResult,
    int_to_word,
)
from noteledger.ledger.audit import AuditLedger
from noteledger.ledger.public import PublicTokenLedger
from noteledger.registry.factories import FactoryId, FactoryRegistry, NoteRegistryFactory
from noteledger.registry.notes import NoteRegistry
from noteledger.registry.validators import Validator, ValidatorRegistry
from noteledger.settlement.authorization import (
    SpendSignature,
    binding_message,
    check_spend_authorization,
)
from noteledger.verification.transparent import ZERO_COUNTER_NOTE


logger = logging.getLogger(__name__)

Payload = Union[bytes, bytearray, str]


@contextmanager
def _reported(action: str, asset: Optional[str]):
    try:
        yield
    except NoteLedgerError as exc:
        logger.warning("%s rejected on %s: %s: %s", action, asset, exc.kind, exc)
        raise


class SettlementEngine:
    """
    Validates proofs and settles their outputs against note registries.

    Args:
        context:            settlement context bound into every spend signature
        validators:         proof type → validator
        factories:          factory id → note-registry factory
        codec:              payload wire format
        audit:              sink every registry forwards settlement records to
        zero_counter_note:  commitment adjustable registries start their mint
                            counter from
    """

    def __init__(
        self,
        context:           str = "noteledger",
        validators:        Optional[ValidatorRegistry] = None,
        factories:         Optional[FactoryRegistry] = None,
        codec:             Optional[ProofCodec] = None,
        audit:             Optional[AuditLedger] = None,
        zero_counter_note: bytes = ZERO_COUNTER_NOTE,
    ) -> None:
        self.context           = context
        self.validators        = validators if validators is not None else ValidatorRegistry()
        self.factories         = factories if factories is not None else FactoryRegistry()
        self.codec             = codec if codec is not None else ProofCodec()
        self.audit             = audit
        self.zero_counter_note = bytes(zero_counter_note)

        self._registries: Dict[str, NoteRegistry] = {}
        self._validated:  Set[str]                = set()
        self._lock = threading.Lock()

    # ── Administration ────────────────────────────────────────

    def register_validator(self, proof_type: ProofType, validator: Validator) -> None:
        self.validators.register(proof_type, validator)

    def register_factory(self, factory_id: FactoryId, factory: NoteRegistryFactory) -> None:
        self.factories.register(factory_id, factory)

    def create_note_registry(
        self,
        asset_id:          str,
        owner:             OwnerKey,
        can_adjust_supply: bool = False,
        can_convert:       bool = False,
        public_ledger:     Optional[PublicTokenLedger] = None,
        epoch:             Optional[int] = None,
    ) -> NoteRegistry:
        """
        Provision the note registry for asset_id through the factory for the
        requested feature set, in the given epoch or the latest one.
        """
        factory_id, factory = self.factories.select(can_adjust_supply, can_convert, epoch)
        with self._lock:
            if asset_id in self._registries:
                raise AssetAlreadyRegistered(
                    "asset already has a note registry", {"asset_id": asset_id}
                )
            registry = factory.create(
                factory_id,
                asset_id,
                _owner_key(owner, "owner"),
                public_ledger= public_ledger,
                audit=         self.audit,
                mint_counter=  self.zero_counter_note,
            )
            self._registries[asset_id] = registry
        logger.info(
            "created note registry %s with factory %s", asset_id, tuple(factory_id)
        )
        return registry

    def registry(self, asset_id: str) -> NoteRegistry:
        registry = self._registries.get(asset_id)
        if registry is None:
            raise UnknownAsset("no note registry for asset", {"asset_id": asset_id})
        return registry

    @property
    def assets(self) -> List[str]:
        return sorted(self._registries)

    # ── Proofs ────────────────────────────────────────────────

    def binding_message(self, proof_type: ProofType, payload: Payload) -> bytes:
        """The bytes every input-note owner signs to authorize a spend."""
        return binding_message(
            self.context, parse_proof_type(proof_type), payload_bytes(payload)
        )

    def validate_proof(
        self,
        proof_type: ProofType,
        payload:    Payload,
        sender:     OwnerKey = ZERO_WORD,
    ) -> SettlementResult:
        """Verify a proof without settling it, and remember that it verified."""
        with _reported("validate", None):
            proof_type, raw, decoded = self._decode(proof_type, payload)
            sender = _owner_key(sender, "sender")
            result = self.validators.verify(proof_type, decoded, sender)
        with self._lock:
            self._validated.add(_proof_hash(proof_type, raw, sender))
        logger.info("validated %s proof", proof_type.name)
        return result

    def is_validated(
        self,
        proof_type: ProofType,
        payload:    Payload,
        sender:     OwnerKey = ZERO_WORD,
    ) -> bool:
        try:
            proof_type = parse_proof_type(proof_type)
            raw = payload_bytes(payload)
            sender = _owner_key(sender, "sender")
        except NoteLedgerError:
            return False
        return _proof_hash(proof_type, raw, sender) in self._validated

    # ── Settlement ────────────────────────────────────────────

    def settle(
        self,
        proof_type: ProofType,
        payload:    Payload,
        asset:      str,
        signatures: Sequence[SpendSignature] = (),
        sender:     OwnerKey = ZERO_WORD,
    ) -> Receipt:
        """
        Decode, verify, authorize and apply one proof against asset's registry.

        Returns a Receipt; raises a NoteLedgerError subclass and changes
        nothing on rejection.
        """
        with _reported("settle", asset):
            proof_type, raw, decoded = self._decode(proof_type, payload)
            if proof_type == ProofType.SWAP:
                raise OperationNotPermitted(
                    "swap settlement spans two registries; use validate_proof",
                    {"asset_id": asset},
                )
            registry = self.registry(asset)
            sender = _owner_key(sender, "sender")

            if proof_type.category == ProofCategory.MINT:
                return self._mint(registry, proof_type, decoded, sender)

            result = self.validators.verify(proof_type, decoded, sender)
            if result.is_predicate:
                return Receipt(events=[_event(result, EventKind.VALIDATED)])

            self._authorize(registry, proof_type, raw, result, signatures)
            return self._commit(registry, result, EventKind.SETTLED)

    def mint(
        self,
        proof_type: ProofType,
        payload:    Payload,
        asset:      str,
        sender:     OwnerKey,
    ) -> Receipt:
        """Settle a mint proof. Only the registry owner may mint."""
        with _reported("mint", asset):
            proof_type, _, decoded = self._decode(proof_type, payload)
            if proof_type.category != ProofCategory.MINT:
                raise OperationNotPermitted(
                    "not a mint proof", {"proof_type": proof_type.name}
                )
            sender = _owner_key(sender, "sender")
            return self._mint(self.registry(asset), proof_type, decoded, sender)

    def set_spending_limit(
        self,
        asset:      str,
        holder:     OwnerKey,
        limit_note: bytes,
        sender:     OwnerKey,
    ) -> None:
        """
        Pin holder's transfer limit to the commitment of a limit note.
        Only the registry owner may set it.
        """
        with _reported("limit", asset):
            registry = self.registry(asset)
            if _owner_key(sender, "sender") != registry.owner:
                raise OperationNotPermitted(
                    "only the registry owner may set spending limits",
                    {"asset_id": asset},
                )
            registry.set_spending_limit(_owner_key(holder, "holder"), limit_note)

    def settle_transfer(
        self,
        payload:       Payload,
        signatures:    Sequence[SpendSignature],
        range_payload: Payload,
        counterparty:  OwnerKey,
        asset:         str,
        sender:        OwnerKey = ZERO_WORD,
    ) -> Receipt:
        """
        Settle a join-split gated by a private range proof.

        Range proof notes are [limit, payment, remainder]:
            limit     the payer's spending limit set by the registry owner
            payment   a join-split output owned by counterparty
        The join-split must spend notes of a single payer.
        """
        with _reported("transfer", asset):
            _, raw, decoded = self._decode(ProofType.JOIN_SPLIT, payload)
            _, _, range_decoded = self._decode(ProofType.PRIVATE_RANGE, range_payload)
            registry = self.registry(asset)
            sender = _owner_key(sender, "sender")
            counterparty = _owner_key(counterparty, "counterparty")

            transfer = self.validators.verify(ProofType.JOIN_SPLIT, decoded, sender)
            bound = self.validators.verify(ProofType.PRIVATE_RANGE, range_decoded, sender)
            limit_note, payment_note = bound.constraint_notes[:2]

            if OutputNote(payment_note, counterparty) not in transfer.output_notes:
                raise VerificationFailed(
                    "range proof does not bound a payment to the counterparty",
                    {"comparison": payment_note.hex()[:16]},
                )

            payers = set(self._input_owners(registry, transfer))
            if len(payers) != 1:
                raise VerificationFailed(
                    "a limited transfer spends notes of exactly one payer",
                    {"payers": len(payers)},
                )
            payer = payers.pop()
            if limit_note != registry.spending_limit(payer):
                raise VerificationFailed(
                    "range proof is not over the payer's spending limit",
                    {"payer": payer.hex()[:16]},
                )

            self._authorize(registry, ProofType.JOIN_SPLIT, raw, transfer, signatures)
            receipt = self._commit(registry, transfer, EventKind.SETTLED)
            receipt.events.insert(0, _event(bound, EventKind.VALIDATED))
            return receipt

    # ── Internal ──────────────────────────────────────────────

    def _decode(self, proof_type, payload: Payload) -> Tuple[ProofType, bytes, ProofPayload]:
        proof_type = parse_proof_type(proof_type)
        raw = payload_bytes(payload)
        return proof_type, raw, self.codec.decode(proof_type, raw)

    def _mint(
        self,
        registry:   NoteRegistry,
        proof_type: ProofType,
        decoded:    ProofPayload,
        sender:     bytes,
    ) -> Receipt:
        if not registry.can_adjust_supply:
            raise OperationNotPermitted(
                "asset supply is fixed", {"asset_id": registry.asset_id}
            )
        if sender != registry.owner:
            raise OperationNotPermitted(
                "only the registry owner may mint",
                {"asset_id": registry.asset_id, "sender": sender.hex()[:16]},
            )
        result = self.validators.verify(proof_type, decoded, sender)
        return self._commit(registry, result, EventKind.MINTED)

    def _authorize(
        self,
        registry:   NoteRegistry,
        proof_type: ProofType,
        raw:        bytes,
        result:     SettlementResult,
        signatures: Sequence[SpendSignature],
    ) -> None:
        """Input-note owners sign, and so does the public owner of a deposit."""
        owners = self._input_owners(registry, result)
        if result.public_value_delta < 0:
            owners.append(result.public_owner or ZERO_WORD)
        message = binding_message(self.context, proof_type, raw)
        check_spend_authorization(owners, message, signatures)

    def _input_owners(self, registry: NoteRegistry, result: SettlementResult) -> List[bytes]:
        owners = []
        for commitment in result.input_notes:
            note = registry.get_note(commitment)
            if note is None:
                raise NoteNotFound(
                    "input note does not exist", {"commitment": commitment.hex()}
                )
            owners.append(note.owner)
        return owners

    def _commit(self, registry: NoteRegistry, result: SettlementResult, kind: EventKind) -> Receipt:
        record = registry.apply(
            result.input_notes,
            result.output_notes,
            public_value_delta= result.public_value_delta,
            public_owner=       result.public_owner,
            proof_type=         result.proof_type,
        )
        event = SettlementEvent(
            proof_type=   result.proof_type,
            kind=         kind,
            input_notes=  record.input_notes,
            output_notes= record.output_notes,
        )
        return Receipt(events=[event], records=[record])

    def __repr__(self) -> str:
        return (
            f"SettlementEngine(context={self.context!r}, assets={len(self._registries)}, "
            f"validators={len(self.validators.registered())})"
        )


def _event(result: SettlementResult, kind: EventKind) -> SettlementEvent:
    return SettlementEvent(
        proof_type=       result.proof_type,
        kind=             kind,
        input_notes=      result.input_notes,
        output_notes=     result.output_notes,
        constraint_notes= result.constraint_notes,
    )


def _proof_hash(proof_type: ProofType, raw: bytes, sender: bytes) -> str:
    return hashlib.sha256(int_to_word(int(proof_type)) + raw + sender).hexdigest()


def _owner_key(value: OwnerKey, field: str) -> bytes:
    try:
        return owner_bytes(value)
    except (TypeError, ValueError) as exc:
        raise MalformedPayload(
            f"{field} is not a public key", {field: repr(value)[:40]}
        ) from exc
