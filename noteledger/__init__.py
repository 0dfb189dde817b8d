"""
noteledger/__init__.py

noteledger: settlement core for a confidential-value ledger

Notes are opaque commitments to (value, owner, blinding factor). The core
never sees a value: it dispatches proofs to validators, enforces the
UNSPENT → SPENT lifecycle, checks spend authorization and records every
committed settlement.
"""

__version__ = "0.3.0"

from noteledger.core.exceptions import NoteLedgerError
from noteledger.core.models import (
    Note,
    NoteStatus,
    OutputNote,
    ProofPayload,
    ProofType,
    Receipt,
    SettlementRecord,
    SettlementResult,
)
from noteledger.core.crypto import Ed25519Key
from noteledger.codec.abi import ProofCodec
from noteledger.registry.factories import FactoryId, FactoryRegistry
from noteledger.registry.notes import NoteRegistry
from noteledger.registry.validators import Validator, ValidatorRegistry
from noteledger.settlement.authorization import SpendSignature, construct_signatures
from noteledger.settlement.engine import SettlementEngine
from noteledger.config import EngineConfig, build_engine

__all__ = [
    # Engine
    "SettlementEngine",
    "EngineConfig",
    "build_engine",
    # Registries
    "NoteRegistry",
    "ValidatorRegistry",
    "FactoryRegistry",
    "FactoryId",
    "Validator",
    # Types
    "Note",
    "NoteStatus",
    "OutputNote",
    "ProofPayload",
    "ProofType",
    "Receipt",
    "SettlementRecord",
    "SettlementResult",
    # Signing
    "Ed25519Key",
    "SpendSignature",
    "construct_signatures",
    # Codec
    "ProofCodec",
    # Errors
    "NoteLedgerError",
]
