"""
noteledger Settlement Engine

The engine turns a verified proof into a committed settlement:
- decode the payload
- verify it with the validator bound to its proof type
- check that every input-note owner signed
- apply the result to the asset's note registry

Critical Invariants:
- a decode error never reaches a validator
- a verification error never reaches a registry
- a rejected settlement changes nothing
"""

from noteledger.settlement.authorization import (
    SpendSignature,
    check_spend_authorization,
    construct_signatures,
    verify_signatures,
)
from noteledger.settlement.engine import SettlementEngine

__all__ = [
    "SettlementEngine",
    "SpendSignature",
    "check_spend_authorization",
    "construct_signatures",
    "verify_signatures",
]
