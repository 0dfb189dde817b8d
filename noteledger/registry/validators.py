"""
Validator registry: proof type → validator capability.

Pure dispatch plus capability storage. The registry never looks inside a
proof; it only finds the validator bound to its type and calls it.

Re-registration policy: first write wins.
    register(t, v) then register(t, v)   → no-op
    register(t, v) then register(t, w)   → ValidatorAlreadyRegistered
"""

import logging
import threading
from typing import Dict, List, Optional

from noteledger.core.exceptions import (
    UnknownProofType,
    ValidatorAlreadyRegistered,
    VerificationFailed,
)
from noteledger.core.models import ProofPayload, ProofType, SettlementResult, ZERO_WORD


logger = logging.getLogger(__name__)


class Validator:
    """
    Capability interface for one proof family.

    verify() returns the proof's structured public outputs, or raises
    VerificationFailed when the proof is mathematically invalid.
    """

    proof_type: Optional[ProofType] = None

    def verify(self, payload: ProofPayload, sender: bytes = ZERO_WORD) -> SettlementResult:
        raise NotImplementedError


class ValidatorRegistry:
    """Maps each ProofType to exactly one Validator."""

    def __init__(self) -> None:
        self._validators: Dict[ProofType, Validator] = {}
        self._lock = threading.Lock()

    def register(self, proof_type: ProofType, validator: Validator) -> None:
        proof_type = ProofType.parse(proof_type)
        with self._lock:
            current = self._validators.get(proof_type)
            if current is validator:
                return
            if current is not None:
                raise ValidatorAlreadyRegistered(
                    "proof type already bound to a different validator",
                    {"proof_type": proof_type.name, "bound": type(current).__name__},
                )
            self._validators[proof_type] = validator
        logger.debug("registered %s for %s", type(validator).__name__, proof_type.name)

    def resolve(self, proof_type) -> Validator:
        try:
            proof_type = ProofType.parse(proof_type)
        except ValueError:
            raise UnknownProofType(
                "not a known proof type", {"proof_type": proof_type}
            ) from None
        validator = self._validators.get(proof_type)
        if validator is None:
            raise UnknownProofType(
                "no validator registered", {"proof_type": proof_type.name}
            )
        return validator

    def verify(
        self,
        proof_type: ProofType,
        payload:    ProofPayload,
        sender:     bytes = ZERO_WORD,
    ) -> SettlementResult:
        """
        Resolve and run the validator for proof_type.

        A validator that answers for a different proof type than the one
        requested is treated as a failed verification.
        """
        validator = self.resolve(proof_type)
        result = validator.verify(payload, sender)
        if result.proof_type != payload.proof_type:
            raise VerificationFailed(
                "validator answered for a different proof type",
                {"expected": payload.proof_type.name, "got": result.proof_type.name},
            )
        return result

    def registered(self) -> List[ProofType]:
        return sorted(self._validators)

    def __contains__(self, proof_type) -> bool:
        try:
            return ProofType.parse(proof_type) in self._validators
        except ValueError:
            return False
